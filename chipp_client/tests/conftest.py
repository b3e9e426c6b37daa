import json

import httpx
import pytest

from chipp_client.config.client_config import ChippConfig
from chipp_client.providers.client import ChippClient


class Recorder:
    """记录 MockTransport 收到的请求，并按顺序返回预设响应。"""

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        # 同一个预设响应可能被重复返回，每次复制一份
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def config():
    return ChippConfig.build(
        "test-api-key",
        "test-model",
        base_url="https://chipp.test/api/v1",
        timeout=5.0,
        max_retries=3,
        initial_retry_delay=0.01,
        max_retry_delay=0.1,
    )


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_client(config, sleeper):
    created = []

    def _make(*responses, cfg=None):
        recorder = Recorder(responses)
        http = httpx.Client(transport=httpx.MockTransport(recorder))
        client = ChippClient(cfg or config, http_client=http, sleep=sleeper)
        created.append(http)
        return client, recorder

    yield _make
    for http in created:
        http.close()
