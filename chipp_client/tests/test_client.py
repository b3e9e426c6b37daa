import json
import uuid

import httpx
import pytest

from chipp_client.config.client_config import ChippConfig
from chipp_client.domain.exceptions import (
    ApiError,
    InvalidResponseError,
    RateLimitError,
    RetriesExhaustedError,
    TransportError,
)
from chipp_client.domain.models import Message, Session
from chipp_client.providers.client import ChippClient


def ok_response(content="ok", chat_session_id="session-1", **extra):
    body = {
        "chatSessionId": chat_session_id,
        "choices": [{"message": {"role": "assistant", "content": content}}],
    }
    body.update(extra)
    return httpx.Response(200, json=body)


def test_chat_success_updates_session(make_client):
    client, recorder = make_client(
        ok_response(
            "Hello! How can I help?",
            chat_session_id="session-123",
            usage={"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8},
        )
    )
    session = Session()
    result = client.chat(session, [Message.user("Hello")])

    assert result.content == "Hello! How can I help?"
    assert result.chat_session_id == "session-123"
    assert result.usage.total_tokens == 8
    assert session.chat_session_id == "session-123"
    assert len(recorder.requests) == 1


def test_chat_request_format(make_client):
    client, recorder = make_client(ok_response())
    client.chat(Session(), [Message.system("be brief"), Message.user("Hi")])

    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://chipp.test/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-api-key"
    assert request.headers["Content-Type"] == "application/json"
    uuid.UUID(request.headers["X-Correlation-ID"], version=4)
    assert "X-Chat-Session-ID" not in request.headers
    assert json.loads(request.content) == {
        "model": "test-model",
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "Hi"},
        ],
        "stream": False,
    }


def test_chat_sends_session_token(make_client):
    client, recorder = make_client(ok_response(chat_session_id="rotated"))
    session = Session.with_id("existing")
    client.chat(session, [Message.user("again")])

    request = recorder.requests[0]
    assert request.headers["X-Chat-Session-ID"] == "existing"
    assert json.loads(request.content)["chatSessionId"] == "existing"
    # 服务端轮换令牌时以最新值为准
    assert session.chat_session_id == "rotated"


def test_reset_session_sends_no_token(make_client):
    client, recorder = make_client(ok_response(chat_session_id="s1"))
    session = Session()
    client.chat(session, [Message.user("one")])
    session.reset()
    client.chat(session, [Message.user("two")])

    second = recorder.requests[1]
    assert "X-Chat-Session-ID" not in second.headers
    assert "chatSessionId" not in json.loads(second.content)


def test_empty_messages_passed_through(make_client):
    client, recorder = make_client(ok_response())
    client.chat(Session(), [])
    assert recorder.bodies()[0]["messages"] == []


def test_chat_retries_5xx_then_succeeds(make_client, sleeper):
    client, recorder = make_client(
        httpx.Response(500, text="Internal Server Error"),
        httpx.Response(503, text="Service Unavailable"),
        ok_response("recovered"),
    )
    result = client.chat(Session(), [Message.user("hi")])

    assert result.content == "recovered"
    assert len(recorder.requests) == 3
    assert sleeper.delays == pytest.approx([0.01, 0.02])
    # 每次尝试都使用新的 correlation id
    ids = {r.headers["X-Correlation-ID"] for r in recorder.requests}
    assert len(ids) == 3


def test_chat_retries_429(make_client):
    client, recorder = make_client(httpx.Response(429, text="Too Many Requests"), ok_response())
    client.chat(Session(), [Message.user("hi")])
    assert len(recorder.requests) == 2


def test_chat_exhausts_retries(make_client, sleeper):
    client, recorder = make_client(httpx.Response(500, text="Internal Server Error"))
    session = Session.with_id("keep-me")

    with pytest.raises(RetriesExhaustedError) as exc:
        client.chat(session, [Message.user("hi")])

    # max_retries=3：首次请求 + 3 次重试
    assert len(recorder.requests) == 4
    assert exc.value.attempts == 4
    assert isinstance(exc.value.last_error, ApiError)
    assert exc.value.last_error.status == 500
    assert len(sleeper.delays) == 3
    assert session.chat_session_id == "keep-me"


def test_chat_zero_retries_single_attempt(make_client, config):
    cfg = config.model_copy(update={"max_retries": 0})
    client, recorder = make_client(httpx.Response(502, text="Bad Gateway"), cfg=cfg)
    with pytest.raises(RetriesExhaustedError) as exc:
        client.chat(Session(), [Message.user("hi")])
    assert len(recorder.requests) == 1
    assert exc.value.attempts == 1


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_chat_client_errors_not_retried(make_client, sleeper, status):
    client, recorder = make_client(httpx.Response(status, text="nope"))
    with pytest.raises(ApiError) as exc:
        client.chat(Session(), [Message.user("hi")])
    assert not isinstance(exc.value, RetriesExhaustedError)
    assert exc.value.status == status
    assert exc.value.message == "nope"
    assert len(recorder.requests) == 1
    assert sleeper.delays == []


def test_chat_network_error_retried(make_client):
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, recorder = make_client(fail, ok_response("ok"))
    assert client.chat(Session(), [Message.user("hi")]).content == "ok"
    assert len(recorder.requests) == 2


def test_chat_timeout_exhausted(make_client):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, recorder = make_client(slow)
    with pytest.raises(RetriesExhaustedError) as exc:
        client.chat(Session(), [Message.user("hi")])
    assert isinstance(exc.value.last_error, TransportError)
    assert exc.value.last_error.code == "TIMEOUT"
    assert len(recorder.requests) == 4


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"chatSessionId": "s", "choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": "x"}}]}),
        httpx.Response(200, json={"chatSessionId": "s", "choices": [{"message": {}}]}),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
def test_chat_invalid_response_not_retried(make_client, response):
    client, recorder = make_client(response)
    session = Session()
    with pytest.raises(InvalidResponseError):
        client.chat(session, [Message.user("hi")])
    assert len(recorder.requests) == 1
    assert session.chat_session_id is None


def test_chat_text(make_client):
    client, _ = make_client(ok_response("plain text"))
    assert client.chat_text(Session(), [Message.user("hi")]) == "plain text"


def test_chat_stream(make_client):
    body = b'0:"tok1"\n0:{"delta":"a"}\n0:{"delta":"b"}\ne:[DONE]\n'
    client, recorder = make_client(httpx.Response(200, content=body))
    session = Session()

    with client.chat_stream(session, [Message.user("hi")]) as stream:
        assert list(stream) == ["a", "b"]
    assert session.chat_session_id == "tok1"

    request = recorder.requests[0]
    assert request.headers["Accept"] == "text/event-stream"
    assert json.loads(request.content)["stream"] is True


def test_chat_stream_sends_session_token(make_client):
    client, recorder = make_client(httpx.Response(200, content=b"e:[DONE]\n"))
    client.chat_stream(Session.with_id("abc"), [Message.user("hi")]).collect()
    request = recorder.requests[0]
    assert request.headers["X-Chat-Session-ID"] == "abc"
    assert json.loads(request.content)["chatSessionId"] == "abc"


def test_chat_stream_api_error_not_retried(make_client, sleeper):
    client, recorder = make_client(httpx.Response(500, text="Internal Server Error"))
    with pytest.raises(ApiError) as exc:
        client.chat_stream(Session(), [Message.user("hi")])
    assert exc.value.status == 500
    assert exc.value.message == "Internal Server Error"
    assert len(recorder.requests) == 1
    assert sleeper.delays == []


def test_chat_stream_rate_limit(make_client):
    client, _ = make_client(httpx.Response(429, text="slow down"))
    with pytest.raises(RateLimitError):
        client.chat_stream(Session(), [Message.user("hi")])


class BrokenBody(httpx.SyncByteStream):
    def __iter__(self):
        raise httpx.ReadError("connection reset")
        yield b""


def test_chat_stream_error_body_unreadable(make_client):
    client, recorder = make_client(lambda request: httpx.Response(500, stream=BrokenBody()))
    with pytest.raises(ApiError) as exc:
        client.chat_stream(Session(), [Message.user("hi")])
    assert exc.value.status == 500
    assert exc.value.message == ""
    assert len(recorder.requests) == 1


def test_chat_stream_rate_limit_body_unreadable(make_client):
    client, _ = make_client(lambda request: httpx.Response(429, stream=BrokenBody()))
    with pytest.raises(RateLimitError) as exc:
        client.chat_stream(Session(), [Message.user("hi")])
    assert exc.value.status == 429


def test_chat_stream_transport_error(make_client):
    def fail(request):
        raise httpx.ConnectError("refused", request=request)

    client, recorder = make_client(fail)
    with pytest.raises(TransportError):
        client.chat_stream(Session(), [Message.user("hi")])
    assert len(recorder.requests) == 1


def test_chat_stream_collect(make_client):
    body = b'0:"s-1"\n0:{"delta":"Hello, "}\n0:{"delta":"world"}\ne:{"finishReason":"stop"}\n'
    client, _ = make_client(httpx.Response(200, content=body))
    session = Session()
    assert client.chat_stream_collect(session, [Message.user("hi")]) == "Hello, world"
    assert session.chat_session_id == "s-1"


def test_ping_returns_latency(make_client):
    client, recorder = make_client(httpx.Response(405))
    latency = client.ping()
    assert latency >= 0
    assert recorder.requests[0].method == "HEAD"


def test_ping_network_failure(make_client):
    def fail(request):
        raise httpx.ConnectError("unreachable", request=request)

    client, _ = make_client(fail)
    with pytest.raises(TransportError):
        client.ping()


def test_client_reuses_single_http_client(monkeypatch, config):
    created = []

    class Client:
        def __init__(self, *a, **kw):
            created.append(kw)
            self.is_closed = False

        def post(self, url, json=None, headers=None, timeout=None):
            return httpx.Response(
                200,
                json={"chatSessionId": "s", "choices": [{"message": {"content": "ok"}}]},
                request=httpx.Request("POST", url),
            )

        def close(self):
            self.is_closed = True

    monkeypatch.setattr("httpx.Client", Client)
    client = ChippClient(config)
    session = Session()
    for _ in range(3):
        client.chat(session, [Message.user("hi")])
    assert len(created) == 1
    assert created[0]["timeout"] == 5.0

    client.close()
    assert client._transport.is_closed


def test_repr_hides_api_key():
    cfg = ChippConfig.build("very-secret-key", "myapp")
    with httpx.Client() as http:
        client = ChippClient(cfg, http_client=http)
        assert "very-secret-key" not in repr(client)


def test_external_http_client_left_open(config):
    http = httpx.Client(transport=httpx.MockTransport(lambda request: ok_response()))
    with ChippClient(config, http_client=http) as client:
        client.chat(Session(), [Message.user("hi")])
    assert not http.is_closed
    assert not hasattr(client, "name")
    http.close()
