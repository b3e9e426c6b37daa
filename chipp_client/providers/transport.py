"""HTTP 传输层。

一个 ChippClient 只持有一个 httpx.Client（连接池），所有请求复用它，
不会为每次调用新建连接。网络异常在这里统一转换为 TransportError。
"""

from typing import Any, Dict, Optional

import httpx

from chipp_client.config.client_config import ChippConfig
from chipp_client.domain.exceptions import TransportError


class HttpTransport:
    """对 httpx.Client 的薄封装。

    - http_client 为空时自行创建并负责关闭；
    - 传入外部 client（测试用 MockTransport、自定义连接池）时不会关闭它。
    """

    def __init__(self, config: ChippConfig, http_client: Optional[httpx.Client] = None):
        self._timeout = config.timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=config.timeout, trust_env=False)

    def post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        """发送一次 POST 并读完响应体。超时按单次请求计算。"""

        try:
            return self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", code="TIMEOUT") from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    def open_stream(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        """发送流式 POST，返回尚未读取响应体的 Response，调用方负责 close()。"""

        request = self._client.build_request("POST", url, json=payload, headers=headers, timeout=self._timeout)
        try:
            return self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", code="TIMEOUT") from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    def head(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            return self._client.head(url, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", code="TIMEOUT") from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
