"""Chipp API 客户端。

本模块负责：

1. 接收调用方的 Session 与 Message 列表。
2. 转换为 Chipp chat/completions 请求（OpenAI 风格 + chatSessionId）。
3. 通过共享的 HttpTransport 发送请求，非流式调用按 RetryPolicy 重试。
4. 将响应解析为 ChatResult，并把服务端下发的 chatSessionId 写回 Session。

流式调用只发一次请求，不做重试，返回 ChatStream 供调用方逐段读取。
"""

import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from chipp_client.config.client_config import ChippConfig
from chipp_client.domain.exceptions import ApiError, InvalidResponseError, RateLimitError
from chipp_client.domain.models import ChatResult, ChatUsage, Message, Session
from chipp_client.infrastructure.logging.logger import logger
from chipp_client.providers.retry_policy import RetryPolicy
from chipp_client.providers.stream import ChatStream
from chipp_client.providers.transport import HttpTransport

SESSION_HEADER = "X-Chat-Session-ID"
CORRELATION_HEADER = "X-Correlation-ID"


class ChippClient:
    """Chipp API 客户端实现。

    - 一个实例持有一个连接池，可被多个会话并发共享；
    - 每个会话使用自己的 Session，同一个 Session 需要顺序调用。
    """

    def __init__(
        self,
        config: ChippConfig,
        *,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._transport = HttpTransport(config, http_client=http_client)
        self._retry = RetryPolicy.from_config(config, sleep=sleep)

    @property
    def config(self) -> ChippConfig:
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    # ---- 非流式 ----

    def chat(self, session: Session, messages: Sequence[Message]) -> ChatResult:
        """执行一次非流式对话调用（含重试）。

        步骤：
        1. 每次尝试都生成新的 correlation id，并带上当前 Session 的令牌。
        2. 网络错误 / 5xx / 429 按退避策略重试，其他错误直接抛出。
        3. 完整校验响应后才更新 Session，失败时 Session 保持不变。
        """

        start = time.perf_counter()
        result = self._retry.execute(
            lambda attempt: self._chat_attempt(session, messages, attempt),
            operation="chat",
        )
        # 所有校验通过后再写回，服务端可能轮换令牌
        session.chat_session_id = result.chat_session_id
        logger.info(
            "Chat completed",
            extra={
                "extra": {
                    "model": self._config.model,
                    "elapsed_ms": int((time.perf_counter() - start) * 1000),
                    "total_tokens": result.usage.total_tokens if result.usage else None,
                }
            },
        )
        return result

    def chat_text(self, session: Session, messages: Sequence[Message]) -> str:
        """只返回回复文本的便捷方法。"""

        return self.chat(session, messages).content

    def _chat_attempt(self, session: Session, messages: Sequence[Message], attempt: int) -> ChatResult:
        correlation_id = str(uuid.uuid4())
        payload = self._build_payload(session, messages, stream=False)
        headers = self._build_headers(session, correlation_id)
        logger.debug(
            "Sending chat request",
            extra={
                "extra": {
                    "correlation_id": correlation_id,
                    "attempt": attempt,
                    "num_messages": len(payload["messages"]),
                    "has_session": session.has_token,
                }
            },
        )
        resp = self._transport.post_json(self._config.endpoint, payload, headers)
        self._raise_for_status(resp, correlation_id)
        try:
            data = resp.json()
        except ValueError as e:
            raise InvalidResponseError(f"Failed to parse response: {e}", correlation_id=correlation_id) from e
        return self._parse_response(data, correlation_id)

    # ---- 流式 ----

    def chat_stream(self, session: Session, messages: Sequence[Message]) -> ChatStream:
        """执行一次流式对话调用，返回逐段产出文本的 ChatStream。

        打开请求失败（网络错误或非 2xx）直接抛出，不重试。
        """

        correlation_id = str(uuid.uuid4())
        payload = self._build_payload(session, messages, stream=True)
        headers = self._build_headers(session, correlation_id)
        headers["Accept"] = "text/event-stream"
        logger.debug(
            "Sending chat stream request",
            extra={"extra": {"correlation_id": correlation_id, "has_session": session.has_token}},
        )
        resp = self._transport.open_stream(self._config.endpoint, payload, headers)
        if not resp.is_success:
            try:
                resp.read()
                message = resp.text
            except httpx.RequestError:
                # 错误响应体读取失败时只保留状态码
                message = ""
            finally:
                resp.close()
            raise self._api_error(resp.status_code, message, correlation_id)
        return ChatStream(resp, session=session, correlation_id=correlation_id)

    def chat_stream_collect(self, session: Session, messages: Sequence[Message]) -> str:
        """流式调用并拼接完整回复。"""

        with self.chat_stream(session, messages) as stream:
            return stream.collect()

    # ---- 健康检查 ----

    def ping(self) -> float:
        """对 chat/completions 发一次 HEAD 请求，返回往返耗时（秒）。

        只要收到任何 HTTP 响应就视为可达；网络失败抛出 TransportError。
        """

        start = time.perf_counter()
        self._transport.head(self._config.endpoint)
        latency = time.perf_counter() - start
        logger.debug("Ping completed", extra={"extra": {"latency_ms": int(latency * 1000)}})
        return latency

    # ---- 生命周期 ----

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "ChippClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ChippClient(config={self._config!r})"

    # ---- 辅助方法 ----

    def _build_payload(self, session: Session, messages: Sequence[Message], stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [m.to_payload() for m in messages],
            "stream": stream,
        }
        if session.chat_session_id:
            payload["chatSessionId"] = session.chat_session_id
        return payload

    def _build_headers(self, session: Session, correlation_id: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.bearer_token()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            CORRELATION_HEADER: correlation_id,
        }
        if session.chat_session_id:
            headers[SESSION_HEADER] = session.chat_session_id
        return headers

    @staticmethod
    def _raise_for_status(resp: httpx.Response, correlation_id: str) -> None:
        if resp.is_success:
            return
        raise ChippClient._api_error(resp.status_code, resp.text, correlation_id)

    @staticmethod
    def _api_error(status: int, message: str, correlation_id: str) -> ApiError:
        if status == 429:
            return RateLimitError(message or "Chipp rate limit", correlation_id=correlation_id)
        return ApiError(status=status, message=message, correlation_id=correlation_id)

    def _parse_response(self, data: Any, correlation_id: str) -> ChatResult:
        if not isinstance(data, dict):
            raise InvalidResponseError("Response body is not a JSON object", correlation_id=correlation_id)
        chat_session_id = data.get("chatSessionId")
        if not isinstance(chat_session_id, str) or not chat_session_id:
            raise InvalidResponseError("Missing chatSessionId in response", correlation_id=correlation_id)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise InvalidResponseError("No choices in response", correlation_id=correlation_id)
        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise InvalidResponseError("Missing message content in first choice", correlation_id=correlation_id)
        return ChatResult(
            content=content,
            chat_session_id=chat_session_id,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    @staticmethod
    def _parse_usage(usage_raw: Any) -> Optional[ChatUsage]:
        if not isinstance(usage_raw, dict) or not usage_raw:
            return None
        try:
            return ChatUsage(
                prompt_tokens=int(usage_raw.get("prompt_tokens") or 0),
                completion_tokens=int(usage_raw.get("completion_tokens") or 0),
                total_tokens=int(usage_raw.get("total_tokens") or 0),
            )
        except (TypeError, ValueError):
            # usage 只是附加信息，格式不对时忽略
            return None


def build_messages(user_input: str, system_prompt: Optional[str] = None) -> List[Message]:
    msgs: List[Message] = []
    if system_prompt:
        msgs.append(Message.system(system_prompt))
    msgs.append(Message.user(user_input))
    return msgs
