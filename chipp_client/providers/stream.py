"""Chipp 流式响应解码。

Chipp 的流式接口虽然返回 text/event-stream 头，但响应体并不是标准 SSE，
而是按行分隔、带前缀的记录：

    0:"chat-session-id"            会话令牌（JSON 字符串）
    0:{"delta":"Hel"}              文本增量（JSON 对象，可能同时带 chatSessionId）
    e:[DONE] / e:{...}             结束标记，无论内容是什么都正常结束
    d:/f:/8:/其他前缀               忽略

解码分三层：LineBuffer 负责跨 chunk 拼接完整行，parse_record 把一行
解析为 StreamEvent 列表，ChatStream 对外暴露只能遍历一次的文本片段迭代器。
"""

import codecs
import json
import logging
from typing import Any, Iterator, List, Optional

import httpx

from chipp_client.domain.exceptions import StreamError, TransportError
from chipp_client.domain.models import Session, StreamEvent
from chipp_client.infrastructure.logging.logger import logger as default_logger


class LineBuffer:
    """缓存不完整的行，只在遇到换行符后才交出整行。"""

    def __init__(self):
        self._pending = ""

    def feed(self, text: str) -> List[str]:
        if not text:
            return []
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    def flush(self) -> Optional[str]:
        """返回流结束时残留的最后一行（没有换行符结尾的情况）。"""

        tail, self._pending = self._pending, ""
        tail = tail.rstrip("\r")
        return tail or None

    @property
    def pending(self) -> str:
        return self._pending


def _extract_delta(obj: dict) -> Optional[str]:
    delta = obj.get("delta")
    if isinstance(delta, dict):
        delta = delta.get("content")
    if delta is None:
        delta = obj.get("content")
    if delta is None:
        choices = obj.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            inner = choices[0].get("delta") or {}
            if isinstance(inner, dict):
                delta = inner.get("content")
    return delta if isinstance(delta, str) else None


def parse_record(line: str) -> List[StreamEvent]:
    """解析单行记录。

    空行与未知前缀返回空列表；0: 记录的 JSON 不合法时抛出 StreamError。
    """

    line = line.strip()
    if not line:
        return []
    prefix, sep, payload = line.partition(":")
    if not sep or len(prefix) not in (1, 2):
        return []

    if prefix == "e":
        return [StreamEvent(kind="done")]
    if prefix != "0":
        return []

    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StreamError(f"Failed to parse content record: {e}", record=line[:200]) from e

    if isinstance(data, str):
        return [StreamEvent(kind="session", value=data)]
    if not isinstance(data, dict):
        raise StreamError(
            f"Unexpected content record payload type: {type(data).__name__}",
            record=line[:200],
        )

    events: List[StreamEvent] = []
    session_id = data.get("chatSessionId")
    if isinstance(session_id, str) and session_id:
        events.append(StreamEvent(kind="session", value=session_id))
    delta = _extract_delta(data)
    if delta:
        events.append(StreamEvent(kind="text", value=delta))
    return events


class ChatStream:
    """一次流式调用的文本片段迭代器。

    - 只能遍历一次；结束、出错或 close() 之后都会释放底层连接。
    - 每观察到会话令牌就立即写回调用方的 Session，而不是等到结束。
    - 格式错误的 0: 记录在之前的片段全部产出后抛出 StreamError，之后迭代结束。
    """

    def __init__(
        self,
        response: httpx.Response,
        session: Optional[Session] = None,
        correlation_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._response = response
        self._session = session
        self.correlation_id = correlation_id
        self.chat_session_id: Optional[str] = None
        self._logger = logger or default_logger
        self._finished = False
        self._fragments = self._iter_fragments()

    def __iter__(self) -> "ChatStream":
        return self

    def __next__(self) -> str:
        return next(self._fragments)

    def __enter__(self) -> "ChatStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def finished(self) -> bool:
        return self._finished

    def close(self) -> None:
        self._fragments.close()
        self._finished = True
        self._response.close()

    def collect(self) -> str:
        """读完剩余片段并拼接为完整回复。"""

        return "".join(self)

    def _update_session(self, chat_session_id: str) -> None:
        self.chat_session_id = chat_session_id
        if self._session is not None:
            self._session.chat_session_id = chat_session_id

    def _iter_fragments(self) -> Iterator[str]:
        try:
            for line in self._iter_lines():
                try:
                    events = parse_record(line)
                except StreamError as e:
                    self._logger.warning(
                        "Malformed stream record",
                        extra={"extra": {"correlation_id": self.correlation_id, "error": e.message}},
                    )
                    raise
                for event in events:
                    if event.kind == "text":
                        yield event.value
                    elif event.kind == "session":
                        self._update_session(event.value)
                    elif event.kind == "done":
                        return
        finally:
            self._finished = True
            self._response.close()

    def _iter_lines(self) -> Iterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")()
        buffer = LineBuffer()
        try:
            for chunk in self._response.iter_bytes():
                yield from buffer.feed(decoder.decode(chunk))
            yield from buffer.feed(decoder.decode(b"", final=True))
        except UnicodeDecodeError as e:
            raise StreamError(f"Invalid UTF-8 in stream: {e}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Stream read timed out: {e}", code="TIMEOUT") from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e
        tail = buffer.flush()
        if tail:
            yield tail
