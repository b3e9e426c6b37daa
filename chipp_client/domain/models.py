"""统一的对话与结果数据模型。

本模块定义了客户端与调用方之间共享的标准数据结构：

- Message: 一条对话消息（system/user/assistant）。
- Session: 会话连续性令牌（服务端称为 chatSessionId）。
- ChatResult: 一次非流式调用解析后的结果。
- StreamEvent: 流式记录解码后的内部事件。

Provider 层只依赖这些模型，并负责在 Chipp API JSON 和它们之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, get_args


# 消息角色（与 Chipp / OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]
_ROLES = frozenset(get_args(Role))


@dataclass(frozen=True)
class Message:
    """一条对话消息，由调用方构造，客户端只读不改。"""

    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    """会话连续性状态。

    - 新建时没有令牌；每次成功调用后由客户端原地写入服务端下发的 chatSessionId。
    - reset() 清空令牌，下一次调用即开始新对话。
    - 由调用方持有，客户端只观察和更新，不做同步：同一个 Session 请顺序使用。
    """

    chat_session_id: Optional[str] = None

    @classmethod
    def with_id(cls, chat_session_id: str) -> "Session":
        return cls(chat_session_id=chat_session_id)

    @property
    def continuity_token(self) -> Optional[str]:
        return self.chat_session_id

    @property
    def has_token(self) -> bool:
        return bool(self.chat_session_id)

    def reset(self) -> None:
        self.chat_session_id = None


@dataclass(frozen=True)
class ChatUsage:
    """服务端返回的 token 统计信息。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ChatResult:
    """一次非流式对话调用的最终结果。

    - content: choices[0].message.content。
    - chat_session_id: 本次响应下发的会话令牌（已同步写入 Session）。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试。
    """

    content: str
    chat_session_id: Optional[str] = None
    usage: Optional[ChatUsage] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return self.content


StreamEventKind = Literal["text", "session", "done"]


@dataclass(frozen=True)
class StreamEvent:
    """单条流式记录解码后的事件。

    kind:
        - "text": 文本增量，value 为片段。
        - "session": 会话令牌，value 为 chatSessionId。
        - "done": 结束标记，value 为空。
    """

    kind: StreamEventKind
    value: str = ""
