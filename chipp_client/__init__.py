"""Chipp 客户端顶层包。

该包提供 Chipp chat/completions API 的同步客户端，
包括配置校验、会话连续性、失败重试与退避，以及自定义流式格式解码。
"""

from chipp_client.config.client_config import ChippConfig
from chipp_client.domain.exceptions import (
    ApiError,
    ChippClientError,
    ConfigError,
    InvalidResponseError,
    RateLimitError,
    RetriesExhaustedError,
    StreamError,
    TransportError,
)
from chipp_client.domain.models import ChatResult, ChatUsage, Message, Session
from chipp_client.providers.client import ChippClient
from chipp_client.providers.stream import ChatStream

__all__ = [
    "ApiError",
    "ChatResult",
    "ChatStream",
    "ChatUsage",
    "ChippClient",
    "ChippClientError",
    "ChippConfig",
    "ConfigError",
    "InvalidResponseError",
    "Message",
    "RateLimitError",
    "RetriesExhaustedError",
    "Session",
    "StreamError",
    "TransportError",
]
