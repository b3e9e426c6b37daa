"""统一客户端异常模型。

ChippClient 抛出的所有错误都继承自 ChippClientError，
调用方可以统一捕获，再根据 code / status / attempts 决定是否重试或降级。
"""

from typing import Optional


class ChippClientError(Exception):
    """客户端异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        extra: 其他补充字段（例如 correlation_id、field 等）。
    """

    def __init__(self, code: str, message: str, **extra):
        self.code = code
        self.message = message
        self.extra = extra
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigError(ChippClientError):
    """配置校验失败（缺少 api_key / model 等），永不重试。"""

    def __init__(self, message: str, code: str = "MISSING_FIELD", **extra):
        super().__init__(code=code, message=message, **extra)


class TransportError(ChippClientError):
    """网络层错误，例如连接失败、超时等。"""

    def __init__(self, message: str, code: str = "NETWORK_ERROR", **extra):
        super().__init__(code=code, message=message, **extra)


class ApiError(ChippClientError):
    """服务端返回非 2xx 状态码时抛出。"""

    def __init__(self, status: int, message: str, code: str = "API_ERROR", **extra):
        self.status = status
        super().__init__(code=code, message=message, **extra)

    def __str__(self) -> str:
        return f"[{self.code}] API returned error: {self.status} - {self.message}"


class RateLimitError(ApiError):
    """429 限流错误，由重试策略负责退避。"""

    def __init__(self, message: str, **extra):
        super().__init__(status=429, message=message, code="RATE_LIMIT", **extra)


class InvalidResponseError(ChippClientError):
    """2xx 响应体无法解析或缺少必要字段。重试无法修复，直接失败。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="INVALID_RESPONSE", message=message, **extra)


class StreamError(ChippClientError):
    """流式响应中出现无法解析的记录。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="STREAM_ERROR", message=message, **extra)


class RetriesExhaustedError(ChippClientError):
    """重试次数用尽，last_error 保存最后一次失败原因。"""

    def __init__(self, attempts: int, last_error: Optional[ChippClientError], **extra):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            code="RETRIES_EXHAUSTED",
            message=f"Maximum retry attempts exceeded after {attempts} attempt(s): {last_error}",
            **extra,
        )
