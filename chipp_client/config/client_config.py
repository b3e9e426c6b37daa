"""客户端配置模型。

ChippConfig 在构造时校验一次，之后不可变：

- api_key 使用 SecretStr 保存，repr/str/日志中只会显示 "**********"。
- model 为 Chipp 应用的 appNameId。
- 重试相关参数全部以秒为单位。

本模块不读取任何环境变量，环境/文件解析由 config.settings 负责。
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from chipp_client.domain.exceptions import ConfigError


DEFAULT_BASE_URL = "https://app.chipp.ai/api/v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_RETRY_DELAY = 0.1
DEFAULT_MAX_RETRY_DELAY = 10.0

_REQUIRED_FIELDS = ("api_key", "model")


class ChippConfig(BaseModel):
    """Chipp API 客户端配置。"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    api_key: SecretStr = Field(description="Chipp API 密钥（Bearer token）")
    model: str = Field(description="Chipp 应用 ID，请求体中的 model 字段")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="API 基础URL")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="单次请求超时时间（秒）")
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, description="首次请求之后的最大重试次数")
    initial_retry_delay: float = Field(default=DEFAULT_INITIAL_RETRY_DELAY, ge=0, description="首次退避时间（秒）")
    max_retry_delay: float = Field(default=DEFAULT_MAX_RETRY_DELAY, ge=0, description="退避时间上限（秒）")
    retry_jitter: float = Field(default=0.0, ge=0, le=1, description="退避随机抖动比例，0 表示不抖动")

    @field_validator("api_key")
    @classmethod
    def _require_api_key(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("api_key is required")
        return v

    @field_validator("model")
    @classmethod
    def _require_model(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("model is required")
        return v

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @model_validator(mode="after")
    def _check_delays(self) -> "ChippConfig":
        if self.max_retry_delay < self.initial_retry_delay:
            raise ValueError("max_retry_delay must be >= initial_retry_delay")
        return self

    @classmethod
    def build(cls, api_key: Optional[str], model: Optional[str], **options: Any) -> "ChippConfig":
        """校验并构造配置。

        api_key / model 缺失或为空时抛出 ConfigError(code="MISSING_FIELD")，
        其他非法参数抛出 ConfigError(code="INVALID_CONFIG")。
        options 中值为 None 的项使用默认值。
        """

        values = {"api_key": api_key, "model": model}
        for name in _REQUIRED_FIELDS:
            value = values[name]
            if value is None or not str(value).strip():
                raise ConfigError(f"{name} is required", field=name)
        values.update({k: v for k, v in options.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = first.get("loc") or ()
            field = str(loc[0]) if loc else None
            # 错误信息来自 pydantic，不包含 SecretStr 的明文
            raise ConfigError(
                f"Invalid configuration: {first.get('msg', str(e))}",
                code="INVALID_CONFIG",
                field=field,
            ) from None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def bearer_token(self) -> str:
        """唯一返回明文密钥的入口，只用于组装 Authorization 头。"""

        return self.api_key.get_secret_value()
