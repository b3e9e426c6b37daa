"""配置加载模块。

支持从 .env、config.yaml 以及环境变量加载配置，最终通过 to_config()
交给 ChippConfig.build 校验。客户端核心不依赖本模块。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chipp_client.config.client_config import (
    DEFAULT_BASE_URL,
    DEFAULT_INITIAL_RETRY_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    ChippConfig,
)


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHIPP_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(Path.cwd() / "config.yaml")

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        if not path.exists():
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
            continue
        if isinstance(data, dict):
            return data
        warnings.warn(f"Config file {path} is not a mapping, ignored")
    return {}


class ChippSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    api_key: Optional[str] = Field(default=None, description="Chipp API 密钥")
    model: Optional[str] = Field(default=None, description="Chipp 应用 ID (appNameId)")
    app_name_id: Optional[str] = Field(default=None, description="model 的别名，对应 CHIPP_APP_NAME_ID")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Chipp API 基础URL")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="HTTP 超时时间（秒）")
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, description="最大重试次数")
    initial_retry_delay: float = Field(default=DEFAULT_INITIAL_RETRY_DELAY, description="首次退避（秒）")
    max_retry_delay: float = Field(default=DEFAULT_MAX_RETRY_DELAY, description="退避上限（秒）")
    retry_jitter: float = Field(default=0.0, description="退避抖动比例")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否截断日志内容")

    model_config = SettingsConfigDict(
        env_prefix="CHIPP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def to_config(self) -> ChippConfig:
        """转换为经过校验的不可变 ChippConfig。"""

        return ChippConfig.build(
            self.api_key,
            self.model or self.app_name_id,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            initial_retry_delay=self.initial_retry_delay,
            max_retry_delay=self.max_retry_delay,
            retry_jitter=self.retry_jitter,
        )


def load_settings(**overrides: Any) -> ChippSettings:
    """按 init > env > .env > config.yaml 的优先级加载配置。"""

    return ChippSettings(**overrides)
