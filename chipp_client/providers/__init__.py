"""Chipp Provider 集成层。

该包下的模块负责：
- 共享连接池的 HTTP 传输层 (transport)。
- 重试分类与退避 (retry_policy)。
- 自定义流式格式的解码 (stream)。
- 对外的 ChippClient 实现 (client)。
"""

from typing import Optional

from chipp_client.config.client_config import ChippConfig
from chipp_client.providers.client import ChippClient


def create_client(config: Optional[ChippConfig] = None, **kwargs) -> ChippClient:
    """根据配置创建客户端，未传入配置时从环境变量 / .env / config.yaml 加载。"""

    if config is None:
        from chipp_client.config.settings import load_settings

        config = load_settings().to_config()
    return ChippClient(config, **kwargs)
