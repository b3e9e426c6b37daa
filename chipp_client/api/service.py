"""对外 API 服务模块。

提供简化的函数接口供上层应用（CLI、脚本）调用，配置从环境变量加载。
"""

from typing import Any, Dict, Iterator, Optional

from chipp_client.config.settings import load_settings
from chipp_client.domain.models import Session
from chipp_client.infrastructure.logging.logger import logger, setup_logger
from chipp_client.providers.client import ChippClient, build_messages


_client: Optional[ChippClient] = None


def get_default_client() -> ChippClient:
    """获取默认的 ChippClient 实例（单例）。"""
    global _client
    if _client is None:
        settings = load_settings()
        setup_logger(settings.log_dir, redact_content=settings.log_redact_content)
        _client = ChippClient(settings.to_config())
    return _client


def reset_default_client() -> None:
    """关闭并丢弃默认客户端，下次调用时重新加载配置。"""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def run_chat(
    user_input: str,
    session: Optional[Session] = None,
    system_prompt: Optional[str] = None,
) -> Dict[str, Any]:
    """运行一次非流式对话。

    Args:
        user_input: 用户输入内容
        session: 会话（可选，不提供则开始新对话；提供时会被原地更新）
        system_prompt: 系统提示词（可选）

    Returns:
        包含回复内容、会话ID 和使用统计的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    session = session if session is not None else Session()
    try:
        result = get_default_client().chat(session, build_messages(user_input, system_prompt))
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "chat_session_id": session.chat_session_id,
            "error": str(e),
        }})
        raise
    return {
        "content": result.content,
        "chat_session_id": result.chat_session_id,
        "usage": (
            {
                "prompt_tokens": result.usage.prompt_tokens,
                "completion_tokens": result.usage.completion_tokens,
                "total_tokens": result.usage.total_tokens,
            }
            if result.usage
            else None
        ),
    }


def stream_chat(
    user_input: str,
    session: Optional[Session] = None,
    system_prompt: Optional[str] = None,
) -> Iterator[str]:
    """流式对话，逐段产出回复文本。"""
    session = session if session is not None else Session()
    with get_default_client().chat_stream(session, build_messages(user_input, system_prompt)) as stream:
        yield from stream


def ping() -> float:
    """检查 Chipp API 连通性，返回往返耗时（秒）。"""
    return get_default_client().ping()
