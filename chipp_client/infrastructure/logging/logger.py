import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAME = "chipp_client"
LOG_FILE_NAME = "chipp_client.log"


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self.redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(
    log_dir: Optional[str] = None,
    redact_content: bool = False,
    level: int = logging.INFO,
) -> logging.Logger:
    """给 chipp_client logger 挂上 JSON 文件输出。

    库代码只负责打日志，由应用（service、examples）决定是否调用本函数。
    重复调用不会重复添加 handler。
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    log_path = Path(log_dir or "logs")
    log_path.mkdir(parents=True, exist_ok=True)
    target = (log_path / LOG_FILE_NAME).resolve()
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == target:
            return logger
    fh = logging.FileHandler(target, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(JsonFormatter(redact_content=redact_content))
    logger.addHandler(fh)
    return logger


logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())
