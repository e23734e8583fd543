import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from devops_agent.config.settings import settings

LOGGER_NAME = "devops_agent"


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self.redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
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
    log_dir: Optional[Union[str, Path]] = None,
    level: Optional[str] = None,
    redact_content: Optional[bool] = None,
) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level or settings.log_level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_path / "agent.log", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    redact = settings.log_redact_content if redact_content is None else redact_content
    fh.setFormatter(JsonFormatter(redact_content=redact))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
