import logging
import json
from datetime import datetime, timezone
import sys

from datamind.config import settings

# Record attributes copied into JSON lines when passed through ``extra=``
CONTEXT_FIELDS = ("session_id", "user_id", "agent_type", "tool", "connection_id")

NOISY_LIBRARIES = ("snowflake.connector", "botocore", "urllib3", "httpx", "openai")

DEBUG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

class JSONFormatter(logging.Formatter):
    """One JSON object per line, with chat session fields when present"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)

def _log_level() -> int:
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

def setup_logger(name: str = None) -> logging.Logger:
    """Logger writing to stdout; plain text at DEBUG, JSON lines otherwise"""
    logger = logging.getLogger(name or __name__)

    if not logger.handlers:
        level = _log_level()
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        if level == logging.DEBUG:
            handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        else:
            handler.setFormatter(JSONFormatter())

        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False

    return logger

def quiet_library_loggers(level: int = logging.WARNING):
    """The Snowflake driver logs every statement and network hop at INFO"""
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(level)
