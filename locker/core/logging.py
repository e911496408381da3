import sys
import json
import logging
from datetime import timezone
from loguru import logger as _logger

from locker.core.config import settings

# stdlib loggers whose records are routed into loguru
_INTERCEPTED = ("uvicorn", "uvicorn.error", "uvicorn.access", "asyncio", "redis")


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _render(record) -> str:
    payload = {
        "time": record["time"].astimezone(timezone.utc).isoformat(),
        "level": record["level"].name,
        "service": settings.APP_NAME,
        "message": record["message"],
        "logger": record["extra"].get("logger", record["name"]),
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
        "extra": {k: v for k, v in record["extra"].items() if k != "logger"},
    }
    if record.get("exception"):
        payload["exception"] = str(record["exception"])
    return json.dumps(payload, ensure_ascii=False, default=str)


def _json_sink(message):
    print(_render(message.record), file=sys.stdout)


def setup_logging(level: str | None = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()

    _logger.remove()
    _logger.add(
        _json_sink,
        level=level,
        backtrace=False,
        diagnose=False,
        enqueue=True,
    )

    for name in _INTERCEPTED:
        logging_logger = logging.getLogger(name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False
        logging_logger.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers = [InterceptHandler()]
    root_logger.setLevel(level)


def get_logger(name: str):
    return _logger.bind(logger=name)
