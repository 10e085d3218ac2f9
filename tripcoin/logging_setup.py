import logging
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger import jsonlogger

from tripcoin.config import settings

# trace id contextvar, set per request by the http middleware
TRACE_ID_CTX: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

# libraries whose INFO output drowns the booking and ledger events
NOISY_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "httpx")


class ContextFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = TRACE_ID_CTX.get(None)
        record.app = settings.APP_NAME
        return True


def build_handler(stream=None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    fmt = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(app)s %(trace_id)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler.setFormatter(fmt)
    handler.addFilter(ContextFilter())
    return handler


def setup_logging(level: Optional[str] = None, stream=None):
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())
    root.handlers = [build_handler(stream)]
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
