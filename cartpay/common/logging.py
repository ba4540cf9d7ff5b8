"""Structured JSON logging with request/event context fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from cartpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
token_ctx: ContextVar[str] = ContextVar("token", default="")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        record.trace_id = trace_id_ctx.get()
        record.token = token_ctx.get()
        record.user_id = user_id_ctx.get()
        return True


def configure_logging(service_name: str | None = None) -> None:
    """Configure root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter(service_name or settings.service_name)
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(token)s %(user_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("cartpay")
