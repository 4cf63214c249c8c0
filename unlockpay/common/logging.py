"""JSON logs carrying the order/user a request is working on.

Gateway secrets must never reach a log line, so every handler also scrubs the
configured secret values from rendered messages.
"""

import logging
import sys
from contextvars import ContextVar
from uuid import uuid4

from pythonjsonlogger.json import JsonFormatter

from unlockpay.common.config import settings

REDACTED = "<redacted>"

trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="")


def bind_request(trace_id: str | None, order_id: str = "", user_id: str = "") -> str:
    """Set the correlation fields for the current request; returns the trace id."""

    trace_id = trace_id or str(uuid4())
    trace_id_ctx.set(trace_id)
    order_id_ctx.set(order_id)
    user_id_ctx.set(user_id)
    return trace_id


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.order_id = order_id_ctx.get()
        record.user_id = user_id_ctx.get()
        return True


class SecretScrubber(logging.Filter):
    """Replace known secret values in the rendered message."""

    def __init__(self, secrets: list[str]) -> None:
        super().__init__()
        self.secrets = [secret for secret in secrets if secret]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        scrubbed = message
        for secret in self.secrets:
            scrubbed = scrubbed.replace(secret, REDACTED)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def configure_logging() -> None:
    """Install the JSON stdout handler on the root logger, once per process."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.addFilter(
        SecretScrubber([settings.gateway_key_secret, settings.gateway_webhook_secret, settings.api_key])
    )
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(order_id)s %(user_id)s %(message)s",
            rename_fields={"levelname": "level"},
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)


logger = logging.getLogger("unlockpay")
