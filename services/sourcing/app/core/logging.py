import logging
import re
from typing import Any, Dict

import structlog

_SECRET_KEYS = {"authorization", "jwt_secret_key", "slack_webhook_url"}
_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-_.=:+/]+")


def _configure_stdlib_logging() -> None:
    logging.basicConfig(
        format="%(message)s",
        level=logging.INFO,
    )


def _redact_event_logger(_logger, _name, event_dict: Dict[str, Any]):  # type: ignore[override]
    for k in list(event_dict.keys()):
        if str(k).lower() in _SECRET_KEYS:
            event_dict[k] = "[REDACTED]"
    for k, v in list(event_dict.items()):
        if isinstance(v, str) and "Bearer " in v:
            event_dict[k] = _BEARER_RE.sub("Bearer [REDACTED]", v)
        if isinstance(v, str) and "hooks.slack.com" in v:
            event_dict[k] = "[REDACTED]"
    return event_dict


def configure_structlog() -> None:
    _configure_stdlib_logging()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _redact_event_logger,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)
