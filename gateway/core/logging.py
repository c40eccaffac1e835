"""Structured logging for the gateway.

structlog renders every entry, including uvicorn and SQLAlchemy records bridged
from the stdlib, as JSON (or console text in debug). Each entry carries the
request's correlation id. Webhook signatures and secrets are masked before
rendering, wherever they appear in the event dict.
"""

import logging
import logging.config
from collections.abc import Mapping

import structlog
from asgi_correlation_id.context import correlation_id

from gateway.core.config import Settings

REDACTED = "[redacted]"

SENSITIVE_KEYS = frozenset(
    {
        "svix-signature",
        "stripe-signature",
        "signature",
        "signatures",
        "expected",
        "candidates",
        "secret",
        "webhook_secret",
        "stripe_secret_key",
        "authorization",
    }
)


_NORMALIZED_KEYS = frozenset(key.replace("_", "-") for key in SENSITIVE_KEYS)


def _is_sensitive(key) -> bool:
    return isinstance(key, str) and key.lower().replace("_", "-") in _NORMALIZED_KEYS


def _scrub(value):
    if isinstance(value, Mapping):
        return {k: REDACTED if _is_sensitive(k) else _scrub(v) for k, v in value.items()}
    return value


def redact_signatures(logger, method, event_dict):
    """Mask signature and secret values, including inside nested mappings such as headers."""
    for key in list(event_dict):
        if key == "event":
            continue
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _scrub(event_dict[key])
    return event_dict


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        redact_signatures,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Route structlog and stdlib logging through one renderer.

    Call before importing the rest of the gateway: structlog caches the
    processor chain on first use.
    """
    shared = _shared_processors()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "gateway": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": shared,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "gateway",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {
            # Per-request access lines duplicate the webhook_* events
            "uvicorn.access": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: Settings) -> None:
    """Debug mode logs at DEBUG in console format; otherwise INFO as JSON."""
    configure_structlog(
        log_level="DEBUG" if settings.debug else "INFO",
        json_logs=not settings.debug,
    )
