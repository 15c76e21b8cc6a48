from __future__ import annotations

import logging
import logging.config
from collections.abc import Mapping, MutableMapping
from threading import Lock
from typing import Any

import structlog
import structlog.contextvars
import structlog.stdlib
from structlog.typing import Processor

from railpay.core.config import Settings
from railpay.core.constants import REQUEST_ID_CTX_KEY, SERVICE_NAME

_LOGGING_INITIALISED = False
_LOGGING_LOCK = Lock()
_BASE_CONTEXT: dict[str, Any] = {"service": SERVICE_NAME}

REDACTED = "***"
SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "authorization",
        "private_key",
        "secret",
        "signature",
        "token",
        "webhook_secret",
        "x-cc-api-key",
        "x-cc-webhook-signature",
    }
)

# Capped at WARNING regardless of the configured level.
_QUIET_LOGGERS = ("httpx", "httpcore")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, str):
        return logging.INFO
    return int(resolved)


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else _mask(item)
            for key, item in value.items()
        }
    return value


def redact_credentials(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace credential-bearing fields, including nested ones, before rendering."""

    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_credentials,
    ]


def configure_logging(settings: Settings) -> None:
    """Configure structlog + stdlib logging exactly once per process."""

    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED:
        return

    with _LOGGING_LOCK:
        if _LOGGING_INITIALISED:
            return

        level = _resolve_level(settings.log_level)

        structlog.configure(
            processors=[
                *_shared_processors(),
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        quiet = {
            name: {
                "handlers": ["default"],
                "level": max(level, logging.WARNING),
                "propagate": False,
            }
            for name in _QUIET_LOGGERS
        }
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "structlog": {
                        "()": structlog.stdlib.ProcessorFormatter,
                        "processors": [
                            *_shared_processors(),
                            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                            structlog.processors.JSONRenderer(),
                        ],
                    }
                },
                "handlers": {
                    "default": {
                        "class": "logging.StreamHandler",
                        "formatter": "structlog",
                        "level": level,
                    }
                },
                "loggers": {
                    "": {"handlers": ["default"], "level": level, "propagate": True},
                    "uvicorn.access": {
                        "handlers": ["default"],
                        "level": level,
                        "propagate": False,
                    },
                    **quiet,
                },
            }
        )

        _BASE_CONTEXT["environment"] = settings.environment.value
        structlog.contextvars.bind_contextvars(**_BASE_CONTEXT)
        _LOGGING_INITIALISED = True


def bind_request_context(request_id: str, **kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_CTX_KEY: request_id, **kwargs})


def clear_request_context() -> None:
    """Drop per-request keys while keeping the service identity bound."""

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**_BASE_CONTEXT)
