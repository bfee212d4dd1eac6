"""Structured logging for KeyGate.

All modules log through ``get_logger(__name__)`` with keyword context:

    logger.info("Credential issued", identity_id=..., credential=mask_credential(value))

Credential values must never be logged in full. Call sites pass them through
mask_credential(); the redact_credential_fields processor is the backstop for
the well-known field names.

Per-request context (request_id) is bound with bind_request_context() by the
HTTP middleware in keygate.main and merged into every entry logged while the
request is handled.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from keygate.constants import CREDENTIAL_PREFIX

# Fields whose values are credentials or secrets.
SENSITIVE_FIELDS: frozenset[str] = frozenset({"credential", "apikey", "master_key", "value"})


def mask_credential(value: Optional[str]) -> str:
    """Return a log-safe form of a credential value: 'Apikey-...abcd'."""
    if not value:
        return "<none>"
    if len(value) <= 8:
        return "..."
    prefix = CREDENTIAL_PREFIX if value.startswith(CREDENTIAL_PREFIX) else ""
    return f"{prefix}...{value[-4:]}"


def _is_masked(value: str) -> bool:
    return value in ("<none>", "...") or "..." in value[: len(CREDENTIAL_PREFIX) + 3]


def redact_credential_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask any SENSITIVE_FIELDS value that was not masked at the call site."""
    for key in SENSITIVE_FIELDS.intersection(event_dict):
        raw = event_dict[key]
        if isinstance(raw, str) and not _is_masked(raw):
            event_dict[key] = mask_credential(raw)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_credential_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "keygate") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, **extra: Any) -> None:
    """Bind request_id (plus any extra fields) for the current task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **extra)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


# Defaults until keygate.main reconfigures from the environment.
configure_logging()
