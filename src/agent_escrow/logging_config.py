"""structlog setup shared by the listener, the MCP server and the simulation.

Console output while developing, one JSON object per line elsewhere. Entries
emitted during a webhook request carry its request_id; entries emitted while
an escrow is being worked on carry transaction_id and escrow_id.

Usage:
    from agent_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=True)
    logger = get_logger(__name__)
    logger.info("escrow.funded", escrow_id="0xabc...", tx_hash="0x123...")
"""

from __future__ import annotations

import logging
import sys

import structlog

_SENSITIVE_KEYS = frozenset({"private_key", "api_key", "secret", "signing_secret", "signature"})

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "web3", "urllib3")


def redact_sensitive(
    _logger: object, _method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Mask credentials passed as log fields, keeping the last 4 characters."""
    for key in _SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = f"***{str(value)[-4:]}"
    return event_dict


def bind_escrow_context(transaction_id: str, escrow_id: str) -> None:
    structlog.contextvars.bind_contextvars(transaction_id=transaction_id, escrow_id=escrow_id)


def _processors(json_logs: bool) -> tuple[list[structlog.types.Processor], structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        chain.append(structlog.processors.format_exc_info)
        return chain, structlog.processors.JSONRenderer()
    return chain, structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        log_level: Level name for the root logger; unknown names mean DEBUG.
        json_logs: JSON lines when True, colored console output otherwise.
    """
    processors, renderer = _processors(json_logs)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(log_level.upper(), logging.DEBUG))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, named after the calling module when name is None."""
    return structlog.get_logger(name)
