"""
Structured logging for the paper-trading engine.

Events are snake_case names with key/value context, rendered as one JSON
object per line. Money travels through the engine as Decimal; it is logged
as its exact decimal string.
Service calls bind ``account_id`` for the duration of one operation.
"""
from __future__ import annotations

import logging
import os
import sys
from decimal import Decimal
from typing import Any, ContextManager, Optional

import structlog

from papertrade.utils.config import get_settings


def render_money(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure stdlib handlers and structlog. Arguments override settings."""
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    path = settings.log_file if log_file is None else log_file

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if path:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a"))
    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            render_money,
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def account_context(account_id: str) -> ContextManager[Any]:
    """Tag every event logged inside the block with ``account_id``."""
    return structlog.contextvars.bound_contextvars(account_id=account_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
