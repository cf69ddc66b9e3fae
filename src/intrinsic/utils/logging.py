"""Logging helpers for CLI and store diagnostics."""
from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

_LOGGER_CONFIGURED = False

# Engine and pool loggers log every statement at INFO/DEBUG.
_SQL_LOGGER = "sqlalchemy"


def configure_logging(debug: bool = False, *, level: Optional[int] = None, sql_echo: bool = False) -> None:
    """Route process-wide logging through Rich.

    SQLAlchemy stays at WARNING unless ``sql_echo`` is set, so ``--debug``
    shows store activity without every SQL statement. With ``sql_echo`` the
    engine's own ``echo`` handler does the printing.
    """
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED:
        return

    resolved_level = level or (logging.DEBUG if debug else logging.INFO)
    logging.basicConfig(
        level=resolved_level,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(show_path=debug, rich_tracebacks=debug)],
    )
    if not sql_echo:
        logging.getLogger(_SQL_LOGGER).setLevel(logging.WARNING)
    _LOGGER_CONFIGURED = True
