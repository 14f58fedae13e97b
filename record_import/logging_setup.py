"""Logging configuration for the record importer."""

from __future__ import annotations

import logging
import os


def _resolve_level(level_name: str) -> int:
    return getattr(logging, level_name.upper(), logging.INFO)


def configure_logging(level_name: str | None = None) -> None:
    """Configure root logging from LOG_LEVEL with a concise format."""
    level = _resolve_level(level_name or os.getenv("LOG_LEVEL", "INFO"))
    formatter = _build_formatter()
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
        return

    logging.basicConfig(level=level)
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)


def _build_formatter() -> logging.Formatter:
    pattern = "%(asctime)s %(levelname)s %(name)s run_id=%(run_id)s kind=%(kind)s %(message)s"
    return logging.Formatter(pattern, defaults={"run_id": "-", "kind": "-"})
