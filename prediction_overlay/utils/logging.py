"""
Category-aware logging for the prediction overlay

Every module logs under one of four categories:
    eventsub    - WebSocket transport, session lifecycle, frame validation
    prediction  - prediction state changes and the reset timer
    registrar   - Helix subscription requests
    system      - app startup/shutdown and anything uncategorized

LOG_CATEGORIES (comma separated) limits output to the listed categories, and
each record is tagged with its category so the formatter can print it:

    2024-05-01 20:00:00,000 [eventsub] prediction_overlay.ingest.session INFO - ...

Usage:
    from prediction_overlay.utils.logging import get_logger

    logger = get_logger(__name__, category="prediction")
    logger.info("Prediction locked")
"""

import logging
from typing import FrozenSet, Optional

from prediction_overlay.config import settings

CATEGORIES = frozenset({"eventsub", "prediction", "registrar", "system"})
DEFAULT_CATEGORY = "system"

LOG_FORMAT = "%(asctime)s [%(category)s] %(name)s %(levelname)s - %(message)s"

# WARN is accepted as an alias, as in most log tooling
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def parse_categories(value: Optional[str]) -> Optional[FrozenSet[str]]:
    """
    Parse a LOG_CATEGORIES value.

    Returns:
        The allowed categories, or None when every category should be shown
    """
    if not value or not value.strip():
        return None

    requested = {part.strip().lower() for part in value.split(",") if part.strip()}
    unknown = requested - CATEGORIES
    if unknown:
        logging.getLogger(__name__).warning(
            f"Ignoring unknown log categories: {', '.join(sorted(unknown))}"
        )
    return frozenset(requested & CATEGORIES)


_allowed_categories = parse_categories(settings.log_categories)


class CategoryFilter(logging.Filter):
    """Tags records with a category and drops those outside LOG_CATEGORIES."""

    def __init__(self, category: Optional[str] = None):
        super().__init__()
        self.category = category.lower() if category else DEFAULT_CATEGORY

    def filter(self, record: logging.LogRecord) -> bool:
        record.category = self.category
        if _allowed_categories is None:
            return True
        return self.category in _allowed_categories


class CategoryFormatter(logging.Formatter):
    """Formatter that tolerates records from loggers without a CategoryFilter (uvicorn, httpx)."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "category"):
            record.category = DEFAULT_CATEGORY
        return super().format(record)


def resolve_level(name: Optional[str]) -> int:
    return LOG_LEVELS.get((name or "").upper(), logging.INFO)


def configure_logging(
    handler: Optional[logging.Handler] = None, logger: Optional[logging.Logger] = None
) -> None:
    """
    Send logging through a CategoryFormatter handler (stderr by default).

    Targets the root logger unless `logger` is given. Like logging.basicConfig,
    does nothing if the target already has handlers, so a host such as pytest
    or uvicorn keeps its own setup.
    """
    target = logger or logging.getLogger()
    if target.handlers:
        return
    handler = handler or logging.StreamHandler()
    handler.setFormatter(CategoryFormatter(LOG_FORMAT))
    target.addHandler(handler)
    target.setLevel(resolve_level(settings.log_level))


def get_logger(name: str, category: Optional[str] = None) -> logging.Logger:
    """
    Get a logger tagged with `category` (defaults to 'system').

    Calling this again for the same name replaces the category instead of
    stacking filters.
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(settings.log_level))

    logger.filters = [f for f in logger.filters if not isinstance(f, CategoryFilter)]
    logger.addFilter(CategoryFilter(category))

    return logger
