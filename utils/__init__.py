# utils/__init__.py
"""General utility functions for the visual bible extraction engine."""

from __future__ import annotations

from .ingestion_utils import split_text_into_chunks
from .logging import setup_logging
from .text_processing import (
    clean_text,
    contains_any,
    entity_key,
    normalize_key,
    truncate_text,
    unique_preserving_order,
)

__all__ = [
    "setup_logging",
    "split_text_into_chunks",
    "clean_text",
    "contains_any",
    "entity_key",
    "normalize_key",
    "truncate_text",
    "unique_preserving_order",
]
