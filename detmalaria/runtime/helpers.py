"""Shared helpers for run orchestration."""
from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Optional


def log_stage(logger_obj: Optional[logging.Logger], label: str, *, extra: Mapping[str, Any] | None = None) -> None:
    """Lightweight stage logger wrapper."""

    if logger_obj is None:
        return
    if extra:
        logger_obj.info("stage=%s %s", label, dict(extra))
    else:
        logger_obj.info("stage=%s", label)


def float_or_nan(value: Any) -> float:
    """Return float(value) or NaN if conversion fails or is non-finite."""

    try:
        val = float(value)
    except (TypeError, ValueError):
        return math.nan
    return val if math.isfinite(val) else math.nan


def format_exception_short(exc: BaseException) -> str:
    """Return a concise exception string."""

    name = exc.__class__.__name__
    return f"{name}: {exc}"


__all__ = [
    "float_or_nan",
    "format_exception_short",
    "log_stage",
]
