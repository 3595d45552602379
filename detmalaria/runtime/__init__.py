"""Runtime helpers used by the run orchestrator."""

from .helpers import float_or_nan, format_exception_short, log_stage

__all__ = [
    "float_or_nan",
    "format_exception_short",
    "log_stage",
]
