"""Output helpers."""

from . import writer

__all__ = ["writer"]
