"""Structured warning classes for the :mod:`detmalaria` package."""
from __future__ import annotations


class DetMalariaWarning(UserWarning):
    """Base warning class for detmalaria."""


class NumericalWarning(DetMalariaWarning):
    """Numerical stability or accuracy warnings."""


class ConfigurationWarning(DetMalariaWarning):
    """Configuration values that were accepted but look suspicious."""


__all__ = [
    "DetMalariaWarning",
    "NumericalWarning",
    "ConfigurationWarning",
]
