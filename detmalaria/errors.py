"""Custom exceptions for the :mod:`detmalaria` package."""
from __future__ import annotations

from typing import Iterable


class DetMalariaError(Exception):
    """Base exception for malaria model errors."""


class ConfigurationError(DetMalariaError, ValueError):
    """Invalid configuration or parameter input."""


class NameCollisionError(ConfigurationError):
    """Extra parameters share names with standard parameters."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(sorted(names))
        super().__init__(
            "Extra parameters share names with default parameter names: "
            + ", ".join(self.names)
        )


class UnknownModelError(ConfigurationError, KeyError):
    """Requested model variant is not one of the compiled variants."""

    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"Unknown model '{name}'")

    def __str__(self) -> str:
        return str(self.args[0])


class EquilibriumSolveError(DetMalariaError, ValueError):
    """Inputs do not admit a consistent equilibrium solution."""


class NumericalError(DetMalariaError, RuntimeError):
    """Integration failures and other numerical errors."""


class IntegrationError(NumericalError):
    """The ODE solver failed or was given an invalid time grid."""


class ContinuationError(IntegrationError):
    """A continuation was requested from an unusable solver state."""


class HorizonExceededError(NumericalError):
    """The stabilisation loop did not converge before ``max_t``."""

    def __init__(self, t_end: float, max_t: float) -> None:
        self.t_end = t_end
        self.max_t = max_t
        super().__init__(f"exiting at t == {t_end:g} (max_t = {max_t:g})")


__all__ = [
    "DetMalariaError",
    "ConfigurationError",
    "NameCollisionError",
    "UnknownModelError",
    "EquilibriumSolveError",
    "NumericalError",
    "IntegrationError",
    "ContinuationError",
    "HorizonExceededError",
]
