"""Deterministic, age-structured malaria transmission model runs."""
from . import constants
from .errors import DetMalariaError
from .model import ModelVariant, select_variant
from .orchestrator import run_model, run_model_until_stable, stabilise
from .parameters import build_parameters

__version__ = "0.1.0"

__all__ = [
    "constants",
    "DetMalariaError",
    "ModelVariant",
    "build_parameters",
    "run_model",
    "run_model_until_stable",
    "select_variant",
    "stabilise",
]
