"""Runtime wiring for the PCM cache application layer."""

from .metrics import Metrics
from .runtime import ApplicationRuntime

__all__ = [
    "ApplicationRuntime",
    "Metrics",
]
