"""Decoded PCM cache and session registry server."""

__version__ = "0.1.0"

__all__ = ["__version__"]
