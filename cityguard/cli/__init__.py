"""
Command Line Interface for CityGuard.

Exposed as the ``cityguard`` console script.
"""
from .commands import app

__all__ = ["app"]
