"""
Core Module - Configuration and dependency injection.

Dependency getters live in depquery.core.dependencies and are imported
from there directly.
"""

from depquery.core.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
