"""Core module for configuration and logging."""

from action_encode.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
