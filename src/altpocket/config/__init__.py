"""Configuration package for altpocket.

Re-exports the settings symbols so that callers can write::

    from altpocket.config import get_settings
"""

from __future__ import annotations

from altpocket.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
