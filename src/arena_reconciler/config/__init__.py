"""Configuration package for Arena Reconciler.

Re-exports the settings symbols so that callers can write::

    from arena_reconciler.config import get_settings
"""

from __future__ import annotations

from arena_reconciler.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
