"""Validated, cached configuration.

Quick start::

    from httpbridge.core.config import get_settings

    settings = get_settings()
    print(settings.client_url, settings.response_format)
"""

from .settings import BridgeSettings, clear_settings_cache, get_settings

__all__ = [
    "BridgeSettings",
    "get_settings",
    "clear_settings_cache",
]
