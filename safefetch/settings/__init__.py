"""Client settings loading."""

from safefetch.settings.app import SafeFetchSettings, get_settings


__all__ = ["SafeFetchSettings", "get_settings"]
