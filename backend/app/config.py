"""Settings accessor for the web layer; the settings model lives in core.config."""

from core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
