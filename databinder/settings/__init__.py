"""Environment settings (``DATABINDER_*`` variables)."""

from databinder.settings.app import AppSettings, get_settings


__all__ = ["AppSettings", "get_settings"]
