"""Settings package — re-exports the cached settings accessor."""

from upi_attest.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
