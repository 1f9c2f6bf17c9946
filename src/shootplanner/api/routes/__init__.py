"""Route group exports."""

from . import bookings, geocoding, health, scheduling

__all__ = ["health", "geocoding", "scheduling", "bookings"]
