"""Versioned API routers."""

from . import bookings, prometheus

__all__ = ["bookings", "prometheus"]
