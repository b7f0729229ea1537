"""Notification delivery core for the grooming business platform."""

__version__ = "0.1.0"
