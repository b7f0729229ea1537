"""Test helper utilities for notifier tests."""

from .fakes import (
    InMemoryDeliveryLogger,
    InMemoryPreferencesRepository,
    InMemorySettingsRepository,
    InMemoryTemplateRepository,
    MutableClock,
)

__all__ = [
    "InMemoryDeliveryLogger",
    "InMemoryPreferencesRepository",
    "InMemorySettingsRepository",
    "InMemoryTemplateRepository",
    "MutableClock",
]
