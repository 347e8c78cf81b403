"""
Configuration module for the vinyl recommendation and pricing core.

This module provides centralized configuration management with:
- Environment variable loading
- Type-safe configuration dataclasses
- Environment-specific defaults (dev/staging/prod)
"""

from .settings import (
    Settings,
    Environment,
    CacheSettings,
    RecommendationSettings,
    ClickTrackingSettings,
    PricingSettings,
    LoggingSettings,
    ConfigurationError,
    get_settings,
    validate_settings,
)

__all__ = [
    "Settings",
    "Environment",
    "CacheSettings",
    "RecommendationSettings",
    "ClickTrackingSettings",
    "PricingSettings",
    "LoggingSettings",
    "ConfigurationError",
    "get_settings",
    "validate_settings",
]
