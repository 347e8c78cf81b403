"""
Settings for the recommendation and pricing core.

Every section is read from environment variables (``Settings.from_env``).
The deployment environment picks logging defaults, and ``validate_settings``
rejects limits, TTLs and pricing options the services cannot run with.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List


logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Application environment."""
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"
    LOCAL = "local"
    TEST = "test"


class ConfigurationError(Exception):
    """Settings that the services cannot start with."""
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class CacheSettings:
    """Result cache settings."""

    enabled: bool = True
    similar_items_ttl_seconds: int = 3600
    new_arrivals_ttl_seconds: int = 14400
    personalized_ttl_seconds: int = 900

    # 0 disables the entry bound (TTL expiry only)
    max_entries: int = 0

    @classmethod
    def from_env(cls) -> "CacheSettings":
        """Load cache settings from environment variables."""
        return cls(
            enabled=_env_bool("RECOMMENDATION_CACHE_ENABLED", "true"),
            similar_items_ttl_seconds=int(os.environ.get("SIMILAR_ITEMS_TTL_SECONDS", "3600")),
            new_arrivals_ttl_seconds=int(os.environ.get("NEW_ARRIVALS_TTL_SECONDS", "14400")),
            personalized_ttl_seconds=int(os.environ.get("PERSONALIZED_TTL_SECONDS", "900")),
            max_entries=int(os.environ.get("RECOMMENDATION_CACHE_MAX_ENTRIES", "0")),
        )


@dataclass
class RecommendationSettings:
    """Recommendation serving settings."""

    max_similar_items: int = 50
    max_new_arrivals: int = 100
    max_personalized: int = 100

    default_similar_items: int = 5
    default_new_arrivals: int = 10
    default_personalized: int = 10
    default_days_back: int = 30

    # Over-fetch factors applied before scoring and truncation
    similar_items_overfetch: int = 3
    personalized_overfetch: int = 2

    cache_personalized: bool = False

    @classmethod
    def from_env(cls) -> "RecommendationSettings":
        """Load recommendation settings from environment variables."""
        return cls(
            max_similar_items=int(os.environ.get("MAX_SIMILAR_ITEMS", "50")),
            max_new_arrivals=int(os.environ.get("MAX_NEW_ARRIVALS", "100")),
            max_personalized=int(os.environ.get("MAX_PERSONALIZED", "100")),
            default_similar_items=int(os.environ.get("DEFAULT_SIMILAR_ITEMS", "5")),
            default_new_arrivals=int(os.environ.get("DEFAULT_NEW_ARRIVALS", "10")),
            default_personalized=int(os.environ.get("DEFAULT_PERSONALIZED", "10")),
            default_days_back=int(os.environ.get("DEFAULT_DAYS_BACK", "30")),
            similar_items_overfetch=int(os.environ.get("SIMILAR_ITEMS_OVERFETCH", "3")),
            personalized_overfetch=int(os.environ.get("PERSONALIZED_OVERFETCH", "2")),
            cache_personalized=_env_bool("CACHE_PERSONALIZED", "false"),
        )


@dataclass
class ClickTrackingSettings:
    """Recommendation click tracking settings."""

    store_type: str = "memory"  # memory or jsonl
    jsonl_path: str = "data/recommendation_clicks.jsonl"
    raise_on_failure: bool = False
    anonymous_buyer_id: str = "anonymous"

    @classmethod
    def from_env(cls) -> "ClickTrackingSettings":
        """Load click tracking settings from environment variables."""
        return cls(
            store_type=os.environ.get("CLICK_STORE_TYPE", "memory").lower(),
            jsonl_path=os.environ.get("CLICK_STORE_PATH", "data/recommendation_clicks.jsonl"),
            raise_on_failure=_env_bool("CLICK_RAISE_ON_FAILURE", "false"),
            anonymous_buyer_id=os.environ.get("CLICK_ANONYMOUS_BUYER_ID", "anonymous"),
        )


@dataclass
class PricingSettings:
    """Pricing engine settings."""

    default_policy_id: str = "default"
    market_source: str = "HYBRID"  # DISCOGS, EBAY or HYBRID
    market_statistic: str = "median"  # low, median or high

    @classmethod
    def from_env(cls) -> "PricingSettings":
        """Load pricing settings from environment variables."""
        return cls(
            default_policy_id=os.environ.get("PRICING_POLICY_ID", "default"),
            market_source=os.environ.get("PRICING_MARKET_SOURCE", "HYBRID").upper(),
            market_statistic=os.environ.get("PRICING_MARKET_STATISTIC", "median").lower(),
        )


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json or text
    include_timestamp: bool = True
    include_request_id: bool = True
    mask_sensitive_fields: bool = True

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        """Load logging settings from environment variables."""
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            format=os.environ.get("LOG_FORMAT", "json"),
            include_timestamp=_env_bool("LOG_INCLUDE_TIMESTAMP", "true"),
            include_request_id=_env_bool("LOG_INCLUDE_REQUEST_ID", "true"),
            mask_sensitive_fields=_env_bool("LOG_MASK_SENSITIVE", "true"),
        )


@dataclass
class Settings:
    """Main settings class combining all configuration."""

    environment: Environment = Environment.DEV
    service_name: str = "vinylrec"
    version: str = "1.0.0"
    debug: bool = False

    cache: CacheSettings = field(default_factory=CacheSettings)
    recommendations: RecommendationSettings = field(default_factory=RecommendationSettings)
    click_tracking: ClickTrackingSettings = field(default_factory=ClickTrackingSettings)
    pricing: PricingSettings = field(default_factory=PricingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def __post_init__(self):
        """Deployed environments log JSON; local runs log readable text."""
        self._apply_environment_defaults()

    def _apply_environment_defaults(self) -> None:
        if self.environment == Environment.PROD:
            self.debug = False
            self.logging.level = "INFO"
            self.logging.format = "json"
        elif self.environment == Environment.DEV:
            self.debug = True
            self.logging.level = "DEBUG"
        elif self.environment == Environment.LOCAL:
            self.debug = True
            self.logging.level = "DEBUG"
            self.logging.format = "text"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load all settings from environment variables."""
        env_str = os.environ.get("ENVIRONMENT", "dev").lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            logger.warning(f"Unknown ENVIRONMENT {env_str!r}, falling back to dev")
            environment = Environment.DEV

        return cls(
            environment=environment,
            service_name=os.environ.get("SERVICE_NAME", "vinylrec"),
            version=os.environ.get("SERVICE_VERSION", "1.0.0"),
            debug=_env_bool("DEBUG", "false"),
            cache=CacheSettings.from_env(),
            recommendations=RecommendationSettings.from_env(),
            click_tracking=ClickTrackingSettings.from_env(),
            pricing=PricingSettings.from_env(),
            logging=LoggingSettings.from_env(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to a plain dictionary."""
        def _convert(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            if hasattr(obj, "__dataclass_fields__"):
                return {f: _convert(getattr(obj, f)) for f in obj.__dataclass_fields__}
            return obj

        return _convert(self)

    def validate(self) -> List[str]:
        """Validate settings and return list of errors."""
        errors = []

        recs = self.recommendations
        for name in ("max_similar_items", "max_new_arrivals", "max_personalized"):
            if getattr(recs, name) < 1:
                errors.append(f"{name.upper()} must be >= 1")
        if recs.default_similar_items > recs.max_similar_items:
            errors.append("DEFAULT_SIMILAR_ITEMS must be <= MAX_SIMILAR_ITEMS")
        if recs.default_new_arrivals > recs.max_new_arrivals:
            errors.append("DEFAULT_NEW_ARRIVALS must be <= MAX_NEW_ARRIVALS")
        if recs.default_personalized > recs.max_personalized:
            errors.append("DEFAULT_PERSONALIZED must be <= MAX_PERSONALIZED")
        if recs.similar_items_overfetch < 1 or recs.personalized_overfetch < 1:
            errors.append("Over-fetch factors must be >= 1")
        if recs.default_days_back < 0:
            errors.append("DEFAULT_DAYS_BACK must be >= 0")

        cache = self.cache
        if min(
            cache.similar_items_ttl_seconds,
            cache.new_arrivals_ttl_seconds,
            cache.personalized_ttl_seconds,
        ) <= 0:
            errors.append("Cache TTLs must be positive")
        if cache.max_entries < 0:
            errors.append("RECOMMENDATION_CACHE_MAX_ENTRIES must be >= 0")

        if self.click_tracking.store_type not in ("memory", "jsonl"):
            errors.append("CLICK_STORE_TYPE must be 'memory' or 'jsonl'")

        if self.pricing.market_source not in ("DISCOGS", "EBAY", "HYBRID"):
            errors.append("PRICING_MARKET_SOURCE must be DISCOGS, EBAY or HYBRID")
        if self.pricing.market_statistic not in ("low", "median", "high"):
            errors.append("PRICING_MARKET_STATISTIC must be low, median or high")

        return errors


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, read from the environment once.

    Returns:
        The shared Settings instance. Call ``get_settings.cache_clear()`` to reload.
    """
    return Settings.from_env()


def validate_settings(raise_on_error: bool = True) -> List[str]:
    """Check the process settings before serving traffic.

    Args:
        raise_on_error: If True, raise ConfigurationError on validation failure.

    Returns:
        List of validation error messages.

    Raises:
        ConfigurationError: If validation fails and raise_on_error is True.
    """
    settings = get_settings()
    errors = settings.validate()

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        logger.error(error_msg)

        if raise_on_error:
            raise ConfigurationError(error_msg)

    return errors
