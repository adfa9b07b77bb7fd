"""Configuration module for docwatch."""

from .settings import (
    Config,
    WatchConfig,
    RateLimitConfig,
    SplitConfig,
    HealthConfig,
    LogSettings,
    ServiceConfig,
)

__all__ = [
    "Config",
    "WatchConfig",
    "RateLimitConfig",
    "SplitConfig",
    "HealthConfig",
    "LogSettings",
    "ServiceConfig",
]
