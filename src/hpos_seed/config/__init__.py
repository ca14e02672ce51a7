"""
Configuration management for the HPOS Seed SDK

Profiles select the default derivation index and the password-hash cost;
the rest of the configuration covers concurrency, logging and identifiers.
"""

from .profiles import (
    SeedConfig,
    SeedConfigManager,
    ProfileConfig,
    PerformanceConfig,
    LoggingConfig,
    IdentityConfig,
    DefaultConfig,
    PwHashLimits,
    DEFAULT_HOST_SUFFIX,
    MAX_DERIVATION_PATH,
    load_config_from_json,
    load_config_from_file,
    load_default_config,
)

__all__ = [
    'SeedConfig',
    'SeedConfigManager',
    'ProfileConfig',
    'PerformanceConfig',
    'LoggingConfig',
    'IdentityConfig',
    'DefaultConfig',
    'PwHashLimits',
    'DEFAULT_HOST_SUFFIX',
    'MAX_DERIVATION_PATH',
    'load_config_from_json',
    'load_config_from_file',
    'load_default_config',
]
