"""
Configuration profiles for the HPOS Seed SDK

A configuration names one or more profiles. Each profile fixes the default
derivation index for device seeds and the password-hash cost used when
locking bundles. Configuration objects are passed explicitly into the
derivation and locking code; nothing here is process-wide mutable state.
"""

import os
import json
from enum import Enum
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass, field, replace
from pathlib import Path

import nacl.pwhash

from ..exceptions import ConfigError

CONFIG_FORMAT_VERSION = "1.0"
CONFIG_ENV_VAR = "HPOS_SEED_CONFIG"
PROFILE_ENV_VAR = "HPOS_SEED_PROFILE"
DEFAULT_CONFIG_FILENAME = "hpos-seed-config.json"
DEFAULT_HOST_SUFFIX = "holohost.net"
MAX_DERIVATION_PATH = 2 ** 32 - 1

# Default device derivation index per configuration generation
DEFAULT_DERIVATION_PATH_V1 = 0
DEFAULT_DERIVATION_PATH_V2 = 3
DEFAULT_DERIVATION_PATH_V3 = 1


class PwHashLimits(Enum):
    """Argon2id cost presets, mirroring libsodium's opslimit/memlimit pairs"""
    MINIMUM = 'minimum'
    INTERACTIVE = 'interactive'
    MODERATE = 'moderate'
    SENSITIVE = 'sensitive'

    @property
    def ops_limit(self) -> int:
        return {
            PwHashLimits.MINIMUM: nacl.pwhash.argon2id.OPSLIMIT_MIN,
            PwHashLimits.INTERACTIVE: nacl.pwhash.argon2id.OPSLIMIT_INTERACTIVE,
            PwHashLimits.MODERATE: nacl.pwhash.argon2id.OPSLIMIT_MODERATE,
            PwHashLimits.SENSITIVE: nacl.pwhash.argon2id.OPSLIMIT_SENSITIVE,
        }[self]

    @property
    def mem_limit(self) -> int:
        return {
            PwHashLimits.MINIMUM: nacl.pwhash.argon2id.MEMLIMIT_MIN,
            PwHashLimits.INTERACTIVE: nacl.pwhash.argon2id.MEMLIMIT_INTERACTIVE,
            PwHashLimits.MODERATE: nacl.pwhash.argon2id.MEMLIMIT_MODERATE,
            PwHashLimits.SENSITIVE: nacl.pwhash.argon2id.MEMLIMIT_SENSITIVE,
        }[self]


@dataclass
class ProfileConfig:
    """Per-profile derivation and locking defaults"""
    default_derivation_path: int
    pwhash_limits: PwHashLimits = PwHashLimits.MODERATE
    description: str = ""


@dataclass
class PerformanceConfig:
    """Performance configuration"""
    max_concurrent_pwhash: int = 2


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "WARNING"
    structured: bool = False


@dataclass
class IdentityConfig:
    """Public identifier configuration"""
    host_suffix: str = DEFAULT_HOST_SUFFIX


@dataclass
class DefaultConfig:
    """Default configuration values"""
    profile: str = "v3"


def _builtin_profiles() -> Dict[str, ProfileConfig]:
    return {
        'v1': ProfileConfig(DEFAULT_DERIVATION_PATH_V1, description="First generation device config"),
        'v2': ProfileConfig(DEFAULT_DERIVATION_PATH_V2, description="Second generation device config"),
        'v3': ProfileConfig(DEFAULT_DERIVATION_PATH_V3, description="Current device config"),
    }


@dataclass
class SeedConfig:
    """Top-level configuration structure"""
    config_format_version: str = CONFIG_FORMAT_VERSION
    profiles: Dict[str, ProfileConfig] = field(default_factory=_builtin_profiles)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    defaults: DefaultConfig = field(default_factory=DefaultConfig)


class SeedConfigManager:
    """Configuration manager with a selected profile"""

    def __init__(self, config: Optional[SeedConfig] = None, profile: Optional[str] = None):
        self.config = config or SeedConfig()
        self.current_profile = profile or self.config.defaults.profile
        self._validate()

    @classmethod
    def from_json(cls, json_string: str, profile: Optional[str] = None) -> 'SeedConfigManager':
        """Load configuration from JSON string"""
        try:
            data = json.loads(json_string)
            config = cls._parse_config_dict(data)
            return cls(config, profile)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse configuration JSON: {e}", "PARSE_ERROR") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration format: {e}", "INVALID_FORMAT") from e

    @classmethod
    def from_file(cls, file_path: Union[str, Path], profile: Optional[str] = None) -> 'SeedConfigManager':
        """Load configuration from file"""
        try:
            path = Path(file_path)
            with open(path, 'r', encoding='utf-8') as f:
                json_string = f.read()
            return cls.from_json(json_string, profile)
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}", "FILE_ERROR") from e

    @classmethod
    def load_default(cls, profile: Optional[str] = None) -> 'SeedConfigManager':
        """
        Load the default configuration.

        ``HPOS_SEED_CONFIG`` names an explicit file; otherwise the usual
        locations are searched and the built-in profiles are used when none
        exists. ``HPOS_SEED_PROFILE`` selects the profile unless one is given.
        """
        profile = profile or os.getenv(PROFILE_ENV_VAR) or None

        explicit = os.getenv(CONFIG_ENV_VAR)
        if explicit:
            return cls.from_file(explicit, profile)

        default_paths = [
            Path(DEFAULT_CONFIG_FILENAME),
            Path("config") / DEFAULT_CONFIG_FILENAME,
            Path.home() / ".config" / "hpos-seed" / DEFAULT_CONFIG_FILENAME,
        ]

        for path in default_paths:
            if path.exists():
                return cls.from_file(path, profile)

        return cls(SeedConfig(), profile)

    def set_profile(self, profile: str) -> None:
        """Set current profile"""
        if profile not in self.config.profiles:
            raise ConfigError(f"Profile '{profile}' not found", "PROFILE_NOT_FOUND")
        self.current_profile = profile

    def get_profile_config(self) -> ProfileConfig:
        """Get current profile configuration"""
        profile = self.config.profiles.get(self.current_profile)
        if not profile:
            raise ConfigError(f"Profile '{self.current_profile}' not found", "PROFILE_NOT_FOUND")
        return profile

    def default_derivation_path(self) -> int:
        return self.get_profile_config().default_derivation_path

    def pwhash_limits(self) -> PwHashLimits:
        return self.get_profile_config().pwhash_limits

    def list_profiles(self) -> List[str]:
        """List available profiles"""
        return list(self.config.profiles.keys())

    def get_performance_config(self) -> PerformanceConfig:
        return self.config.performance

    def get_logging_config(self) -> LoggingConfig:
        return self.config.logging

    def get_identity_config(self) -> IdentityConfig:
        return self.config.identity

    def with_profile(self, profile: str) -> 'SeedConfigManager':
        """Return a manager over the same configuration with another profile selected"""
        return SeedConfigManager(self.config, profile)

    def with_pwhash_limits(self, limits: PwHashLimits) -> 'SeedConfigManager':
        """Return a manager whose current profile locks with different limits"""
        profiles = dict(self.config.profiles)
        profiles[self.current_profile] = replace(self.get_profile_config(), pwhash_limits=limits)
        return SeedConfigManager(replace(self.config, profiles=profiles), self.current_profile)

    def _validate(self) -> None:
        """Validate the configuration"""
        if self.config.config_format_version != CONFIG_FORMAT_VERSION:
            raise ConfigError(
                f"Unsupported configuration format version: {self.config.config_format_version}",
                "UNSUPPORTED_CONFIG_VERSION"
            )

        if not self.config.profiles:
            raise ConfigError("Configuration defines no profiles", "NO_PROFILES")

        if self.current_profile not in self.config.profiles:
            raise ConfigError(f"Profile '{self.current_profile}' not found", "PROFILE_NOT_FOUND")

        for name, profile in self.config.profiles.items():
            path = profile.default_derivation_path
            if not isinstance(path, int) or isinstance(path, bool) or not 0 <= path <= MAX_DERIVATION_PATH:
                raise ConfigError(
                    f"Profile '{name}' has invalid default_derivation_path",
                    "INVALID_DERIVATION_PATH"
                )

        if self.config.performance.max_concurrent_pwhash <= 0:
            raise ConfigError("max_concurrent_pwhash must be positive", "INVALID_PERFORMANCE_CONFIG")

        if not self.config.identity.host_suffix:
            raise ConfigError("host_suffix must not be empty", "INVALID_IDENTITY_CONFIG")

    @staticmethod
    def _parse_config_dict(data: Dict[str, Any]) -> SeedConfig:
        """Parse configuration dictionary into structured objects"""
        profiles = {}
        for name, profile_data in data['profiles'].items():
            profiles[name] = ProfileConfig(
                default_derivation_path=profile_data['default_derivation_path'],
                pwhash_limits=PwHashLimits(profile_data.get('pwhash_limits', PwHashLimits.MODERATE.value)),
                description=profile_data.get('description', ""),
            )

        return SeedConfig(
            config_format_version=data.get('config_format_version', CONFIG_FORMAT_VERSION),
            profiles=profiles,
            performance=PerformanceConfig(**data.get('performance', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            identity=IdentityConfig(**data.get('identity', {})),
            defaults=DefaultConfig(**data.get('defaults', {})),
        )


def load_config_from_json(json_string: str, profile: Optional[str] = None) -> SeedConfigManager:
    """Load configuration from JSON string"""
    return SeedConfigManager.from_json(json_string, profile)


def load_config_from_file(file_path: Union[str, Path], profile: Optional[str] = None) -> SeedConfigManager:
    """Load configuration from file"""
    return SeedConfigManager.from_file(file_path, profile)


def load_default_config(profile: Optional[str] = None) -> SeedConfigManager:
    """Load default configuration"""
    return SeedConfigManager.load_default(profile)
