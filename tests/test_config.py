"""
Tests for configuration profiles
"""

import json

import nacl.pwhash
import pytest

from hpos_seed.config import (
    SeedConfig,
    SeedConfigManager,
    ProfileConfig,
    PwHashLimits,
    load_config_from_json,
    load_config_from_file,
    load_default_config,
)
from hpos_seed.config.profiles import CONFIG_ENV_VAR, PROFILE_ENV_VAR, DEFAULT_CONFIG_FILENAME
from hpos_seed.exceptions import ConfigError


def config_json(**overrides) -> str:
    data = {
        "config_format_version": "1.0",
        "profiles": {
            "v3": {"default_derivation_path": 1, "pwhash_limits": "minimum"},
            "lab": {"default_derivation_path": 42, "description": "Lab devices"},
        },
        "performance": {"max_concurrent_pwhash": 4},
        "logging": {"level": "DEBUG", "structured": True},
        "identity": {"host_suffix": "example.org"},
        "defaults": {"profile": "v3"},
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """No config files or variables from the surrounding environment"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(PROFILE_ENV_VAR, raising=False)
    return tmp_path


class TestBuiltinProfiles:
    """Built-in configuration"""

    def test_default_profile(self):
        manager = SeedConfigManager()
        assert manager.current_profile == "v3"
        assert manager.default_derivation_path() == 1
        assert manager.pwhash_limits() == PwHashLimits.MODERATE

    @pytest.mark.parametrize("profile,path", [("v1", 0), ("v2", 3), ("v3", 1)])
    def test_profile_paths(self, profile, path):
        assert SeedConfigManager(profile=profile).default_derivation_path() == path

    def test_list_profiles(self):
        assert set(SeedConfigManager().list_profiles()) == {"v1", "v2", "v3"}

    def test_unknown_profile(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager(profile="v9")
        assert exc_info.value.error_code == "PROFILE_NOT_FOUND"

    def test_set_profile(self):
        manager = SeedConfigManager()
        manager.set_profile("v2")
        assert manager.default_derivation_path() == 3

        with pytest.raises(ConfigError):
            manager.set_profile("missing")

    def test_with_pwhash_limits_leaves_original(self):
        manager = SeedConfigManager()
        fast = manager.with_pwhash_limits(PwHashLimits.MINIMUM)
        assert fast.pwhash_limits() == PwHashLimits.MINIMUM
        assert manager.pwhash_limits() == PwHashLimits.MODERATE

    def test_with_profile(self):
        assert SeedConfigManager().with_profile("v1").default_derivation_path() == 0

    def test_defaults(self):
        manager = SeedConfigManager()
        assert manager.get_performance_config().max_concurrent_pwhash == 2
        assert manager.get_identity_config().host_suffix == "holohost.net"
        assert manager.get_logging_config().level == "WARNING"


class TestPwHashLimits:
    """Argon2id presets"""

    def test_values(self):
        assert PwHashLimits.MINIMUM.ops_limit == nacl.pwhash.argon2id.OPSLIMIT_MIN
        assert PwHashLimits.MINIMUM.mem_limit == nacl.pwhash.argon2id.MEMLIMIT_MIN
        assert PwHashLimits.MODERATE.ops_limit == nacl.pwhash.argon2id.OPSLIMIT_MODERATE
        assert PwHashLimits.SENSITIVE.mem_limit == nacl.pwhash.argon2id.MEMLIMIT_SENSITIVE

    def test_ordering(self):
        limits = [PwHashLimits.MINIMUM, PwHashLimits.INTERACTIVE, PwHashLimits.MODERATE, PwHashLimits.SENSITIVE]
        mem = [limit.mem_limit for limit in limits]
        assert mem == sorted(mem)


class TestLoading:
    """JSON and file loading"""

    def test_from_json(self):
        manager = load_config_from_json(config_json())
        assert manager.pwhash_limits() == PwHashLimits.MINIMUM
        assert manager.get_performance_config().max_concurrent_pwhash == 4
        assert manager.get_logging_config().structured is True
        assert manager.get_identity_config().host_suffix == "example.org"

    def test_profile_override(self):
        manager = load_config_from_json(config_json(), profile="lab")
        assert manager.default_derivation_path() == 42
        assert manager.pwhash_limits() == PwHashLimits.MODERATE
        assert manager.get_profile_config().description == "Lab devices"

    def test_invalid_json(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json("{not json")
        assert exc_info.value.error_code == "PARSE_ERROR"

    def test_missing_profiles(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json(json.dumps({"config_format_version": "1.0"}))
        assert exc_info.value.error_code == "INVALID_FORMAT"

    def test_unknown_pwhash_limits(self):
        bad = config_json(profiles={"v3": {"default_derivation_path": 1, "pwhash_limits": "ultra"}})
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json(bad)
        assert exc_info.value.error_code == "INVALID_FORMAT"

    @pytest.mark.parametrize("path", [-1, 2 ** 32, "1"])
    def test_invalid_derivation_path(self, path):
        bad = config_json(profiles={"v3": {"default_derivation_path": path}})
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json(bad)
        assert exc_info.value.error_code == "INVALID_DERIVATION_PATH"

    def test_unsupported_version(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json(config_json(config_format_version="2.0"))
        assert exc_info.value.error_code == "UNSUPPORTED_CONFIG_VERSION"

    def test_invalid_concurrency(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager.from_json(config_json(performance={"max_concurrent_pwhash": 0}))
        assert exc_info.value.error_code == "INVALID_PERFORMANCE_CONFIG"

    def test_empty_profiles(self):
        with pytest.raises(ConfigError) as exc_info:
            SeedConfigManager(SeedConfig(profiles={}))
        assert exc_info.value.error_code == "NO_PROFILES"

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(config_json(), encoding="utf-8")
        assert load_config_from_file(path).default_derivation_path() == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config_from_file(tmp_path / "missing.json")
        assert exc_info.value.error_code == "FILE_ERROR"


class TestDefaultLoading:
    """Environment and search path"""

    def test_builtin_when_nothing_found(self, isolated_env):
        manager = load_default_config()
        assert manager.current_profile == "v3"
        assert manager.list_profiles() == ["v1", "v2", "v3"]

    def test_profile_env_var(self, isolated_env, monkeypatch):
        monkeypatch.setenv(PROFILE_ENV_VAR, "v2")
        assert load_default_config().default_derivation_path() == 3

    def test_explicit_profile_wins(self, isolated_env, monkeypatch):
        monkeypatch.setenv(PROFILE_ENV_VAR, "v2")
        assert load_default_config("v1").default_derivation_path() == 0

    def test_config_env_var(self, isolated_env, monkeypatch):
        path = isolated_env / "custom.json"
        path.write_text(config_json(), encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_default_config("lab").default_derivation_path() == 42

    def test_working_directory_file(self, isolated_env):
        (isolated_env / DEFAULT_CONFIG_FILENAME).write_text(config_json(), encoding="utf-8")
        assert "lab" in load_default_config().list_profiles()

    def test_custom_profile_objects(self):
        config = SeedConfig(profiles={"only": ProfileConfig(default_derivation_path=7)})
        with pytest.raises(ConfigError):
            SeedConfigManager(config)
        assert SeedConfigManager(config, profile="only").default_derivation_path() == 7
