"""
Tests for the hpos-seed command-line interface
"""

import json
import logging

import pytest

from hpos_seed.cli import main, create_parser, configure_logging
from hpos_seed.config import SeedConfigManager, SeedConfig, LoggingConfig

PUBLIC_KEY_HEX = "2c848ad8664ee651e4896c13a84a89a2964aca5eb77a8b881e60ded5c81b4e9d"
EXPECTED_HCID = "HcScIMeeSmNgnuygkhTIT5auWbfiuivxjMfF7O54sPeb6zg84yEBXUV7bf7z58z"
EXPECTED_URL = "https://hcscimeesmngnuygkhtit5auwbfiuivxjmff7o54speb6zg84yebxuv7bf7z58z.holohost.net/"
PASSPHRASE_VAR = "HPOS_SEED_TEST_PASSPHRASE"


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI reconfigures the root logger; put it back after each test"""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Fast config file, file-only storage and a passphrase variable"""
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({
        "config_format_version": "1.0",
        "profiles": {"v3": {"default_derivation_path": 1, "pwhash_limits": "minimum"}},
    }), encoding="utf-8")

    monkeypatch.setenv(PASSPHRASE_VAR, "p4ssw0rd")

    return ['--config', str(config_path), '--no-keyring', '--storage-dir', str(tmp_path / "store")]


class TestIdentifierCommands:
    """hcid and verify-hcid"""

    def test_hcid(self, capsys):
        assert main(['hcid', PUBLIC_KEY_HEX]) == 0
        out = capsys.readouterr().out
        assert f"HCID: {EXPECTED_HCID}" in out
        assert f"URL: {EXPECTED_URL}" in out

    def test_hcid_json(self, capsys):
        assert main(['hcid', PUBLIC_KEY_HEX, '--json']) == 0
        result = json.loads(capsys.readouterr().out)
        assert result['hcid'] == EXPECTED_HCID
        assert result['hostname'] == EXPECTED_HCID.lower()

    def test_hcid_suffix(self, capsys):
        assert main(['hcid', PUBLIC_KEY_HEX, '--suffix', 'example.org', '--json']) == 0
        assert json.loads(capsys.readouterr().out)['url'].endswith('.example.org/')

    def test_hcid_bad_hex(self, capsys):
        assert main(['hcid', 'zz']) == 1
        assert "hex" in capsys.readouterr().err

    def test_hcid_wrong_length(self, capsys):
        assert main(['hcid', PUBLIC_KEY_HEX[:-2]]) == 1
        assert "32 bytes" in capsys.readouterr().err

    def test_verify_hcid(self, capsys):
        assert main(['verify-hcid', EXPECTED_HCID]) == 0
        assert PUBLIC_KEY_HEX in capsys.readouterr().out

    def test_verify_hostname(self, capsys):
        assert main(['verify-hcid', '--hostname', EXPECTED_HCID.lower()]) == 0
        assert PUBLIC_KEY_HEX in capsys.readouterr().out

    def test_verify_hcid_tampered(self, capsys):
        tampered = EXPECTED_HCID[:3] + EXPECTED_HCID[3].upper() + EXPECTED_HCID[4:]
        assert main(['verify-hcid', tampered]) == 1
        assert "Invalid identifier" in capsys.readouterr().err


class TestBundleCommands:
    """generate, unlock and storage"""

    def test_generate_and_unlock(self, cli_env, capsys):
        assert main(cli_env + ['generate', '--passphrase-env', PASSPHRASE_VAR, '--json']) == 0
        generated = json.loads(capsys.readouterr().out)

        assert generated['derivation_path'] == 1
        assert generated['hcid'].startswith("HcS")
        assert 'seed' not in generated

        assert main(cli_env + [
            'unlock', '--bundle', generated['device_bundle'], '--passphrase-env', PASSPHRASE_VAR, '--json'
        ]) == 0
        unlocked = json.loads(capsys.readouterr().out)

        assert unlocked['public_key'] == generated['public_key']
        assert unlocked['hcid'] == generated['hcid']
        assert unlocked['url'] == generated['url']
        assert unlocked['derivation_path'] == 1

    def test_generate_derivation_path(self, cli_env, capsys):
        assert main(cli_env + ['generate', '--derivation-path', '7', '--passphrase-env', PASSPHRASE_VAR, '--json']) == 0
        assert json.loads(capsys.readouterr().out)['derivation_path'] == 7

    def test_unlock_wrong_passphrase(self, cli_env, capsys, monkeypatch):
        assert main(cli_env + ['generate', '--passphrase-env', PASSPHRASE_VAR, '--json']) == 0
        device_bundle = json.loads(capsys.readouterr().out)['device_bundle']

        monkeypatch.setenv(PASSPHRASE_VAR, "wr0ngp4ssw0rd")
        assert main(cli_env + ['unlock', '--bundle', device_bundle, '--passphrase-env', PASSPHRASE_VAR]) == 1
        assert "Error" in capsys.readouterr().err

    def test_passphrase_file(self, cli_env, capsys, tmp_path):
        passphrase_file = tmp_path / "passphrase.txt"
        passphrase_file.write_text("p4ssw0rd\n", encoding="utf-8")
        bundle_file = tmp_path / "bundle.txt"

        assert main(cli_env + [
            'generate', '--passphrase-file', str(passphrase_file), '--output', str(bundle_file)
        ]) == 0
        assert "Written to" in capsys.readouterr().out

        assert main(cli_env + [
            'unlock', '--bundle-file', str(bundle_file), '--passphrase-env', PASSPHRASE_VAR
        ]) == 0
        assert "HCID: HcS" in capsys.readouterr().out

    def test_missing_passphrase_variable(self, cli_env, capsys):
        assert main(cli_env + ['generate', '--passphrase-env', 'HPOS_SEED_UNSET_VARIABLE']) == 1
        assert "not set" in capsys.readouterr().err

    def test_prompted_passphrase_mismatch(self, cli_env, capsys, monkeypatch):
        answers = iter(["p4ssw0rd", "different"])
        monkeypatch.setattr('getpass.getpass', lambda prompt='': next(answers))
        assert main(cli_env + ['generate']) == 1
        assert "do not match" in capsys.readouterr().err

    def test_storage_round_trip(self, cli_env, capsys):
        assert main(cli_env + [
            'generate', '--passphrase-env', PASSPHRASE_VAR, '--save-to-storage', 'device-1', '--json'
        ]) == 0
        generated = json.loads(capsys.readouterr().out)
        assert generated['stored_as'] == "device-1 (file)"

        assert main(cli_env + ['storage', 'list']) == 0
        assert "device-1" in capsys.readouterr().out

        assert main(cli_env + ['storage', 'load', 'device-1']) == 0
        assert capsys.readouterr().out.strip() == generated['device_bundle']

        assert main(cli_env + [
            'unlock', '--from-storage', 'device-1', '--passphrase-env', PASSPHRASE_VAR, '--json'
        ]) == 0
        assert json.loads(capsys.readouterr().out)['hcid'] == generated['hcid']

        assert main(cli_env + ['storage', 'delete', 'device-1', '--confirm']) == 0
        assert main(cli_env + ['storage', 'list']) == 0
        assert "No bundles stored" in capsys.readouterr().out

    def test_storage_save(self, cli_env, capsys):
        assert main(cli_env + ['storage', 'save', 'imported', '--bundle', 'aGNzYjA']) == 0
        assert "imported" in capsys.readouterr().out

    def test_storage_save_invalid(self, cli_env, capsys):
        assert main(cli_env + ['storage', 'save', 'imported', '--bundle', 'not base64!']) == 1
        assert "Storage error" in capsys.readouterr().err

    def test_storage_load_missing(self, cli_env, capsys):
        assert main(cli_env + ['storage', 'load', 'missing']) == 1

    def test_unlock_from_missing_storage(self, cli_env, capsys):
        assert main(cli_env + ['unlock', '--from-storage', 'missing', '--passphrase-env', PASSPHRASE_VAR]) == 1


class TestGlobalOptions:
    """Parser and top-level behaviour"""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['--version'])
        assert exc_info.value.code == 0
        assert "HPOS Seed SDK" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_check_compatibility(self, capsys):
        assert main(['--check-compatibility']) == 0
        assert "compatible" in capsys.readouterr().out

    def test_unknown_profile(self, cli_env, capsys):
        assert main(cli_env + ['--profile', 'v9', 'hcid', PUBLIC_KEY_HEX]) == 1
        assert "not found" in capsys.readouterr().err

    def test_parser_requires_bundle_source(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(['unlock'])

    def test_configure_logging_structured(self):
        config = SeedConfigManager(SeedConfig(logging=LoggingConfig(level="INFO", structured=True)))
        configure_logging(config)
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert "level=" in root.handlers[0].formatter._fmt

    def test_configure_logging_verbose(self):
        configure_logging(SeedConfigManager(), verbosity=2)
        assert logging.getLogger().level == logging.DEBUG
