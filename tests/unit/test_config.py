"""
Configuration Loader Unit Tests.
"""

from decimal import Decimal
from pathlib import Path

import pytest

from eagle_vault.config import (
    ConfigFileNotFoundError,
    ConfigLoader,
    ConfigParseError,
    ConfigValidationError,
    VaultConfig,
    load_config,
)

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "vault.example.yaml"


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "vault.yaml"
    path.write_text(
        "vault:\n"
        "  shares:\n"
        "    symbol: vTEST\n"
        "    max_supply: 1000000\n"
        "  reporting:\n"
        "    performance_fee_bps: 500\n"
        "  roles:\n"
        "    keeper: ${TEST_VAULT_KEEPER:0xdefault}\n"
    )
    return path


class TestDefaults:
    """Test model defaults and validation."""

    def test_defaults(self):
        config = VaultConfig()

        assert config.shares.bootstrap_multiplier == Decimal("10000")
        assert config.shares.max_supply == Decimal("50000000")
        assert config.swap.max_slippage_bps == 100
        assert config.oracle.max_oracle_pool_delta_bps is None

    def test_fee_bound(self):
        with pytest.raises(ValueError):
            VaultConfig(reporting={"performance_fee_bps": 5001})

    def test_log_level_normalized(self):
        assert VaultConfig(logging={"level": "debug"}).logging.level == "DEBUG"

    def test_unset_env_reference_is_none(self, monkeypatch):
        monkeypatch.delenv("TEST_VAULT_ADMIN", raising=False)

        config = VaultConfig(roles={"emergency_admin": "${TEST_VAULT_ADMIN}"})

        assert config.roles.emergency_admin is None


class TestConfigLoader:
    """Test YAML loading."""

    def test_load(self, config_file):
        config = load_config(config_file)

        assert config.shares.symbol == "vTEST"
        assert config.shares.max_supply == Decimal("1000000")
        assert config.reporting.performance_fee_bps == 500
        assert config.roles.keeper == "0xdefault"

    def test_env_substitution(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_VAULT_KEEPER", "0xkeeper")

        config = ConfigLoader().load(config_file)

        assert config.roles.keeper == "0xkeeper"

    def test_env_overlay(self, config_file, tmp_path):
        """vault.<env>.yaml is deep-merged over the base file."""
        (tmp_path / "vault.testnet.yaml").write_text(
            "vault:\n  reporting:\n    profit_max_unlock_time: 3600\n"
        )

        config = ConfigLoader().load(config_file, env="testnet")

        assert config.reporting.profit_max_unlock_time == 3600
        assert config.reporting.performance_fee_bps == 500

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "vault.yaml"
        path.write_text("vault: [unclosed\n")

        with pytest.raises(ConfigParseError):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "vault.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigParseError):
            load_config(path)

    def test_validation_errors_collected(self, tmp_path):
        path = tmp_path / "vault.yaml"
        path.write_text("swap:\n  max_slippage_bps: 20000\n")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert any("max_slippage_bps" in e for e in exc_info.value.errors)

    def test_example_config(self):
        config = load_config(EXAMPLE_CONFIG)

        assert config.shares.symbol == "vEAGLE"
        assert config.allocation.min_deployment_interval == 300
