"""Unit tests for config module."""

import json

import pytest

from paywarden.core.config import (
    DEFAULT_NETWORK,
    SUPPORTED_NETWORKS,
    Config,
    validate_payments_config,
)
from paywarden.core.exceptions import ConfigurationError

ENV_VARS = [
    "PAYMENTS_RECEIVABLE_ADDRESS",
    "PAYMENTS_NETWORK",
    "NETWORK",
    "FACILITATOR_URL",
    "PAYMENTS_FACILITATOR_URL",
    "FACILITATOR_AUTH",
    "PAYMENTS_FACILITATOR_AUTH",
    "PAYWARDEN_STORAGE_BACKEND",
    "PAYWARDEN_REDIS_URL",
    "PAYWARDEN_POLICIES",
    "PAYWARDEN_LOG_LEVEL",
    "PAYWARDEN_LOG_JSON",
    "PAYWARDEN_REQUEST_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Tests for Config class."""

    def test_defaults(self) -> None:
        config = Config()

        assert config.pay_to is None
        assert config.network == DEFAULT_NETWORK == "base-sepolia"
        assert config.storage_backend == "memory"
        assert config.log_level == "INFO"
        assert config.log_json is False
        assert config.request_timeout == 30.0

    def test_config_is_immutable(self) -> None:
        config = Config()
        with pytest.raises(AttributeError):
            config.pay_to = "0xabc"  # type: ignore

    def test_from_env(self, clean_env) -> None:
        clean_env.setenv("PAYMENTS_RECEIVABLE_ADDRESS", "0xabc")
        clean_env.setenv("PAYMENTS_NETWORK", "base")
        clean_env.setenv("FACILITATOR_URL", "https://facilitator.example")
        clean_env.setenv("FACILITATOR_AUTH", "token-123456")
        clean_env.setenv("PAYWARDEN_STORAGE_BACKEND", "redis")
        clean_env.setenv("PAYWARDEN_REDIS_URL", "redis://cache:6379/0")
        clean_env.setenv("PAYWARDEN_LOG_LEVEL", "DEBUG")
        clean_env.setenv("PAYWARDEN_LOG_JSON", "true")
        clean_env.setenv("PAYWARDEN_REQUEST_TIMEOUT", "5")

        config = Config.from_env()

        assert config.pay_to == "0xabc"
        assert config.network == "base"
        assert config.facilitator_url == "https://facilitator.example"
        assert config.facilitator_auth == "token-123456"
        assert config.storage_backend == "redis"
        assert config.redis_url == "redis://cache:6379/0"
        assert config.log_level == "DEBUG"
        assert config.log_json is True
        assert config.request_timeout == 5.0

    def test_network_falls_back_to_network_var(self, clean_env) -> None:
        clean_env.setenv("NETWORK", "solana-devnet")
        assert Config.from_env().network == "solana-devnet"

        clean_env.setenv("PAYMENTS_NETWORK", "base")
        assert Config.from_env().network == "base"

    def test_from_env_defaults(self, clean_env) -> None:
        config = Config.from_env()
        assert config.network == "base-sepolia"
        assert config.facilitator_url is None

    def test_overrides_win(self, clean_env) -> None:
        clean_env.setenv("PAYMENTS_RECEIVABLE_ADDRESS", "0xenv")
        config = Config.from_env(pay_to="0xoverride", lock_ttl=10)

        assert config.pay_to == "0xoverride"
        assert config.lock_ttl == 10

    def test_invalid_timeout(self, clean_env) -> None:
        clean_env.setenv("PAYWARDEN_REQUEST_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError, match="PAYWARDEN_REQUEST_TIMEOUT"):
            Config.from_env()

    def test_with_updates(self) -> None:
        config = Config(pay_to="0xabc")
        updated = config.with_updates(network="base")

        assert updated.network == "base"
        assert updated.pay_to == "0xabc"
        assert config.network == "base-sepolia"

    def test_load_policy_groups_inline(self) -> None:
        config = Config(policies=json.dumps([{"name": "daily"}]))
        assert [g.name for g in config.load_policy_groups()] == ["daily"]

    def test_load_policy_groups_from_env_file(self, clean_env, tmp_path) -> None:
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"policyGroups": [{"name": "a"}, {"name": "b"}]}))
        clean_env.setenv("PAYWARDEN_POLICIES", str(path))

        assert len(Config.from_env().load_policy_groups()) == 2

    def test_no_policies(self) -> None:
        assert Config().load_policy_groups() == []

    def test_masked_facilitator_auth(self) -> None:
        assert Config().masked_facilitator_auth() is None
        assert Config(facilitator_auth="short").masked_facilitator_auth() == "****"
        assert Config(facilitator_auth="abcd-secret-wxyz").masked_facilitator_auth() == "abcd...wxyz"


class TestValidatePaymentsConfig:
    """Tests for validate_payments_config."""

    @pytest.mark.parametrize("network", sorted(SUPPORTED_NETWORKS))
    def test_supported_networks(self, network) -> None:
        validate_payments_config("0xabc", network, "https://facilitator.example")

    def test_network_is_case_insensitive(self) -> None:
        validate_payments_config("0xabc", "Base-Sepolia", "https://facilitator.example")

    def test_missing_pay_to(self) -> None:
        with pytest.raises(ConfigurationError, match="payout address"):
            validate_payments_config(None, "base", "https://facilitator.example")
        with pytest.raises(ConfigurationError, match="payout address"):
            validate_payments_config("  ", "base", "https://facilitator.example")

    def test_unsupported_network(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported payments network") as exc_info:
            validate_payments_config("0xabc", "eip155:999999", "https://facilitator.example")
        assert "base-sepolia" in exc_info.value.details["supported"]

    def test_missing_network(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_payments_config("0xabc", None, "https://facilitator.example")

    def test_missing_facilitator(self) -> None:
        with pytest.raises(ConfigurationError, match="facilitator URL"):
            validate_payments_config("0xabc", "base", "")

    def test_facilitator_optional_for_custom_settlement(self) -> None:
        validate_payments_config("0xabc", "base", require_facilitator=False)
        with pytest.raises(ConfigurationError, match="Unsupported payments network"):
            validate_payments_config("0xabc", "dogechain", require_facilitator=False)

    def test_validate_payments_method(self) -> None:
        with pytest.raises(ConfigurationError):
            Config(pay_to="0xabc").validate_payments()
        Config(pay_to="0xabc", facilitator_url="https://f.example").validate_payments()
