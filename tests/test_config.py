"""
Tests for environment validation and AppConfig
"""
import logging

import pytest

from core.config import (
    DEFAULT_RECURSION_LIMIT,
    DEV_RECURSION_LIMIT,
    AppConfig,
    ConfigError,
    validate_environment,
)


class TestValidateEnvironment:
    def test_missing_required_raises(self, clean_env, caplog):
        with caplog.at_level(logging.ERROR, logger="merchant.config"):
            with pytest.raises(ConfigError) as exc:
                validate_environment()

        assert exc.value.missing == ["OPENAI_API_KEY"]
        assert "Required environment variables are not set." in caplog.text
        assert "OPENAI_API_KEY=your_openai_api_key_here" in caplog.text

    def test_lists_every_missing_variable(self, clean_env):
        with pytest.raises(ConfigError) as exc:
            validate_environment(["OPENAI_API_KEY", "TELEGRAM_BOT_TOKEN"])
        assert exc.value.missing == ["OPENAI_API_KEY", "TELEGRAM_BOT_TOKEN"]

    def test_missing_network_only_warns(self, clean_env, caplog):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        with caplog.at_level(logging.WARNING, logger="merchant.config"):
            validate_environment()
        assert "NETWORK_ID not set" in caplog.text


class TestAppConfig:
    def test_defaults(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        config = AppConfig.from_env()

        assert config.network_id == "base-sepolia"
        assert config.openai_model == "gpt-4o-mini"
        assert config.wallet_data_file == "wallet_data.json"
        assert config.recursion_limit == DEFAULT_RECURSION_LIMIT
        assert config.development_mode is False
        assert config.telegram_bot_token is None

    def test_unknown_network_rejected(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("NETWORK_ID", "ethereum-goerli")
        with pytest.raises(ConfigError):
            AppConfig.from_env()

    def test_development_mode_from_node_env(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("NODE_ENV", "development")
        config = AppConfig.from_env()
        assert config.development_mode is True
        assert config.recursion_limit == DEV_RECURSION_LIMIT
        assert config.recursion_limit_explicit is False

    def test_explicit_recursion_limit_in_dev_mode(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("DEV_MODE", "true")
        clean_env.setenv("AGENT_RECURSION_LIMIT", "10")
        config = AppConfig.from_env()
        assert config.recursion_limit == 10
        assert config.recursion_limit_explicit is True

    def test_telegram_settings(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        clean_env.setenv("TELEGRAM_ADMIN_CHAT_ID", "987")
        config = AppConfig.from_env()
        assert config.telegram_bot_token == "123:abc"
        assert config.telegram_admin_chat_id == 987
        assert config.telegram_allowed_users == frozenset()

    def test_telegram_allowed_users(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("TELEGRAM_ALLOWED_USERS", "111, 222,")
        assert AppConfig.from_env().telegram_allowed_users == frozenset({111, 222})

    def test_bad_allowed_users_rejected(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("TELEGRAM_ALLOWED_USERS", "111,alice")
        with pytest.raises(ConfigError):
            AppConfig.from_env()

    def test_bad_interval(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("AUTONOMOUS_INTERVAL", "soon")
        with pytest.raises(ConfigError):
            AppConfig.from_env()

    def test_describe_hides_private_key(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("WALLET_PRIVATE_KEY", '"0x' + "1" * 64 + '"')
        config = AppConfig.from_env()
        assert config.wallet_private_key == "0x" + "1" * 64
        described = config.describe()
        assert described["wallet_private_key"] == "PRIVATE_KEY_HIDDEN"
        assert "1" * 64 not in str(described)
