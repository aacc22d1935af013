"""Tests for configuration loader."""

import pytest

from accessgap.config.loader import (
    ConfigurationError,
    expand_env_vars,
    get_config_value,
    load_config,
    validate_config,
)


class TestExpandEnvVars:
    """Tests for environment variable expansion."""

    def test_expand_var_in_string(self, monkeypatch):
        """Test expanding variable within a string."""
        monkeypatch.setenv("IDP_HOST", "graph.example.com")
        assert expand_env_vars("https://${IDP_HOST}/v1.0") == "https://graph.example.com/v1.0"

    def test_expand_nested(self, monkeypatch):
        """Test expanding variables in nested dicts and lists."""
        monkeypatch.setenv("HR_SECRET", "s3cret")
        data = {"hr": {"api_secret": "${HR_SECRET}"}, "list": ["${HR_SECRET}", 5]}

        result = expand_env_vars(data)

        assert result["hr"]["api_secret"] == "s3cret"
        assert result["list"] == ["s3cret", 5]

    def test_missing_env_var(self, monkeypatch):
        """Test handling of missing environment variable."""
        monkeypatch.delenv("ACCESSGAP_MISSING_VAR", raising=False)
        assert expand_env_vars("${ACCESSGAP_MISSING_VAR}") == ""


class TestValidateConfig:
    """Tests for configuration validation."""

    def test_empty_config_is_valid(self):
        """Every section is optional."""
        validate_config({})

    def test_identity_provider_with_token(self):
        validate_config({"identity_provider": {"access_token": "t"}})

    def test_identity_provider_missing_credentials(self):
        with pytest.raises(ConfigurationError, match="client_secret"):
            validate_config({"identity_provider": {"tenant_id": "t", "client_id": "c"}})

    def test_invalid_timeout(self):
        with pytest.raises(ConfigurationError, match="timeout"):
            validate_config({"identity_provider": {"access_token": "t", "timeout": 0}})

    def test_hr_live_requires_credentials(self):
        with pytest.raises(ConfigurationError, match="hr.api_key"):
            validate_config({"hr": {"base_url": "https://hr.example.com"}})

    def test_hr_requires_a_source(self):
        with pytest.raises(ConfigurationError, match="base_url or fallback_file"):
            validate_config({"hr": {"cooldown_seconds": 30}})

    def test_email_enabled_requires_host(self):
        with pytest.raises(ConfigurationError, match="smtp_host"):
            validate_config({"notifications": {"email": {"enabled": True, "from_address": "a@b.c"}}})

    def test_settings_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="settings"):
            validate_config({"settings": ["nope"]})


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_valid_config(self, temp_config_file):
        config = load_config(temp_config_file)

        assert config["identity_provider"]["access_token"] == "test-token"
        assert config["settings"]["background_scan_interval"] == "Every Hour"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError, match="empty"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("identity_provider: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_env_vars_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("IDP_TOKEN", "from-env")
        path = tmp_path / "config.yaml"
        path.write_text("identity_provider:\n  access_token: ${IDP_TOKEN}\n")

        assert load_config(path)["identity_provider"]["access_token"] == "from-env"


class TestGetConfigValue:
    """Tests for dotted lookups."""

    def test_nested(self, sample_config):
        assert get_config_value(sample_config, "storage.database_url") == "sqlite://"

    def test_default(self, sample_config):
        assert get_config_value(sample_config, "discovery.max_workers", 5) == 5
        assert get_config_value(sample_config, "storage.database_url.deeper", "x") == "x"
