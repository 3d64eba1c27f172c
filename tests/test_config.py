"""Tests for configuration loading."""

import pytest
import yaml

from evesso.core.config import (
    DEFAULT_AUTHORIZATION_ENDPOINT,
    DEFAULT_DISCOVERY_URL,
    SSOConfig,
    load_config,
)
from evesso.core.errors import ConfigurationError

MINIMAL = {
    "client_id": "my-client-id",
    "client_secret": "my-secret",
    "redirect_url": "http://localhost:8000/callback",
}


class TestSSOConfig:
    """Tests for SSOConfig."""

    def test_defaults(self):
        config = SSOConfig.from_dict(MINIMAL)

        assert config.scopes == []
        assert config.authorization_endpoint == DEFAULT_AUTHORIZATION_ENDPOINT
        assert config.discovery_url == DEFAULT_DISCOVERY_URL
        assert config.issuer == "https://login.eveonline.com"
        assert config.audience == "EVE Online"
        assert config.algorithm == "RS256"
        assert config.jwks_ttl_seconds == 10800
        assert config.clock_skew_seconds == 0
        assert config.token_auth_method == "client_secret_basic"

    def test_missing_required_keys(self):
        with pytest.raises(ConfigurationError, match="client_secret, redirect_url"):
            SSOConfig.from_dict({"client_id": "my-client-id"})

    def test_to_dict_masks_secret(self):
        config = SSOConfig.from_dict({**MINIMAL, "scopes": ["publicData"]})

        assert config.to_dict()["client_secret"] == "********"
        assert config.to_dict(include_secret=True)["client_secret"] == "my-secret"
        assert config.to_dict()["scopes"] == ["publicData"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"clock_skew_seconds": -1},
            {"clock_skew_seconds": 301},
            {"jwks_ttl_seconds": 0},
            {"http_timeout": 0},
            {"algorithm": "HS256"},
            {"token_auth_method": "private_key_jwt"},
        ],
    )
    def test_out_of_range_values(self, overrides):
        with pytest.raises(ConfigurationError):
            SSOConfig.from_dict({**MINIMAL, **overrides})

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SSOConfig(client_id="", client_secret="s", redirect_url="http://localhost/cb")

    def test_max_clock_skew_allowed(self):
        assert SSOConfig.from_dict({**MINIMAL, "clock_skew_seconds": 300}).clock_skew_seconds == 300


class TestLoadConfig:
    """Tests for load_config."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "conf" / "sso.yaml"
        config = SSOConfig.from_dict({**MINIMAL, "scopes": ["publicData"], "algorithm": "ES256"})

        config.save(path)
        loaded = load_config(path)

        assert loaded == config

    def test_nested_sso_section(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text(yaml.safe_dump({"sso": {**MINIMAL, "clock_skew_seconds": 30}, "web": {"port": 8000}}))

        config = load_config(str(path))

        assert config.client_id == "my-client-id"
        assert config.clock_skew_seconds == 30

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("client_id: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError, match="Missing required settings"):
            load_config(path)
