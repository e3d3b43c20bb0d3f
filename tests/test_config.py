"""Tests for the profile file loader and application settings."""

import json
from pathlib import Path

import pytest

from tokengen.config import AppSettings, ProfilesConfig, load_settings
from tokengen.models.request import ProfileType, TokenTypePreference
from tokengen.utils.exceptions import ConfigError
from tokengen.utils.logging import setup_logging

VALID_YAML = """\
default_profile: graph-user
defaults:
  tenant: contoso.onmicrosoft.com
  client_id: 11111111-2222-3333-4444-555555555555
profiles:
  graph-app:
    type: App
    secret: s3cret
    resource: https://graph.microsoft.com
  graph-user:
    type: user
    scope: openid profile offline_access User.Read
    token_type: a
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(VALID_YAML)
    return path


class TestProfilesConfigLoad:
    def test_missing_file_is_empty_config(self, tmp_path):
        config = ProfilesConfig.load(tmp_path / "absent.yaml")
        assert config.profiles == {}
        assert config.default_profile is None
        assert not config.has_profiles

    def test_loads_profiles_and_defaults(self, config_file):
        config = ProfilesConfig.load(config_file)

        assert config.default_profile == "graph-user"
        assert config.defaults.tenant == "contoso.onmicrosoft.com"
        assert config.profiles["graph-app"].type == ProfileType.APP
        assert config.profiles["graph-user"].type == ProfileType.USER
        assert config.profiles["graph-user"].token_type == TokenTypePreference.ACCESS

    def test_accepts_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"profiles": {"p": {"type": "App", "client_id": "c", "resource": "r"}}})
        )
        assert ProfilesConfig.load(path).profiles["p"].client_id == "c"

    def test_empty_file_is_empty_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert ProfilesConfig.load(path).profiles == {}

    def test_empty_sections_are_allowed(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("defaults:\nprofiles:\n")
        assert ProfilesConfig.load(path).profiles == {}

    def test_malformed_yaml_is_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("profiles: [unclosed\n")
        with pytest.raises(ConfigError, match="Unable to read config file"):
            ProfilesConfig.load(path)

    def test_non_mapping_is_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            ProfilesConfig.load(path)

    def test_unknown_key_is_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("profiles:\n  p:\n    type: App\n    colour: blue\n")
        with pytest.raises(ConfigError, match="profiles.p.colour"):
            ProfilesConfig.load(path)

    def test_bad_profile_type_is_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("profiles:\n  p:\n    type: Service\n")
        with pytest.raises(ConfigError):
            ProfilesConfig.load(path)

    def test_bad_token_type_is_config_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("defaults:\n  token_type: x\n")
        with pytest.raises(ConfigError):
            ProfilesConfig.load(path)


class TestAppSettings:
    def test_reads_prefixed_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TOKENGEN_CACHE_PATH", str(tmp_path / "c.json"))
        monkeypatch.setenv("TOKENGEN_SKEW_MARGIN_SECONDS", "120")
        monkeypatch.setenv("TOKENGEN_OPEN_BROWSER", "false")

        settings = AppSettings()

        assert settings.cache_path == tmp_path / "c.json"
        assert settings.skew_margin_seconds == 120
        assert settings.open_browser is False

    def test_defaults(self, monkeypatch):
        for name in ("TOKENGEN_SKEW_MARGIN_SECONDS", "TOKENGEN_CACHE_ENCRYPTED", "TOKENGEN_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings(_env_file=None)

        assert settings.skew_margin_seconds == 60
        assert settings.cache_encrypted is False
        assert settings.log_level == "WARNING"
        assert settings.cache_path.name == "cache.json"

    def test_log_level_is_normalized(self, monkeypatch):
        monkeypatch.setenv("TOKENGEN_LOG_LEVEL", " debug ")
        assert AppSettings(_env_file=None).log_level == "DEBUG"

    def test_invalid_value_is_config_error(self, monkeypatch):
        monkeypatch.setenv("TOKENGEN_SKEW_MARGIN_SECONDS", "soon")
        with pytest.raises(ConfigError, match="(?i)tokengen_skew_margin_seconds"):
            load_settings()

    def test_unknown_log_level_is_config_error(self, monkeypatch):
        monkeypatch.setenv("TOKENGEN_LOG_LEVEL", "loud")
        with pytest.raises(ConfigError, match="unknown log level"):
            load_settings()


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ConfigError, match="Unknown log level 'LOUD'"):
        setup_logging("LOUD")
