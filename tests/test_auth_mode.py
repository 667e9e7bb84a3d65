"""Tests for auth mode persistence, provider selection and settings."""
import orjson
import pytest
from pydantic import ValidationError

from fssh.auth.base import AuthMode
from fssh.auth.mode import AUTH_MODE_VERSION, get_auth_provider, load_mode, save_mode
from fssh.auth.otp import OTPProvider
from fssh.auth.secret_vault import MemorySecretVault
from fssh.auth.touchid import TouchIDProvider
from fssh.conf import AgentSettings
from fssh.exceptions import ConfigurationError
from fssh.otp.setup import initialize
from fssh.vault.crypto import generate_master_key

from conftest import FAST_ITERATIONS, PASSWORD


@pytest.fixture
def settings(tmp_path):
    return AgentSettings(home=tmp_path, master_key_ttl=120)


class TestModeFile:

    def test_detect_touchid(self, settings):
        vault = MemorySecretVault(generate_master_key())
        assert load_mode(settings.auth_mode_path, vault) is AuthMode.TOUCHID

    def test_detect_otp(self, settings):
        assert load_mode(settings.auth_mode_path, MemorySecretVault()) is AuthMode.OTP
        assert load_mode(settings.auth_mode_path) is AuthMode.OTP

    def test_roundtrip(self, settings):
        save_mode(AuthMode.OTP, settings.auth_mode_path)
        raw = orjson.loads(settings.auth_mode_path.read_bytes())
        assert raw["version"] == AUTH_MODE_VERSION
        assert raw["mode"] == "otp"
        # the persisted choice wins over detection
        vault = MemorySecretVault(generate_master_key())
        assert load_mode(settings.auth_mode_path, vault) is AuthMode.OTP

    @pytest.mark.parametrize("content", [
        b"not json",
        b'{"version": "fssh-auth/v0", "mode": "otp"}',
        b'{"version": "fssh-auth/v1", "mode": "password"}',
        b"[]",
    ])
    def test_invalid_file(self, settings, content):
        settings.auth_mode_path.write_bytes(content)
        with pytest.raises(ConfigurationError):
            load_mode(settings.auth_mode_path)


class TestProviderSelection:

    def test_touchid(self, settings):
        vault = MemorySecretVault(generate_master_key())
        provider = get_auth_provider(settings, vault=vault)
        assert isinstance(provider, TouchIDProvider)

    def test_touchid_without_key(self, settings):
        save_mode(AuthMode.TOUCHID, settings.auth_mode_path)
        with pytest.raises(ConfigurationError):
            get_auth_provider(settings, vault=MemorySecretVault())

    def test_otp(self, settings):
        initialize(PASSWORD, settings.otp_config_path, iterations=FAST_ITERATIONS)
        provider = get_auth_provider(settings, vault=MemorySecretVault())
        assert isinstance(provider, OTPProvider)
        assert provider.master_key_ttl == 120

    def test_otp_not_configured(self, settings):
        with pytest.raises(ConfigurationError):
            get_auth_provider(settings, vault=MemorySecretVault())


class TestSettings:

    def test_defaults(self, tmp_path):
        settings = AgentSettings(home=tmp_path)
        assert settings.require_auth_per_sign is True
        assert settings.master_key_ttl == 0
        assert settings.socket_path == tmp_path / "agent.sock"
        assert settings.keys_dir == tmp_path / "keys"
        assert settings.otp_config_path == tmp_path / "otp" / "config.enc"

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FSSH_HOME", str(tmp_path))
        monkeypatch.setenv("FSSH_SOCKET", str(tmp_path / "s.sock"))
        monkeypatch.setenv("FSSH_REQUIRE_AUTH_PER_SIGN", "false")
        monkeypatch.setenv("FSSH_MASTER_KEY_TTL", "600")
        monkeypatch.setenv("FSSH_LOG_LEVEL", "debug")
        settings = AgentSettings.from_env()
        assert settings.home == tmp_path
        assert settings.socket_path == tmp_path / "s.sock"
        assert settings.require_auth_per_sign is False
        assert settings.master_key_ttl == 600
        assert settings.log_level == "DEBUG"

    def test_invalid_values(self, tmp_path):
        with pytest.raises(ValidationError):
            AgentSettings(home=tmp_path, master_key_ttl=-1)
        with pytest.raises(ValidationError):
            AgentSettings(home=tmp_path, log_level="LOUD")
