"""
Tests for the OTP authentication provider.

Tests cover:
- Prompt sequence on a cold cache
- Seed and master key TTL tiers
- TTL of zero disables a tier
- Failed attempts leave the caches untouched
- clear_cache
- Seed rotation by another process
"""
import pytest

from fssh.auth.base import AuthMode
from fssh.auth.otp import OTPProvider
from fssh.exceptions import AuthenticationFailed
from fssh.otp.config import load_config
from fssh.otp.setup import derive_master_key, set_seed_unlock_ttl
from fssh.otp.totp import current_code
from fssh.vault.key_rotation import rekey_otp

from conftest import PASSWORD, SEED, FakePrompter


@pytest.fixture
def provider(otp_setup, otp_path, prompter, clock):
    return OTPProvider(otp_path, master_key_ttl=300, prompter=prompter, clock=clock)


class TestUnlock:

    def test_cold_cache_prompts_once_each(self, provider, prompter, otp_setup):
        assert provider.mode is AuthMode.OTP
        assert provider.unlock_master_key() == otp_setup.master_key
        assert prompter.password_prompts == 1
        assert prompter.code_prompts == 1

    def test_master_key_cache_hit(self, provider, prompter, clock, otp_setup):
        provider.unlock_master_key()
        clock.advance(299)
        assert provider.unlock_master_key() == otp_setup.master_key
        assert prompter.password_prompts == 1
        assert prompter.code_prompts == 1

    def test_master_key_expiry_asks_code_only(self, provider, prompter, clock):
        """Past the master key TTL but within the seed TTL only the code is asked."""
        provider.unlock_master_key()
        clock.advance(301)
        provider.unlock_master_key()
        assert prompter.password_prompts == 1
        assert prompter.code_prompts == 2

    def test_seed_expiry_asks_both(self, provider, prompter, clock):
        provider.unlock_master_key()
        clock.advance(3601)
        provider.unlock_master_key()
        assert prompter.password_prompts == 2
        assert prompter.code_prompts == 2

    def test_unlock_seed(self, provider, prompter):
        assert provider.unlock_seed() == SEED
        assert provider.unlock_seed() == SEED
        assert prompter.password_prompts == 1
        assert prompter.code_prompts == 0

    def test_is_available(self, provider, tmp_path):
        assert provider.is_available()
        assert not OTPProvider(tmp_path / "absent.enc").is_available()


class TestZeroTTL:

    def test_master_key_ttl_zero(self, otp_setup, otp_path, prompter, clock):
        provider = OTPProvider(otp_path, master_key_ttl=0, prompter=prompter, clock=clock)
        provider.unlock_master_key()
        provider.unlock_master_key()
        assert prompter.password_prompts == 1
        assert prompter.code_prompts == 2

    def test_seed_ttl_zero(self, otp_setup, otp_path, prompter, clock):
        set_seed_unlock_ttl(otp_path, 0)
        provider = OTPProvider(otp_path, master_key_ttl=0, prompter=prompter, clock=clock)
        provider.unlock_master_key()
        provider.unlock_master_key()
        assert prompter.password_prompts == 2
        assert prompter.code_prompts == 2


class TestFailures:

    def test_wrong_password(self, otp_setup, otp_path, clock):
        bad = FakePrompter(password="not the password", code="000000")
        provider = OTPProvider(otp_path, master_key_ttl=300, prompter=bad, clock=clock)
        with pytest.raises(AuthenticationFailed):
            provider.unlock_master_key()
        assert bad.code_prompts == 0
        with pytest.raises(AuthenticationFailed):
            provider.unlock_master_key()
        assert bad.password_prompts == 2

    def test_wrong_code_keeps_master_key_locked(self, otp_setup, otp_path, clock):
        codes = iter(["not-a-code"])
        prompter = FakePrompter(code=lambda: next(codes))
        provider = OTPProvider(otp_path, master_key_ttl=300, prompter=prompter, clock=clock)
        with pytest.raises(AuthenticationFailed):
            provider.unlock_master_key()
        # the seed tier was satisfied; the master key tier was not
        assert provider.unlock_seed() == SEED
        assert prompter.password_prompts == 1

    def test_non_ascii_digits(self, otp_setup, otp_path, clock):
        """Unicode digits are rejected like any other malformed code."""
        prompter = FakePrompter(code="\uff11\uff12\uff13\uff14\uff15\uff16")
        provider = OTPProvider(otp_path, master_key_ttl=300, prompter=prompter, clock=clock)
        with pytest.raises(AuthenticationFailed):
            provider.unlock_master_key()
        assert prompter.code_prompts == 1

    def test_eof_on_prompt(self, otp_setup, otp_path, clock):
        class ClosedPrompter(FakePrompter):
            def password(self, prompt):
                raise EOFError

        provider = OTPProvider(otp_path, prompter=ClosedPrompter(), clock=clock)
        with pytest.raises(AuthenticationFailed):
            provider.unlock_master_key()


class TestClearCache:

    def test_clear_forces_full_reauth(self, provider, prompter):
        provider.unlock_master_key()
        provider.clear_cache()
        provider.unlock_master_key()
        assert prompter.password_prompts == 2
        assert prompter.code_prompts == 2

    def test_clear_zeroes_buffers(self, provider):
        provider.unlock_master_key()
        seed_buf = provider._seed.value
        key_buf = provider._master_key.value
        provider.clear_cache()
        assert seed_buf == bytearray(len(seed_buf))
        assert key_buf == bytearray(len(key_buf))
        assert provider._seed.value is None
        assert provider._master_key.value is None

    def test_clear_on_cold_cache(self, provider):
        provider.clear_cache()


class TestSeedRotation:

    def test_rekey_elsewhere_invalidates_cache(self, otp_setup, otp_path, store, clock):
        """A seed replaced by another process is picked up on the next unlock."""
        seeds = {"current": SEED}
        prompter = FakePrompter(code=lambda: current_code(seeds["current"], now=clock()))
        provider = OTPProvider(otp_path, master_key_ttl=300, prompter=prompter, clock=clock)
        assert provider.unlock_master_key() == otp_setup.master_key

        seeds["current"] = rekey_otp(otp_path, store, PASSWORD, current_code(SEED))
        clock.advance(301)
        new_key = provider.unlock_master_key()

        assert new_key == derive_master_key(seeds["current"], load_config(otp_path))
        assert new_key != otp_setup.master_key
        # the cached old seed was dropped, so the password is asked again
        assert prompter.password_prompts == 2
        assert prompter.code_prompts == 2
        assert provider.unlock_seed() == seeds["current"]

    def test_unchanged_config_keeps_seed_cache(self, provider, prompter, otp_path, clock):
        provider.unlock_master_key()
        set_seed_unlock_ttl(otp_path, 7200)
        clock.advance(301)
        provider.unlock_master_key()
        assert prompter.password_prompts == 1
