"""Tests for single-use recovery codes."""
import re

from fssh.otp.recovery import (
    RECOVERY_ALPHABET,
    RecoveryCodes,
    generate_recovery_codes,
    hash_recovery_code,
    hash_recovery_codes,
    looks_like_recovery_code,
    verify_recovery_code,
)

CODE_PATTERN = re.compile(r"^[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}$")


class TestGeneration:

    def test_format(self):
        codes = generate_recovery_codes()
        assert len(codes) == 10
        assert len(set(codes)) == 10
        for code in codes:
            assert CODE_PATTERN.match(code)
            assert looks_like_recovery_code(code)
            assert all(c in RECOVERY_ALPHABET for c in code.replace("-", ""))

    def test_no_lookalike_characters(self):
        for ch in "01ILO":
            assert ch not in RECOVERY_ALPHABET

    def test_hash_is_sha256_hex(self):
        digest = hash_recovery_code("ABCD-EFGH-JKMN-PQRS")
        assert re.fullmatch(r"[0-9a-f]{64}", digest)

    def test_hash_normalizes_case(self):
        assert hash_recovery_code(" abcd-efgh-jkmn-pqrs ") == hash_recovery_code("ABCD-EFGH-JKMN-PQRS")

    def test_looks_like(self):
        assert not looks_like_recovery_code("123456")
        assert not looks_like_recovery_code("ABCD-EFGH-JKMN")
        assert not looks_like_recovery_code("ABC0-EFGH-JKMN-PQRS")


class TestConsumption:

    def test_verify_returns_index(self):
        codes = generate_recovery_codes(3)
        hashes = hash_recovery_codes(codes)
        assert verify_recovery_code(codes[2], hashes) == 2
        assert verify_recovery_code("AAAA-AAAA-AAAA-AAAA", hashes) is None

    def test_single_use(self):
        codes = generate_recovery_codes(3)
        store = RecoveryCodes(hash_recovery_codes(codes))
        assert store.consume(codes[1]) is True
        assert store.remaining == 2
        assert store.consume(codes[1]) is False
        assert store.remaining == 2
        assert store.consume(codes[0].lower()) is True
        assert store.remaining == 1

    def test_hashes_is_a_copy(self):
        store = RecoveryCodes(["a", "b"])
        store.hashes.clear()
        assert store.remaining == 2
