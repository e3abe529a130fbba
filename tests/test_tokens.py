"""Unit tests for auth/tokens.py -- one-time tokens, MFA codes and session JWTs.

Covers:
- create_token() entropy and format
- create_verification_token() format, zero padding and range
- create_jwt_token() / decode_jwt_token() round trip with the id-only payload
- decode_jwt_token() returns the invalid result, never raises, for tampered,
  expired, foreign-secret, malformed, non-UTF-8 and claim-less tokens
- bcrypt helpers, including the 72-byte input cap
"""

import re
from unittest.mock import patch

import pytest
from jose import jwt

from auth.errors import ValidationError
from auth.models import User
from auth.tokens import (
    PASSWORD_MAX_BYTES,
    DecodedToken,
    create_jwt_token,
    create_token,
    create_verification_token,
    decode_jwt_token,
    get_token_options,
    hash_password,
    verify_password,
)
from conftest import TEST_SECRET, make_settings
from core.config import DEFAULT_TOKEN_EXPIRE_SECONDS

SETTINGS = make_settings()

# 72 characters, 141 UTF-8 bytes.
MULTIBYTE_PASSWORD = "Aa1" + "é" * 69


class TestOpaqueTokens:
    """Registration and reset tokens are 160-bit hex strings."""

    def test_create_token_is_40_hex_chars(self) -> None:
        """20 random bytes -> 40 hex chars -> 160 bits of entropy."""
        token = create_token()
        assert re.fullmatch(r"[0-9a-f]{40}", token)

    def test_create_token_is_random(self) -> None:
        """50 draws must produce 50 distinct tokens."""
        assert len({create_token() for _ in range(50)}) == 50


class TestVerificationToken:
    """MFA codes are six zero-padded digits drawn uniformly."""

    def test_always_six_digits(self) -> None:
        """Every generated code must be exactly six digits."""
        for _ in range(500):
            assert re.fullmatch(r"\d{6}", create_verification_token())

    def test_zero_padded(self) -> None:
        """Small draws keep their leading zeros."""
        with patch("auth.tokens.secrets.randbelow", return_value=42):
            assert create_verification_token() == "000042"

    def test_range_bounds(self) -> None:
        """The lowest and highest draws map to 000000 and 999999."""
        with patch("auth.tokens.secrets.randbelow", return_value=0):
            assert create_verification_token() == "000000"
        with patch("auth.tokens.secrets.randbelow", return_value=999_999):
            assert create_verification_token() == "999999"

    def test_draws_from_full_range(self) -> None:
        """The code comes from a single randbelow(10**6) draw."""
        with patch("auth.tokens.secrets.randbelow", return_value=7) as randbelow:
            create_verification_token()
        randbelow.assert_called_once_with(1_000_000)


class TestJwt:
    """Session tokens carry only the user id and never raise on decode."""

    def test_round_trip_returns_id_only(self) -> None:
        """Decoding a fresh token must return exactly {"id": ...}."""
        token = create_jwt_token({"id": 7}, SETTINGS)
        assert decode_jwt_token(token, SETTINGS) == DecodedToken(True, {"id": 7})

    def test_accepts_user_objects(self) -> None:
        """A User dataclass can be signed directly."""
        token = create_jwt_token(User(email="a@x.com", id=3, hashed_password="secret-hash"), SETTINGS)
        decoded = decode_jwt_token(token, SETTINGS)
        assert decoded.payload == {"id": 3}

    def test_token_carries_no_profile_claims(self) -> None:
        """Only id, iat and exp may appear in the signed claims."""
        token = create_jwt_token(User(email="a@x.com", id=3, firstname="Ada"), SETTINGS)
        claims = jwt.get_unverified_claims(token)
        assert set(claims) == {"id", "iat", "exp"}

    def test_default_expiry_is_thirty_days(self) -> None:
        """exp - iat must equal the 30-day default lifetime."""
        token = create_jwt_token({"id": 1}, SETTINGS)
        claims = jwt.get_unverified_claims(token)
        assert claims["exp"] - claims["iat"] == DEFAULT_TOKEN_EXPIRE_SECONDS == 30 * 24 * 3600

    def test_expired_token_is_invalid(self) -> None:
        """A token past its exp must decode as invalid."""
        expired_settings = make_settings(token_expire_seconds=-10)
        token = create_jwt_token({"id": 1}, expired_settings)
        assert decode_jwt_token(token, SETTINGS) == DecodedToken(False, None)

    def test_other_secret_is_invalid(self) -> None:
        """A token signed with another secret must decode as invalid."""
        other = make_settings(secret_key="another-secret-key-that-is-long-enough-000")
        token = create_jwt_token({"id": 1}, other)
        assert decode_jwt_token(token, SETTINGS) == DecodedToken(False, None)

    def test_tampered_payload_is_invalid(self) -> None:
        """Swapping in another payload under the original signature must fail."""
        header, _payload, signature = create_jwt_token({"id": 1}, SETTINGS).split(".")
        _h, forged_payload, _s = create_jwt_token({"id": 2}, SETTINGS).split(".")
        forged = ".".join([header, forged_payload, signature])
        assert decode_jwt_token(forged, SETTINGS) == DecodedToken(False, None)

    def test_stripped_signature_is_invalid(self) -> None:
        """A token with its signature removed must fail."""
        header, payload, _sig = create_jwt_token({"id": 1}, SETTINGS).split(".")
        assert decode_jwt_token(f"{header}.{payload}.", SETTINGS).is_valid is False

    def test_token_without_id_is_invalid(self) -> None:
        """A correctly signed token without an id claim is not a session token."""
        token = jwt.encode({"sub": "someone"}, TEST_SECRET, algorithm="HS256")
        assert decode_jwt_token(token, SETTINGS) == DecodedToken(False, None)

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c", "....", "\udcff.a.b", None, 12345])
    def test_malformed_input_never_raises(self, garbage) -> None:
        """Garbage, including strings that cannot be UTF-8 encoded, decodes as invalid."""
        assert decode_jwt_token(garbage, SETTINGS) == DecodedToken(False, None)

    def test_token_options_defaults(self) -> None:
        """Options come from settings: secret, HS256, 30 days."""
        options = get_token_options(SETTINGS)
        assert options.secret == TEST_SECRET
        assert options.algorithm == "HS256"
        assert options.expires_in == DEFAULT_TOKEN_EXPIRE_SECONDS


class TestPasswords:
    """bcrypt helpers."""

    def test_hash_and_verify(self) -> None:
        """A hash verifies its own password and rejects others."""
        hashed = hash_password("Passw0rdOK")
        assert hashed != "Passw0rdOK"
        assert verify_password("Passw0rdOK", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_against_garbage_hash_is_false(self) -> None:
        """A corrupt stored hash is a mismatch, not an error."""
        assert verify_password("Passw0rdOK", "not-a-bcrypt-hash") is False

    def test_multibyte_password_over_byte_cap_rejected(self) -> None:
        """72 characters but 141 bytes must raise ValidationError, not crash bcrypt."""
        assert len(MULTIBYTE_PASSWORD) == 72
        with pytest.raises(ValidationError, match=f"{PASSWORD_MAX_BYTES} bytes"):
            hash_password(MULTIBYTE_PASSWORD)

    def test_password_at_byte_cap_accepted(self) -> None:
        """The byte cap is inclusive."""
        plain = "Aa1" + "x" * 69
        assert verify_password(plain, hash_password(plain))

    def test_overlong_password_never_verifies(self) -> None:
        """A login attempt with an overlong password is a plain mismatch."""
        assert verify_password(MULTIBYTE_PASSWORD, hash_password("Passw0rdOK")) is False
