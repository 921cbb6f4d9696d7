"""
Unit tests for password hashing and tokens.
"""
import uuid
from datetime import timedelta

import jwt
import pytest

from storefront.config import get_settings
from storefront.core.exceptions import AuthenticationError
from storefront.core.security import (
    ACCESS,
    REFRESH,
    VERIFY,
    _encode,
    create_access_token,
    create_refresh_token,
    create_verification_token,
    decode_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    is_strong_password,
    token_user_id,
    verify_password,
)


class TestPasswords:
    """Password hashing and policy."""

    @pytest.mark.unit
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Str0ng!Pass")
        assert hashed != "Str0ng!Pass"
        assert verify_password("Str0ng!Pass", hashed)
        assert not verify_password("wrong", hashed)

    @pytest.mark.unit
    def test_verify_with_malformed_hash(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    @pytest.mark.unit
    def test_verify_over_long_password_fails_cleanly(self) -> None:
        hashed = hash_password("Str0ng!Pass")
        assert verify_password("Aa1!" + "é" * 60, hashed) is False

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "password,expected",
        [
            ("Str0ng!Pass", True),
            ("weakpass", False),
            ("NoDigits!!", False),
            ("n0upper!!", False),
            ("N0LOWER!!", False),
            ("NoSpecial12", False),
            ("Sh0rt!", False),
            ("Aa1!" + "é" * 34, True),
            ("Aa1!" + "é" * 60, False),
        ],
    )
    def test_password_policy(self, password: str, expected: bool) -> None:
        assert is_strong_password(password) is expected


class TestTokens:
    """JWT issue and verification."""

    @pytest.mark.unit
    def test_access_token_round_trip(self) -> None:
        user_id = uuid.uuid4()
        payload = decode_token(create_access_token(user_id), ACCESS)
        assert token_user_id(payload) == user_id
        assert payload["type"] == ACCESS

    @pytest.mark.unit
    def test_token_type_is_enforced(self) -> None:
        token = create_verification_token(uuid.uuid4(), email="a@example.com")
        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_token(token, ACCESS)
        assert decode_token(token, VERIFY)["email"] == "a@example.com"

    @pytest.mark.unit
    def test_refresh_token_uses_its_own_secret(self) -> None:
        token = create_refresh_token(uuid.uuid4())
        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(token, get_settings().jwt_secret, algorithms=["HS256"])
        assert decode_token(token, REFRESH)["type"] == REFRESH

    @pytest.mark.unit
    def test_expired_token(self) -> None:
        token = _encode(uuid.uuid4(), ACCESS, timedelta(seconds=-5))
        with pytest.raises(AuthenticationError, match="Token expired"):
            decode_token(token, ACCESS)

    @pytest.mark.unit
    def test_tampered_token(self) -> None:
        token = create_access_token(uuid.uuid4())
        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_token(token[:-2] + "xx", ACCESS)

    @pytest.mark.unit
    def test_tokens_are_unique(self) -> None:
        user_id = uuid.uuid4()
        assert create_access_token(user_id) != create_access_token(user_id)


class TestResetTokens:
    @pytest.mark.unit
    def test_only_digest_is_stored(self) -> None:
        raw, digest = generate_reset_token()
        assert len(raw) == 40
        assert digest == hash_reset_token(raw)
        assert digest != raw
