"""
Unit tests for security utilities.
"""
from datetime import timedelta

from scanfarma.core.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_token,
)


class TestPasswordHashing:
    """Tests for password hashing functions."""

    def test_hash_password(self):
        """Test that password hashing produces a hash."""
        password = "mysecretpassword"
        hashed = hash_password(password)

        assert hashed != password
        assert len(hashed) > 20

    def test_hash_password_different_each_time(self):
        """Test that hashing same password produces different hashes."""
        assert hash_password("mysecretpassword") != hash_password("mysecretpassword")

    def test_verify_password(self):
        hashed = hash_password("mysecretpassword")

        assert verify_password("mysecretpassword", hashed) is True
        assert verify_password("wrongpassword", hashed) is False


class TestJWTTokens:
    """Tests for JWT token functions."""

    def test_access_token_round_trip(self):
        """A fresh token decodes to its subject and type."""
        token = create_access_token(subject="user-123")
        payload = decode_token(token)

        assert payload is not None
        assert payload["sub"] == "user-123"
        assert payload["type"] == "access"

    def test_expired_token_rejected(self):
        token = create_access_token(subject="user-123", expires_delta=timedelta(seconds=-1))
        assert decode_token(token) is None

    def test_garbage_token_rejected(self):
        assert decode_token("not-a-jwt") is None
