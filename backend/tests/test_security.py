"""
Admin tokens and password hashing.
"""
from datetime import datetime, timedelta, timezone

from jose import jwt

from giftlist.core.config import settings
from giftlist.core.security import (
    create_admin_token,
    decode_admin_token,
    generate_otp_token,
    get_password_hash,
    verify_admin_password,
)


class TestAdminToken:
    def test_round_trip_carries_email(self):
        token = create_admin_token("admin@example.com")
        assert decode_admin_token(token) == "admin@example.com"

    def test_token_has_admin_type_and_expiry(self):
        token = create_admin_token("admin@example.com", expires_delta_minutes=5)
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        assert payload["type"] == "admin"
        assert "exp" in payload

    def test_other_token_types_grant_nothing(self):
        payload = {
            "sub": "admin@example.com",
            "type": "refresh",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        }
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        assert decode_admin_token(token) is None

    def test_untyped_token_grants_nothing(self):
        payload = {"sub": "admin@example.com", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        assert decode_admin_token(token) is None

    def test_expired_token(self):
        payload = {
            "sub": "admin@example.com",
            "type": "admin",
            "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
        }
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        assert decode_admin_token(token) is None

    def test_wrong_key(self):
        payload = {"sub": "admin@example.com", "type": "admin"}
        token = jwt.encode(payload, "another-secret-key-that-is-long-enough", algorithm="HS256")
        assert decode_admin_token(token) is None

    def test_garbage(self):
        for token in ["invalid.token.here", "", "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.invalid"]:
            assert decode_admin_token(token) is None


class TestAdminPassword:
    def test_bcrypt_hash(self):
        hashed = get_password_hash("s3cret")
        assert hashed.startswith("$2b$")
        assert hashed != get_password_hash("s3cret")

    def test_verify_against_configured_hash(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_password_hash", get_password_hash("s3cret"))
        assert verify_admin_password("s3cret") is True
        assert verify_admin_password("S3CRET") is False

    def test_no_hash_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_password_hash", "")
        assert verify_admin_password("anything") is False

    def test_malformed_hash(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_password_hash", "not-a-bcrypt-hash")
        assert verify_admin_password("anything") is False


def test_otp_tokens_are_unique():
    tokens = {generate_otp_token() for _ in range(50)}
    assert len(tokens) == 50
