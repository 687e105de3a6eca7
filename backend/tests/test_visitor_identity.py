from uuid import uuid4

from fastapi import Response

from giftlist.core.config import settings
from giftlist.services.visitor_identity import (
    LEGACY_COOKIE_NAME,
    SECURE_COOKIE_NAME,
    is_valid_visitor_id,
    resolve_or_create,
    set_visitor_cookie,
)


class TestResolveOrCreate:
    def test_existing_id_is_kept(self):
        visitor_id = str(uuid4())
        identity = resolve_or_create(visitor_id)
        assert identity.visitor_id == visitor_id
        assert identity.is_new is False

    def test_missing_id_is_generated(self):
        identity = resolve_or_create(None)
        assert identity.is_new is True
        assert is_valid_visitor_id(identity.visitor_id)

    def test_generated_ids_differ(self):
        assert resolve_or_create(None).visitor_id != resolve_or_create(None).visitor_id

    def test_malformed_id_is_replaced(self):
        for token in ["", "abc", "x" * 36, str(uuid4()) + "-extra"]:
            identity = resolve_or_create(token)
            assert identity.is_new is True
            assert identity.visitor_id != token


class TestVisitorCookie:
    def test_local_cookie(self):
        response = Response()
        visitor_id = str(uuid4())
        set_visitor_cookie(response, visitor_id)

        header = response.headers["set-cookie"]
        assert header.startswith(f"{LEGACY_COOKIE_NAME}={visitor_id}")
        assert "HttpOnly" in header
        assert "samesite=strict" in header.lower()
        assert f"Max-Age={365 * 24 * 60 * 60}" in header
        assert "Secure" not in header

    def test_secure_cookie_outside_local(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        response = Response()
        set_visitor_cookie(response, str(uuid4()))

        header = response.headers["set-cookie"]
        assert header.startswith(f"{SECURE_COOKIE_NAME}=")
        assert "Secure" in header
        assert "Path=/" in header

    def test_secure_cookie_name_is_read(self, client, admin_client):
        gift = admin_client.post("/gifts", json={"title": "Socks"}).json()
        visitor_id = str(uuid4())
        client.cookies.set(SECURE_COOKIE_NAME, visitor_id)

        res = client.post("/toggle", json={"giftId": gift["id"], "bought": True})

        assert res.json()["boughtBy"] == visitor_id
