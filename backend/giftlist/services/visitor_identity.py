"""
Anonymous visitor identity.

A visitor id is an opaque uuid kept in a long-lived cookie. Holding it is
what lets a browser release its own claims, so a well-formed id that arrives
with a request is never replaced.
"""
from dataclasses import dataclass
import logging
from uuid import UUID, uuid4

from fastapi import Request, Response

from giftlist.core.config import settings

logger = logging.getLogger("giftlist.visitors")

SECURE_COOKIE_NAME = "__Host-visitor_id"
LEGACY_COOKIE_NAME = "visitor_id"


@dataclass(frozen=True)
class VisitorIdentity:
    visitor_id: str
    is_new: bool


def is_valid_visitor_id(token: str | None) -> bool:
    if not token or len(token) > 36:
        return False
    try:
        UUID(token)
    except ValueError:
        return False
    return True


def resolve_or_create(token: str | None) -> VisitorIdentity:
    if is_valid_visitor_id(token):
        return VisitorIdentity(visitor_id=token, is_new=False)
    if token:
        logger.info("Ignoring malformed visitor id cookie length=%d", len(token))
    return VisitorIdentity(visitor_id=str(uuid4()), is_new=True)


def read_visitor_cookie(request: Request) -> str | None:
    return request.cookies.get(SECURE_COOKIE_NAME) or request.cookies.get(LEGACY_COOKIE_NAME)


def set_visitor_cookie(response: Response, visitor_id: str) -> None:
    # __Host- cookies must be Secure, so local HTTP falls back to the plain name
    secure = not settings.is_local
    response.set_cookie(
        SECURE_COOKIE_NAME if secure else LEGACY_COOKIE_NAME,
        visitor_id,
        httponly=True,
        secure=secure,
        samesite="strict",
        path="/",
        max_age=settings.visitor_cookie_max_age_days * 24 * 60 * 60,
    )
