from dataclasses import dataclass
from typing import Annotated
import logging

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlist.core.security import decode_admin_token
from giftlist.db.session import async_session_factory, get_db
from giftlist.services.visitor_identity import VisitorIdentity, read_visitor_cookie, resolve_or_create


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
logger = logging.getLogger("giftlist.auth")

ADMIN_COOKIE_NAME = "admin_token"


@dataclass(frozen=True)
class AdminVerdict:
    is_admin: bool
    identity: str | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request (background tasks)."""
    return async_session_factory


def _extract_admin_token(request: Request, cookie_token: str | None) -> str | None:
    if cookie_token:
        return cookie_token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def get_admin_verdict(
    request: Request,
    admin_token: str | None = Cookie(default=None, alias=ADMIN_COOKIE_NAME),
) -> AdminVerdict:
    token = _extract_admin_token(request, admin_token)
    if not token:
        return AdminVerdict(is_admin=False)
    email = decode_admin_token(token)
    if email is None:
        logger.info("Admin token invalid path=%s", request.url.path)
        return AdminVerdict(is_admin=False)
    return AdminVerdict(is_admin=True, identity=email)


async def require_admin(
    request: Request,
    admin_token: str | None = Cookie(default=None, alias=ADMIN_COOKIE_NAME),
) -> AdminVerdict:
    token = _extract_admin_token(request, admin_token)
    if not token:
        logger.info(
            "Admin token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    email = decode_admin_token(token)
    if email is None:
        logger.info("Admin token rejected path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return AdminVerdict(is_admin=True, identity=email)


def get_visitor_identity(request: Request) -> VisitorIdentity:
    return resolve_or_create(read_visitor_cookie(request))


def get_known_visitor_id(request: Request) -> str | None:
    """Visitor id for read-only views; never generates one."""
    identity = resolve_or_create(read_visitor_cookie(request))
    return None if identity.is_new else identity.visitor_id


AdminVerdictDep = Annotated[AdminVerdict, Depends(get_admin_verdict)]
RequireAdminDep = Annotated[AdminVerdict, Depends(require_admin)]
VisitorIdentityDep = Annotated[VisitorIdentity, Depends(get_visitor_identity)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
