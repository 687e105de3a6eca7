import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from giftlist.api.deps import ADMIN_COOKIE_NAME, AdminVerdictDep, DbSessionDep
from giftlist.core.audit import AuditAction, audit_admin_login, audit_admin_login_failed, audit_log
from giftlist.core.config import settings
from giftlist.core.errors import StorageError
from giftlist.core.mailer import send_otp_email
from giftlist.core.rate_limit import check_rate_limit
from giftlist.core.security import create_admin_token, verify_admin_password
from giftlist.schemas.auth import AdminStatus, LoginRequest, LoginResponse, PasswordLoginRequest
from giftlist.services import admin_auth


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("giftlist.auth")


def _set_admin_cookie(response: Response, email: str) -> None:
    response.set_cookie(
        ADMIN_COOKIE_NAME,
        create_admin_token(email),
        httponly=True,
        secure=not settings.is_local,
        samesite="strict",
        path="/",
        max_age=settings.admin_token_expire_minutes * 60,
    )


@router.post("/login", response_model=LoginResponse)
async def request_login_link(
    payload: LoginRequest,
    request: Request,
    db: DbSessionDep,
) -> LoginResponse:
    check_rate_limit(request, key_suffix="admin-login")

    logger.info(
        "Admin login link requested id=%s email=%s",
        request.headers.get("X-Request-Id"),
        payload.email,
    )
    if not admin_auth.is_admin_email(payload.email):
        audit_admin_login_failed(request, "email_not_allowed", payload.email)
        return LoginResponse()

    try:
        otp = await admin_auth.issue_otp(db, payload.email)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"issue_otp email={payload.email}: {exc}") from exc

    login_url = f"{settings.backend_url.rstrip('/')}/auth/verify?token={otp.token}"
    if not await send_otp_email(payload.email, login_url):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send login email",
        )

    audit_log(AuditAction.ADMIN_LOGIN_REQUESTED, request=request, actor=payload.email)
    return LoginResponse()


@router.get("/verify")
async def verify_login_link(
    request: Request,
    db: DbSessionDep,
    token: str = Query(default="", max_length=64),
) -> RedirectResponse:
    frontend = settings.frontend_url.rstrip("/")
    try:
        email = await admin_auth.consume_otp(db, token)
    except SQLAlchemyError:
        logger.exception("OTP verification failed with a database error")
        await db.rollback()
        email = None

    if email is None or not admin_auth.is_admin_email(email):
        audit_admin_login_failed(request, "invalid_token")
        return RedirectResponse(url=f"{frontend}/?error=invalid_token", status_code=status.HTTP_302_FOUND)

    response = RedirectResponse(url=f"{frontend}/?login=success", status_code=status.HTTP_302_FOUND)
    _set_admin_cookie(response, email)
    audit_admin_login(request, email, method="otp")
    return response


@router.post("/password", response_model=AdminStatus)
async def password_login(
    payload: PasswordLoginRequest,
    request: Request,
    response: Response,
) -> AdminStatus:
    check_rate_limit(request, key_suffix="admin-password")

    if not settings.admin_password_hash or settings.primary_admin_email is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Password login is disabled")

    if not verify_admin_password(payload.password):
        audit_admin_login_failed(request, "bad_password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    email = settings.primary_admin_email
    _set_admin_cookie(response, email)
    audit_admin_login(request, email, method="password")
    return AdminStatus(is_admin=True, email=email)


@router.get("/me", response_model=AdminStatus)
async def get_admin_status(admin: AdminVerdictDep) -> AdminStatus:
    return AdminStatus(is_admin=admin.is_admin, email=admin.identity)


@router.post("/logout")
async def logout(request: Request, response: Response, admin: AdminVerdictDep) -> dict[str, bool]:
    response.delete_cookie(
        ADMIN_COOKIE_NAME,
        path="/",
        secure=not settings.is_local,
        httponly=True,
        samesite="strict",
    )
    if admin.is_admin:
        audit_log(AuditAction.ADMIN_LOGOUT, request=request, actor=admin.identity)
    return {"success": True}
