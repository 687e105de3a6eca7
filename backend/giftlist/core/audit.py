"""Audit logging for admin actions and claim changes."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("giftlist.audit")

_SENSITIVE_KEYS = ("password", "token", "secret", "key", "authorization")


class AuditAction(str, Enum):
    # Admin authentication
    ADMIN_LOGIN_REQUESTED = "admin_login_requested"
    ADMIN_LOGIN = "admin_login"
    ADMIN_LOGIN_FAILED = "admin_login_failed"
    ADMIN_LOGOUT = "admin_logout"

    # Catalog
    GIFT_CREATE = "gift_create"
    GIFT_UPDATE = "gift_update"
    GIFT_DELETE = "gift_delete"

    # Claims
    CLAIM = "claim"
    RELEASE = "release"
    ADMIN_RELEASE = "admin_release"

    # Abuse / throttling
    VISITOR_LIMIT_EXCEEDED = "visitor_limit_exceeded"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    actor: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        actor: Admin email or visitor id performing the action
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if actor is not None:
        event["actor"] = str(actor)

    if request is not None:
        event["ip"] = client_ip(request)
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in _SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_admin_login(request: Request, email: str, method: str) -> None:
    audit_log(AuditAction.ADMIN_LOGIN, request=request, actor=email, details={"method": method})


def audit_admin_login_failed(request: Request, reason: str, email: str | None = None) -> None:
    audit_log(
        AuditAction.ADMIN_LOGIN_FAILED,
        request=request,
        actor=email,
        details={"reason": reason},
        success=False,
    )


def audit_gift_action(
    action: AuditAction,
    request: Request,
    admin_email: str | None,
    gift_id: int,
    details: dict[str, Any] | None = None,
) -> None:
    event_details: dict[str, Any] = {"gift_id": gift_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, actor=admin_email, details=event_details)


def audit_claim_action(
    action: AuditAction,
    request: Request | None,
    visitor_id: str,
    gift_id: int,
    admin_email: str | None = None,
    previous_claimant: str | None = None,
) -> None:
    details: dict[str, Any] = {"gift_id": gift_id, "visitor_id": visitor_id}
    if previous_claimant is not None:
        details["previous_claimant"] = previous_claimant
    audit_log(action, request=request, actor=admin_email or visitor_id, details=details)


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int) -> None:
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
