import logging
import time

from fastapi import APIRouter, BackgroundTasks, Request, Response, status
from fastapi.responses import JSONResponse

from giftlist.api.deps import AdminVerdictDep, DbSessionDep, SessionFactoryDep, VisitorIdentityDep
from giftlist.core.audit import AuditAction, audit_claim_action, client_ip
from giftlist.core.claim_metrics import claim_metrics
from giftlist.core.errors import NotFoundError, StorageError
from giftlist.schemas.gift import ClaimRejected, ClaimToggleRequest, ClaimToggleResponse
from giftlist.services.abuse_guard import record_visit_in_background
from giftlist.services.claim_protocol import ClaimOutcome, ClaimRequest, ClaimStatus, apply_claim
from giftlist.services.visitor_identity import set_visitor_cookie


router = APIRouter(tags=["claims"])
logger = logging.getLogger("giftlist.claims")

_REJECTION_STATUS = {
    ClaimStatus.CONFLICT: status.HTTP_409_CONFLICT,
    ClaimStatus.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}


def _audit_success(request: Request, claim: ClaimRequest, outcome: ClaimOutcome) -> None:
    if not outcome.changed:
        return
    if outcome.bought:
        action = AuditAction.CLAIM
    elif outcome.admin_override:
        action = AuditAction.ADMIN_RELEASE
    else:
        action = AuditAction.RELEASE
    audit_claim_action(
        action,
        request,
        visitor_id=claim.visitor_id,
        gift_id=claim.gift_id,
        admin_email=claim.admin_identity if outcome.admin_override else None,
        previous_claimant=outcome.previous_claimant,
    )


@router.post(
    "/toggle",
    response_model=ClaimToggleResponse,
    responses={
        status.HTTP_403_FORBIDDEN: {"model": ClaimRejected},
        status.HTTP_409_CONFLICT: {"model": ClaimRejected},
    },
)
async def toggle_bought(
    payload: ClaimToggleRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: DbSessionDep,
    session_factory: SessionFactoryDep,
    visitor: VisitorIdentityDep,
    admin: AdminVerdictDep,
):
    claim = ClaimRequest(
        gift_id=payload.gift_id,
        visitor_id=visitor.visitor_id,
        desired_bought=payload.bought,
        is_admin=admin.is_admin,
        admin_identity=admin.identity,
    )

    started = time.perf_counter()
    try:
        outcome = await apply_claim(db, claim)
    except NotFoundError:
        claim_metrics.record(claim.desired_bought, "not_found", (time.perf_counter() - started) * 1000)
        raise
    except StorageError:
        claim_metrics.record(claim.desired_bought, "storage_error", (time.perf_counter() - started) * 1000)
        raise
    claim_metrics.record(claim.desired_bought, outcome.metric_label, (time.perf_counter() - started) * 1000)

    if not outcome.success:
        rejected = ClaimRejected(
            error=outcome.message or "",
            reason=outcome.status.value,
            bought=outcome.bought,
            bought_by=outcome.bought_by,
        )
        return JSONResponse(
            status_code=_REJECTION_STATUS[outcome.status],
            content=rejected.model_dump(by_alias=True),
        )

    if visitor.is_new:
        set_visitor_cookie(response, visitor.visitor_id)
    background_tasks.add_task(
        record_visit_in_background,
        session_factory,
        visitor.visitor_id,
        client_ip(request),
    )
    _audit_success(request, claim, outcome)

    return ClaimToggleResponse(bought=outcome.bought, bought_by=outcome.bought_by)
