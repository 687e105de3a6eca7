"""
Claim protocol: who may mark a gift as bought, and who may undo it.

Per gift the derived state is either unclaimed or claimed by one visitor.

    desired  current             requester          result
    -------  ------------------  -----------------  ----------------------
    bought   unclaimed           anyone             claim it       -> OK
    bought   claimed by self     self               no-op          -> OK
    bought   claimed by other    anyone, incl admin unchanged      -> CONFLICT
    release  unclaimed           anyone             no-op          -> OK
    release  claimed by self     self               delete row     -> OK
    release  claimed by other    visitor            unchanged      -> FORBIDDEN
    release  claimed by other    admin              delete row     -> OK

Admins cannot take over a claim in one step; they release it first.

Contested requests are ordinary outcomes, not exceptions. Exceptions are
reserved for bad input (ValidationError), unknown gifts (NotFoundError) and
the store failing (StorageError).
"""
from dataclasses import dataclass
from enum import Enum
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.core.errors import ClaimWriteConflict, NotFoundError, StorageError, ValidationError
from giftlist.services import catalog, claim_ledger

logger = logging.getLogger("giftlist.claims")

MSG_ALREADY_BOUGHT = "This item is already marked as bought by another user"
MSG_NOT_YOURS = "Only the user who bought this item or an admin can mark it as not bought"


class ClaimStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class ClaimRequest:
    gift_id: int
    visitor_id: str
    desired_bought: bool
    is_admin: bool = False
    admin_identity: str | None = None


@dataclass(frozen=True)
class ClaimOutcome:
    status: ClaimStatus
    bought: bool
    bought_by: str | None
    changed: bool = False
    message: str | None = None
    previous_claimant: str | None = None

    @property
    def success(self) -> bool:
        return self.status is ClaimStatus.OK

    @property
    def admin_override(self) -> bool:
        return (
            self.changed
            and self.previous_claimant is not None
            and self.bought_by is None
        )

    @property
    def metric_label(self) -> str:
        if self.status is not ClaimStatus.OK:
            return self.status.value
        if not self.changed:
            return "noop"
        if self.bought:
            return "claimed"
        return "admin_release" if self.previous_claimant else "released"


def _ok(bought_by: str | None, changed: bool, previous_claimant: str | None = None) -> ClaimOutcome:
    return ClaimOutcome(
        status=ClaimStatus.OK,
        bought=bought_by is not None,
        bought_by=bought_by,
        changed=changed,
        previous_claimant=previous_claimant,
    )


def _conflict(claimant: str) -> ClaimOutcome:
    return ClaimOutcome(status=ClaimStatus.CONFLICT, bought=True, bought_by=claimant, message=MSG_ALREADY_BOUGHT)


def _forbidden(claimant: str) -> ClaimOutcome:
    return ClaimOutcome(status=ClaimStatus.FORBIDDEN, bought=True, bought_by=claimant, message=MSG_NOT_YOURS)


def _validate(request: ClaimRequest) -> None:
    if isinstance(request.gift_id, bool) or not isinstance(request.gift_id, int) or request.gift_id <= 0:
        raise ValidationError("Invalid gift id")
    if not isinstance(request.desired_bought, bool):
        raise ValidationError("bought must be a boolean")
    if not request.visitor_id:
        raise ValidationError("Missing visitor identity")


async def _claim(db: AsyncSession, request: ClaimRequest) -> ClaimOutcome:
    current = await claim_ledger.get_active_claim(db, request.gift_id)
    if current is not None:
        if current.visitor_id == request.visitor_id:
            return _ok(current.visitor_id, changed=False)
        return _conflict(current.visitor_id)

    try:
        await claim_ledger.set_claimed(db, request.gift_id, request.visitor_id)
    except ClaimWriteConflict:
        # Lost a race: report whatever the store now says.
        if not await catalog.gift_exists(db, request.gift_id):
            raise NotFoundError() from None
        winner = await claim_ledger.get_active_claim(db, request.gift_id)
        if winner is None:
            raise StorageError(f"claim write rejected but gift_id={request.gift_id} has no active claim") from None
        if winner.visitor_id == request.visitor_id:
            return _ok(winner.visitor_id, changed=False)
        logger.info(
            "Claim race lost gift_id=%s visitor_id=%s winner=%s",
            request.gift_id,
            request.visitor_id,
            winner.visitor_id,
        )
        return _conflict(winner.visitor_id)

    return _ok(request.visitor_id, changed=True)


async def _release(db: AsyncSession, request: ClaimRequest) -> ClaimOutcome:
    current = await claim_ledger.get_active_claim(db, request.gift_id)
    if current is None:
        return _ok(None, changed=False)

    claimant = current.visitor_id
    is_own = claimant == request.visitor_id
    if not is_own and not request.is_admin:
        return _forbidden(claimant)

    # Compare-and-delete: only remove the row we looked at.
    deleted = await claim_ledger.clear_claim(db, request.gift_id, visitor_id=claimant)
    if deleted:
        return _ok(None, changed=True, previous_claimant=None if is_own else claimant)

    # Someone changed the claim between our read and delete.
    now_held = await claim_ledger.get_active_claim(db, request.gift_id)
    if now_held is None:
        return _ok(None, changed=False)
    if now_held.visitor_id != request.visitor_id and not request.is_admin:
        return _forbidden(now_held.visitor_id)
    raise StorageError(f"release of gift_id={request.gift_id} raced with another writer")


async def apply_claim(db: AsyncSession, request: ClaimRequest) -> ClaimOutcome:
    """Run one claim/release request through the state machine."""
    _validate(request)

    if not await catalog.gift_exists(db, request.gift_id):
        raise NotFoundError()

    if request.desired_bought:
        outcome = await _claim(db, request)
    else:
        outcome = await _release(db, request)

    logger.info(
        "Claim request gift_id=%s visitor_id=%s desired=%s admin=%s status=%s changed=%s bought_by=%s",
        request.gift_id,
        request.visitor_id,
        request.desired_bought,
        request.is_admin,
        outcome.status.value,
        outcome.changed,
        outcome.bought_by,
    )
    return outcome


async def current_claimant(db: AsyncSession, gift_id: int) -> str | None:
    """Authoritative claimant for a gift; NotFoundError once the gift is gone."""
    if not await catalog.gift_exists(db, gift_id):
        raise NotFoundError()
    claim = await claim_ledger.get_active_claim(db, gift_id)
    return claim.visitor_id if claim else None
