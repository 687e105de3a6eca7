"""
Service-level tests for the claim state machine against a real SQLite file.
Covers: claim/release laws, idempotence, cascade on delete, concurrent claims,
and writes that lose to another session between read and write.
"""
import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from giftlist.core.errors import ClaimWriteConflict, NotFoundError, StorageError, ValidationError
from giftlist.models.models import Claim
from giftlist.schemas.gift import GiftCreate
from giftlist.services import catalog, claim_ledger
from giftlist.services.claim_protocol import (
    MSG_ALREADY_BOUGHT,
    MSG_NOT_YOURS,
    ClaimRequest,
    ClaimStatus,
    apply_claim,
    current_claimant,
)

pytestmark = pytest.mark.anyio


def new_visitor() -> str:
    return str(uuid4())


async def create_gift(session_factory, title: str = "Kettle") -> int:
    async with session_factory() as db:
        gift = await catalog.create_gift(db, GiftCreate(title=title))
        return gift.id


async def claim(session_factory, gift_id: int, visitor_id: str, bought: bool = True, is_admin: bool = False):
    async with session_factory() as db:
        return await apply_claim(
            db,
            ClaimRequest(
                gift_id=gift_id,
                visitor_id=visitor_id,
                desired_bought=bought,
                is_admin=is_admin,
                admin_identity="admin@example.com" if is_admin else None,
            ),
        )


async def claimant(session_factory, gift_id: int) -> str | None:
    async with session_factory() as db:
        return await current_claimant(db, gift_id)


async def active_rows(session_factory, gift_id: int) -> int:
    async with session_factory() as db:
        return await claim_ledger.count_claims(db, gift_id, active_only=True)


class TestClaim:
    async def test_claim_unclaimed_gift(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1 = new_visitor()

        outcome = await claim(session_factory, gift_id, v1)

        assert outcome.status is ClaimStatus.OK
        assert outcome.bought is True
        assert outcome.bought_by == v1
        assert outcome.changed is True
        assert await claimant(session_factory, gift_id) == v1

    async def test_claim_again_by_same_visitor_is_noop(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1 = new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, v1)

        assert outcome.success
        assert outcome.changed is False
        assert outcome.bought_by == v1
        async with session_factory() as db:
            assert await claim_ledger.count_claims(db, gift_id) == 1

    async def test_conflict_leaves_state_unchanged(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1, v2 = new_visitor(), new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, v2)

        assert outcome.status is ClaimStatus.CONFLICT
        assert outcome.bought_by == v1
        assert outcome.message == MSG_ALREADY_BOUGHT
        assert await claimant(session_factory, gift_id) == v1
        async with session_factory() as db:
            assert await claim_ledger.get_claim_for(db, gift_id, v2) is None

    async def test_admin_cannot_take_over_claim(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1, admin_visitor = new_visitor(), new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, admin_visitor, is_admin=True)

        assert outcome.status is ClaimStatus.CONFLICT
        assert await claimant(session_factory, gift_id) == v1

    async def test_reclaim_after_own_release_reuses_row(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1 = new_visitor()
        await claim(session_factory, gift_id, v1)
        await claim(session_factory, gift_id, v1, bought=False)

        outcome = await claim(session_factory, gift_id, v1)

        assert outcome.success and outcome.changed
        async with session_factory() as db:
            assert await claim_ledger.count_claims(db, gift_id) == 1


class TestRelease:
    async def test_release_unclaimed_is_noop(self, session_factory):
        gift_id = await create_gift(session_factory)

        outcome = await claim(session_factory, gift_id, new_visitor(), bought=False)

        assert outcome.success
        assert outcome.changed is False
        assert outcome.bought is False
        assert outcome.bought_by is None

    async def test_release_own_claim(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1 = new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, v1, bought=False)

        assert outcome.success and outcome.changed
        assert outcome.bought_by is None
        assert outcome.admin_override is False
        assert await claimant(session_factory, gift_id) is None

        again = await claim(session_factory, gift_id, v1, bought=False)
        assert again.success and not again.changed

    async def test_other_visitor_cannot_release(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1, v2 = new_visitor(), new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, v2, bought=False)

        assert outcome.status is ClaimStatus.FORBIDDEN
        assert outcome.message == MSG_NOT_YOURS
        assert outcome.bought_by == v1
        assert await claimant(session_factory, gift_id) == v1

    async def test_admin_releases_any_claim(self, session_factory):
        gift_id = await create_gift(session_factory)
        v1 = new_visitor()
        await claim(session_factory, gift_id, v1)

        outcome = await claim(session_factory, gift_id, new_visitor(), bought=False, is_admin=True)

        assert outcome.success and outcome.changed
        assert outcome.admin_override is True
        assert outcome.previous_claimant == v1
        assert outcome.metric_label == "admin_release"
        assert await claimant(session_factory, gift_id) is None
        assert await active_rows(session_factory, gift_id) == 0


class TestScenarios:
    async def test_claim_conflict_release_reclaim(self, session_factory):
        g1 = await create_gift(session_factory, "G1")
        v1, v2 = new_visitor(), new_visitor()

        first = await claim(session_factory, g1, v1)
        assert first.success and first.bought_by == v1

        contested = await claim(session_factory, g1, v2)
        assert contested.status is ClaimStatus.CONFLICT and contested.bought_by == v1
        assert await claimant(session_factory, g1) == v1

        released = await claim(session_factory, g1, v1, bought=False)
        assert released.success
        assert await claimant(session_factory, g1) is None

        second = await claim(session_factory, g1, v2)
        assert second.success and second.bought_by == v2

    async def test_deleted_gift_reports_not_found(self, session_factory):
        g2 = await create_gift(session_factory, "G2")
        v1 = new_visitor()
        await claim(session_factory, g2, v1)

        async with session_factory() as db:
            await catalog.delete_gift(db, g2)

        async with session_factory() as db:
            assert await claim_ledger.count_claims(db, g2) == 0
        with pytest.raises(NotFoundError):
            await claimant(session_factory, g2)
        with pytest.raises(NotFoundError):
            await claim(session_factory, g2, v1)
        with pytest.raises(NotFoundError):
            await claim(session_factory, g2, v1, bought=False)


class TestValidation:
    async def test_unknown_gift(self, session_factory):
        with pytest.raises(NotFoundError):
            await claim(session_factory, 999_999, new_visitor())

    @pytest.mark.parametrize("gift_id", [0, -3, True])
    async def test_invalid_gift_id(self, session_factory, gift_id):
        with pytest.raises(ValidationError):
            await claim(session_factory, gift_id, new_visitor())

    async def test_missing_visitor(self, session_factory):
        gift_id = await create_gift(session_factory)
        with pytest.raises(ValidationError):
            await claim(session_factory, gift_id, "")


class TestLedgerConstraints:
    async def test_store_rejects_second_active_row(self, session_factory):
        gift_id = await create_gift(session_factory)
        async with session_factory() as db:
            db.add(Claim(gift_id=gift_id, visitor_id=new_visitor(), bought=True))
            await db.commit()
            db.add(Claim(gift_id=gift_id, visitor_id=new_visitor(), bought=True))
            with pytest.raises(IntegrityError):
                await db.commit()
            await db.rollback()

    async def test_store_rejects_duplicate_visitor_row(self, session_factory):
        gift_id = await create_gift(session_factory)
        visitor = new_visitor()
        async with session_factory() as db:
            db.add(Claim(gift_id=gift_id, visitor_id=visitor, bought=False))
            await db.commit()
            db.add(Claim(gift_id=gift_id, visitor_id=visitor, bought=False))
            with pytest.raises(IntegrityError):
                await db.commit()
            await db.rollback()

    async def test_inactive_rows_may_coexist(self, session_factory):
        gift_id = await create_gift(session_factory)
        async with session_factory() as db:
            db.add_all([Claim(gift_id=gift_id, visitor_id=new_visitor(), bought=False) for _ in range(3)])
            await db.commit()
            rows = (await db.execute(select(Claim).where(Claim.gift_id == gift_id))).scalars().all()
            assert len(rows) == 3


class TestRace:
    async def test_concurrent_claims_have_one_winner(self, session_factory):
        gift_id = await create_gift(session_factory)
        visitors = [new_visitor() for _ in range(8)]

        outcomes = await asyncio.gather(*[claim(session_factory, gift_id, v) for v in visitors])

        winners = [o for o in outcomes if o.success]
        losers = [o for o in outcomes if not o.success]
        assert len(winners) == 1
        winner = winners[0].bought_by
        assert winner in visitors
        assert len(losers) == len(visitors) - 1
        assert all(o.status is ClaimStatus.CONFLICT for o in losers)
        assert {o.bought_by for o in losers} == {winner}
        assert await active_rows(session_factory, gift_id) == 1
        assert await claimant(session_factory, gift_id) == winner


def swap_claimant_before_clear(monkeypatch, session_factory, gift_id: int, old: str, new: str | None):
    """Make clear_claim first let another session release `old` and, optionally, claim for `new`."""
    real_clear = claim_ledger.clear_claim

    async def racing_clear(db, gift_id_, visitor_id=None):
        async with session_factory() as other:
            await real_clear(other, gift_id, visitor_id=old)
            if new is not None:
                await claim_ledger.set_claimed(other, gift_id, new)
        return await real_clear(db, gift_id_, visitor_id=visitor_id)

    monkeypatch.setattr(claim_ledger, "clear_claim", racing_clear)


class TestInterleavedWrites:
    async def test_release_sees_new_claimant_and_is_forbidden(self, session_factory, monkeypatch):
        gift_id = await create_gift(session_factory)
        a, b = new_visitor(), new_visitor()
        await claim(session_factory, gift_id, a)
        swap_claimant_before_clear(monkeypatch, session_factory, gift_id, old=a, new=b)

        outcome = await claim(session_factory, gift_id, a, bought=False)

        assert outcome.status is ClaimStatus.FORBIDDEN
        assert outcome.message == MSG_NOT_YOURS
        assert outcome.bought is True
        assert outcome.bought_by == b
        assert await claimant(session_factory, gift_id) == b

    async def test_release_after_concurrent_release_is_noop(self, session_factory, monkeypatch):
        gift_id = await create_gift(session_factory)
        a = new_visitor()
        await claim(session_factory, gift_id, a)
        swap_claimant_before_clear(monkeypatch, session_factory, gift_id, old=a, new=None)

        outcome = await claim(session_factory, gift_id, a, bought=False)

        assert outcome.status is ClaimStatus.OK
        assert outcome.changed is False
        assert outcome.bought is False
        assert await claimant(session_factory, gift_id) is None

    async def test_admin_release_overtaken_by_new_claim_asks_retry(self, session_factory, monkeypatch):
        gift_id = await create_gift(session_factory)
        a, b = new_visitor(), new_visitor()
        await claim(session_factory, gift_id, a)
        swap_claimant_before_clear(monkeypatch, session_factory, gift_id, old=a, new=b)

        with pytest.raises(StorageError) as excinfo:
            await claim(session_factory, gift_id, new_visitor(), bought=False, is_admin=True)

        assert excinfo.value.status_code == 503
        assert await claimant(session_factory, gift_id) == b

    async def test_rejected_claim_with_no_holder_is_storage_error(self, session_factory, monkeypatch):
        gift_id = await create_gift(session_factory)

        async def rejected(db, gift_id_, visitor_id):
            raise ClaimWriteConflict("unique constraint")

        monkeypatch.setattr(claim_ledger, "set_claimed", rejected)

        with pytest.raises(StorageError):
            await claim(session_factory, gift_id, new_visitor())

        assert await active_rows(session_factory, gift_id) == 0
