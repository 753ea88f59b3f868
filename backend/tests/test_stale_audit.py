from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import FakeProcessor, fund, verify

from creator_ledger import crud
from creator_ledger.core.redis import acquire_lock, release_lock
from creator_ledger.enums import PayoutStatus
from creator_ledger.models import PayoutRequest, utc_now
from creator_ledger.services import payout_service
from creator_ledger.services.reconciliation import handle_external_event
from creator_ledger.worker import tasks
from creator_ledger.worker.scheduler import build_scheduler


class FakeRedis:
    """Just enough of redis.Redis for the lock helpers."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script, numkeys, key, value):
        if self.store.get(key) == value:
            del self.store[key]
            return 1
        return 0


def _age(db, payout_id: int, hours: int) -> None:
    db.exec(
        update(PayoutRequest)
        .where(PayoutRequest.id == payout_id)
        .values(updated_at=utc_now() - timedelta(hours=hours))
        .execution_options(synchronize_session=False)
    )
    db.commit()


@pytest.fixture
def submitted(db):
    fund(db, "c1", "100.00")
    verify(db, "c1")
    return payout_service.request_payout(
        session=db, creator_id="c1", amount="30.00", processor=FakeProcessor()
    )


def test_find_stale_payouts(db, submitted):
    assert crud.find_stale_payouts(session=db) == []

    _age(db, submitted.id, 100)
    stale = crud.find_stale_payouts(session=db)
    assert [p.id for p in stale] == [submitted.id]

    assert crud.find_stale_payouts(session=db, older_than=timedelta(hours=200)) == []
    assert crud.find_stale_payouts(
        session=db, now=utc_now() - timedelta(hours=50)
    ) == []


def test_resolved_payouts_are_not_stale(db, submitted):
    handle_external_event(
        session=db,
        external_event_id="evt_1",
        external_payout_id=submitted.external_payout_id,
        external_status="paid",
    )
    _age(db, submitted.id, 100)
    assert crud.find_stale_payouts(session=db) == []


def test_audit_reports_stale_payouts(db, engine, submitted):
    _age(db, submitted.id, 100)
    redis_client = FakeRedis()

    assert tasks.audit_stale_payouts(db_engine=engine, redis_client=redis_client) == [submitted.id]
    # lock is released afterwards
    assert tasks.STALE_AUDIT_LOCK_KEY not in redis_client.store


def test_audit_skips_when_lock_is_held(db, engine):
    redis_client = FakeRedis()
    assert acquire_lock(redis_client, tasks.STALE_AUDIT_LOCK_KEY, "other-worker")

    assert tasks.audit_stale_payouts(db_engine=engine, redis_client=redis_client) is None
    assert redis_client.store[tasks.STALE_AUDIT_LOCK_KEY] == "other-worker"


def test_lock_is_released_only_by_owner():
    redis_client = FakeRedis()
    assert acquire_lock(redis_client, "k", "a")
    assert not acquire_lock(redis_client, "k", "b")
    assert not release_lock(redis_client, "k", "b")
    assert release_lock(redis_client, "k", "a")
    assert acquire_lock(redis_client, "k", "b")


def test_scheduler_registers_audit_job():
    scheduler = build_scheduler()
    job = scheduler.get_job("stale_payout_audit")
    assert job is not None
    assert job.func is tasks.audit_stale_payouts


def test_balance_unaffected_by_audit(db, engine, submitted):
    _age(db, submitted.id, 100)
    tasks.audit_stale_payouts(db_engine=engine, redis_client=FakeRedis())
    ledger = crud.get_ledger(session=db, creator_id="c1")
    assert ledger.reserved == Decimal("30.00")
    assert crud.get_payout(session=db, payout_id=submitted.id).status == "submitted"


def test_payout_accepted_but_not_marked_submitted_is_reported(db, engine, monkeypatch, caplog):
    fund(db, "c1", "100.00")
    verify(db, "c1")
    processor = FakeProcessor()
    real_transition = crud.transition_status

    def _transition(**kwargs):
        if kwargs["target"] == PayoutStatus.submitted:
            raise OperationalError("UPDATE payout_requests", {}, Exception("database is locked"))
        return real_transition(**kwargs)

    monkeypatch.setattr(crud, "transition_status", _transition)
    with caplog.at_level(logging.ERROR):
        with pytest.raises(OperationalError):
            payout_service.request_payout(
                session=db, creator_id="c1", amount="30.00", processor=processor
            )
    monkeypatch.setattr(crud, "transition_status", real_transition)

    assert len(processor.calls) == 1
    payout = db.exec(
        select(PayoutRequest)
        .where(PayoutRequest.creator_id == "c1")
        .execution_options(populate_existing=True)
    ).one()
    assert payout.status == "requested"
    assert payout.external_payout_id is None
    assert f"po_{payout.id}" in caplog.text
    assert crud.get_ledger(session=db, creator_id="c1").reserved == Decimal("30.00")

    # too fresh to report yet
    assert crud.find_stale_payouts(session=db) == []
    assert [p.id for p in crud.find_stale_payouts(
        session=db, now=utc_now() + timedelta(hours=1)
    )] == [payout.id]

    _age(db, payout.id, 1)
    assert tasks.audit_stale_payouts(db_engine=engine, redis_client=FakeRedis()) == [payout.id]


def test_requested_threshold_is_separate(db):
    fund(db, "c1", "100.00")
    reservation = crud.reserve(session=db, creator_id="c1", amount="30.00")
    payout = crud.create_payout(
        session=db,
        creator_id="c1",
        amount=Decimal("30.00"),
        currency="USD",
        reservation_id=reservation.id,
        external_account_id="acct_1",
    )
    _age(db, payout.id, 2)

    assert crud.find_stale_payouts(
        session=db, requested_older_than=timedelta(hours=3)
    ) == []
    assert [p.id for p in crud.find_stale_payouts(session=db)] == [payout.id]
