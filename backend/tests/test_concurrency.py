"""
Concurrent writers against a file-backed SQLite database.

Every thread uses its own Session, so all of the guarantees below come from
the conditional updates in the database, not from shared Python state.
"""
from __future__ import annotations

import threading
from decimal import Decimal

import pytest
from sqlmodel import Session, SQLModel, create_engine, func, select

from conftest import FakeProcessor, balance, fund, verify

from creator_ledger import crud
from creator_ledger.api.errors import DuplicateEventError, InsufficientBalanceError
from creator_ledger.enums import PayoutStatus, ReconciliationOutcome, RevenueSourceType
from creator_ledger.models import PayoutRequest, RevenueEvent
from creator_ledger.services import payout_service
from creator_ledger.services.reconciliation import handle_external_event

WORKERS = 6


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _run_together(target, count: int = WORKERS) -> list:
    """Start `count` threads at the same moment and collect what each returned or raised."""
    barrier = threading.Barrier(count)
    results: list = [None] * count

    def _worker(index: int) -> None:
        barrier.wait()
        try:
            results[index] = target(index)
        except Exception as e:  # collected for assertions
            results[index] = e

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_concurrent_payouts_never_overdraw(file_engine):
    with Session(file_engine) as session:
        fund(session, "c1", "30.00")
        verify(session, "c1")

    def _request(_: int):
        with Session(file_engine) as session:
            return payout_service.request_payout(
                session=session, creator_id="c1", amount="30.00", processor=FakeProcessor()
            )

    results = _run_together(_request)

    succeeded = [r for r in results if isinstance(r, PayoutRequest)]
    rejected = [r for r in results if isinstance(r, InsufficientBalanceError)]
    assert len(succeeded) == 1, results
    assert len(rejected) == WORKERS - 1, results

    with Session(file_engine) as session:
        ledger = balance(session, "c1")
        assert ledger.available == Decimal("0.00")
        assert ledger.reserved == Decimal("30.00")
        assert ledger.open_reservations == 1
        assert ledger.total_earned - ledger.total_paid_out - ledger.reserved == ledger.available
        count = session.exec(select(func.count()).select_from(PayoutRequest)).one()
        assert count == 1


def test_concurrent_partial_payouts_fit_the_balance(file_engine):
    with Session(file_engine) as session:
        fund(session, "c1", "60.00")
        verify(session, "c1")

    def _request(_: int):
        with Session(file_engine) as session:
            return payout_service.request_payout(
                session=session, creator_id="c1", amount="25.00", processor=FakeProcessor()
            )

    results = _run_together(_request)

    succeeded = [r for r in results if isinstance(r, PayoutRequest)]
    assert len(succeeded) == 2, results
    assert all(
        isinstance(r, InsufficientBalanceError) for r in results if r not in succeeded
    ), results
    with Session(file_engine) as session:
        ledger = balance(session, "c1")
        assert ledger.reserved == Decimal("50.00")
        assert ledger.available == Decimal("10.00")
        assert ledger.open_reservations == 2


def test_concurrent_duplicate_revenue_event_counts_once(file_engine):
    with Session(file_engine) as session:
        crud.get_or_create_ledger(session=session, creator_id="c1")

    def _record(_: int):
        with Session(file_engine) as session:
            return crud.record_event(
                session=session,
                creator_id="c1",
                amount="12.50",
                currency="USD",
                source_type=RevenueSourceType.ticket_sale,
                external_reference_id="order-1",
            )

    results = _run_together(_record)

    assert sum(isinstance(r, RevenueEvent) for r in results) == 1, results
    assert sum(isinstance(r, DuplicateEventError) for r in results) == WORKERS - 1, results
    with Session(file_engine) as session:
        assert balance(session, "c1").total_earned == Decimal("12.50")


def test_concurrent_webhook_redelivery_applies_once(file_engine):
    with Session(file_engine) as session:
        fund(session, "c1", "40.00")
        verify(session, "c1")
        payout = payout_service.request_payout(
            session=session, creator_id="c1", amount="40.00", processor=FakeProcessor()
        )
        payout_id = payout.id
        external_id = payout.external_payout_id

    def _deliver(_: int):
        with Session(file_engine) as session:
            return handle_external_event(
                session=session,
                external_event_id="evt_paid",
                external_payout_id=external_id,
                external_status="paid",
            ).outcome

    results = _run_together(_deliver)

    assert results.count(ReconciliationOutcome.applied) == 1, results
    assert all(
        r in (ReconciliationOutcome.applied, ReconciliationOutcome.duplicate, ReconciliationOutcome.stale)
        for r in results
    ), results
    with Session(file_engine) as session:
        ledger = balance(session, "c1")
        assert ledger.total_paid_out == Decimal("40.00")
        assert ledger.reserved == Decimal("0.00")
        assert crud.get_payout(session=session, payout_id=payout_id).status == PayoutStatus.paid
