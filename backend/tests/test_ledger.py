from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlmodel import func, select

from conftest import balance, fund

from creator_ledger import crud
from creator_ledger.api.errors import (
    AppError,
    CurrencyMismatchError,
    DuplicateEventError,
    InsufficientBalanceError,
    InvalidAmountError,
    TooManyPendingError,
)
from creator_ledger.crud.ledger import to_money
from creator_ledger.enums import ReservationState, RevenueSourceType
from creator_ledger.models import LedgerReservation, RevenueEvent


def test_tip_accrues_to_available(db):
    fund(db, "c1", "50.00")

    ledger = balance(db, "c1")
    assert ledger.available == Decimal("50.00")
    assert ledger.total_earned == Decimal("50.00")
    assert ledger.reserved == Decimal("0.00")
    assert ledger.currency == "USD"


def test_duplicate_reference_is_recorded_once(db):
    first = fund(db, "c1", "10.00", ref="booking-1")
    with pytest.raises(DuplicateEventError) as exc:
        fund(db, "c1", "10.00", ref="booking-1")
    assert exc.value.existing.id == first.id

    count = db.exec(
        select(func.count()).select_from(RevenueEvent).where(RevenueEvent.creator_id == "c1")
    ).one()
    assert count == 1
    assert balance(db, "c1").total_earned == Decimal("10.00")


def test_same_reference_for_other_creator_is_independent(db):
    fund(db, "c1", "10.00", ref="shared-ref")
    fund(db, "c2", "15.00", ref="shared-ref")
    assert balance(db, "c1").total_earned == Decimal("10.00")
    assert balance(db, "c2").total_earned == Decimal("15.00")


def test_total_earned_matches_sum_of_events(db):
    for i, amount in enumerate(["12.50", "7.25", "100.00", "0.25"]):
        crud.record_event(
            session=db,
            creator_id="c1",
            amount=amount,
            currency="usd",
            source_type=list(RevenueSourceType)[i],
            external_reference_id=f"ref-{i}",
        )
    total = db.exec(
        select(func.sum(RevenueEvent.amount)).where(RevenueEvent.creator_id == "c1")
    ).one()
    assert balance(db, "c1").total_earned == Decimal("120.00")
    assert Decimal(str(total)).quantize(Decimal("0.01")) == Decimal("120.00")


@pytest.mark.parametrize("amount", ["0", "-5.00", "1.005"])
def test_record_event_rejects_bad_amounts(db, amount):
    with pytest.raises(InvalidAmountError):
        fund(db, "c1", amount)
    assert crud.get_ledger(session=db, creator_id="c1") is None


def test_to_money_rejects_float():
    with pytest.raises(InvalidAmountError):
        to_money(10.5)
    assert to_money("3") == Decimal("3.00")


def test_record_event_rejects_other_currency(db):
    fund(db, "c1", "10.00")
    with pytest.raises(CurrencyMismatchError):
        crud.record_event(
            session=db,
            creator_id="c1",
            amount="5.00",
            currency="EUR",
            source_type=RevenueSourceType.tip,
            external_reference_id="eur-tip",
        )
    assert balance(db, "c1").total_earned == Decimal("10.00")


def test_reserve_then_release_restores_available(db):
    fund(db, "c1", "80.00")
    before = balance(db, "c1").available

    reservation = crud.reserve(session=db, creator_id="c1", amount="30.00")
    ledger = balance(db, "c1")
    assert ledger.available == Decimal("50.00")
    assert ledger.reserved == Decimal("30.00")
    assert ledger.open_reservations == 1

    assert crud.release(session=db, creator_id="c1", reservation_id=reservation.id) is True
    ledger = balance(db, "c1")
    assert ledger.available == before
    assert ledger.reserved == Decimal("0.00")
    assert ledger.open_reservations == 0


def test_release_and_finalize_are_idempotent_per_reservation(db):
    fund(db, "c1", "100.00")
    first = crud.reserve(session=db, creator_id="c1", amount="40.00")
    second = crud.reserve(session=db, creator_id="c1", amount="20.00")

    assert crud.finalize(session=db, creator_id="c1", reservation_id=first.id) is True
    assert crud.finalize(session=db, creator_id="c1", reservation_id=first.id) is False
    assert crud.release(session=db, creator_id="c1", reservation_id=first.id) is False
    assert crud.release(session=db, creator_id="c1", reservation_id=second.id) is True
    assert crud.release(session=db, creator_id="c1", reservation_id=second.id) is False

    ledger = balance(db, "c1")
    assert ledger.total_paid_out == Decimal("40.00")
    assert ledger.reserved == Decimal("0.00")
    assert ledger.available == Decimal("60.00")

    states = {
        r.id: r.state
        for r in db.exec(
            select(LedgerReservation).execution_options(populate_existing=True)
        ).all()
    }
    assert states[first.id] == ReservationState.finalized
    assert states[second.id] == ReservationState.released


def test_reserve_never_overdraws(db):
    fund(db, "c1", "25.00")
    with pytest.raises(InsufficientBalanceError) as exc:
        crud.reserve(session=db, creator_id="c1", amount="25.01")
    assert exc.value.available == Decimal("25.00")

    ledger = balance(db, "c1")
    assert ledger.available == Decimal("25.00")
    assert ledger.reserved == Decimal("0.00")


def test_reserve_without_ledger_is_insufficient(db):
    with pytest.raises(InsufficientBalanceError):
        crud.reserve(session=db, creator_id="nobody", amount="1.00")


def test_reserve_open_count_guard(db):
    fund(db, "c1", "100.00")
    crud.reserve(session=db, creator_id="c1", amount="10.00", max_open=2)
    crud.reserve(session=db, creator_id="c1", amount="10.00", max_open=2)
    with pytest.raises(TooManyPendingError):
        crud.reserve(session=db, creator_id="c1", amount="10.00", max_open=2)
    assert balance(db, "c1").reserved == Decimal("20.00")


def test_release_of_foreign_reservation_is_rejected(db):
    fund(db, "c1", "50.00")
    reservation = crud.reserve(session=db, creator_id="c1", amount="10.00")
    with pytest.raises(AppError) as exc:
        crud.release(session=db, creator_id="c2", reservation_id=reservation.id)
    assert exc.value.code == 404103
    assert balance(db, "c1").reserved == Decimal("10.00")


def test_accrual_is_not_blocked_by_reservation(db):
    fund(db, "c1", "30.00", ref="a")
    crud.reserve(session=db, creator_id="c1", amount="30.00")
    fund(db, "c1", "5.00", ref="b")

    ledger = balance(db, "c1")
    assert ledger.total_earned == Decimal("35.00")
    assert ledger.available == Decimal("5.00")


def test_cent_amounts_reserve_exactly(db):
    # 0.30 - 0.10 must leave exactly 0.20 available
    fund(db, "c1", "0.30")
    crud.reserve(session=db, creator_id="c1", amount="0.10")
    crud.reserve(session=db, creator_id="c1", amount="0.20")

    ledger = balance(db, "c1")
    assert ledger.available == Decimal("0.00")
    assert ledger.reserved == Decimal("0.30")
    with pytest.raises(InsufficientBalanceError):
        crud.reserve(session=db, creator_id="c1", amount="0.01")


def test_amounts_are_stored_in_cents(db):
    fund(db, "c1", "12.34")
    raw = db.connection().execute(
        text("SELECT total_earned FROM creator_ledgers WHERE creator_id = :c"), {"c": "c1"}
    ).scalar_one()
    assert raw == 1234
    assert balance(db, "c1").total_earned == Decimal("12.34")
