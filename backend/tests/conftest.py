from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from creator_ledger import crud
from creator_ledger.api.deps import get_db
from creator_ledger.core.config import settings
from creator_ledger.core.security import create_access_token
from creator_ledger.enums import RevenueSourceType, VerificationState
from creator_ledger.integrations.processor import ProcessorError, SubmitResult
from creator_ledger.main import app
from creator_ledger.models import (
    CreatorAccount,
    CreatorLedger,
    LedgerReservation,
    PayoutRequest,
    PayoutStatusHistory,
    RevenueEvent,
    WebhookEventRecord,
)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


def _clean(session: Session) -> None:
    # Children first.
    session.rollback()
    session.exec(delete(PayoutStatusHistory))
    session.exec(delete(PayoutRequest))
    session.exec(delete(LedgerReservation))
    session.exec(delete(RevenueEvent))
    session.exec(delete(CreatorLedger))
    session.exec(delete(CreatorAccount))
    session.exec(delete(WebhookEventRecord))
    session.commit()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        _clean(session)


@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "PROCESSOR_BACKOFF_INITIAL_SECONDS", 0)
    monkeypatch.setattr(settings, "PROCESSOR_BACKOFF_MAX_SECONDS", 0)
    monkeypatch.setattr(settings, "PROCESSOR_MOCK", True)
    monkeypatch.setattr(settings, "PROCESSOR_WEBHOOK_SECRET", None)


class FakeProcessor:
    """Scripted processor: pops one outcome per call, succeeds when the script is empty."""

    def __init__(self, outcomes: list[Exception] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: list[dict] = []

    def submit_payout(self, *, external_account_id, amount, currency, idempotency_key):
        self.calls.append(
            {
                "external_account_id": external_account_id,
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        if self.outcomes:
            raise self.outcomes.pop(0)
        return SubmitResult(external_payout_id=f"po_{idempotency_key}")


def retryable_error(status_code: int = 503) -> ProcessorError:
    return ProcessorError("unavailable", retryable=True, status_code=status_code)


def rejection(status_code: int = 422) -> ProcessorError:
    return ProcessorError("rejected", retryable=False, status_code=status_code)


def auth_headers(creator_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(creator_id)}"}


def internal_headers() -> dict[str, str]:
    return {"X-Internal-Token": settings.INTERNAL_API_TOKEN}


def fund(session: Session, creator_id: str, amount: str, ref: str | None = None) -> RevenueEvent:
    return crud.record_event(
        session=session,
        creator_id=creator_id,
        amount=Decimal(amount),
        currency="USD",
        source_type=RevenueSourceType.tip,
        external_reference_id=ref or f"tip-{creator_id}-{amount}",
    )


def verify(session: Session, creator_id: str, external_account_id: str = "acct_1") -> CreatorAccount:
    crud.begin_verification(
        session=session, creator_id=creator_id, external_account_id=external_account_id
    )
    return crud.apply_verification_result(
        session=session, creator_id=creator_id, result=VerificationState.verified
    )


def balance(session: Session, creator_id: str) -> CreatorLedger:
    ledger = crud.get_ledger(session=session, creator_id=creator_id)
    assert ledger is not None
    return ledger
