"""Shared pytest fixtures for all test files."""

import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from flight_claims.config.airlines import AirlineConfigProvider
from flight_claims.db.database import init_db
from flight_claims.db.repository import ClaimRepository
from flight_claims.models.claim import ClaimInput, GatewayRefund

# Fixed "now" shared by the services under test
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def temp_db():
    """Use a temporary SQLite DB for tests."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    init_db(path)
    prev = os.environ.get("CLAIMS_DB_PATH")
    os.environ["CLAIMS_DB_PATH"] = path
    try:
        yield path
    finally:
        if prev is None:
            os.environ.pop("CLAIMS_DB_PATH", None)
        else:
            os.environ["CLAIMS_DB_PATH"] = prev
        try:
            os.unlink(path)
        except OSError:
            pass


@pytest.fixture(autouse=True)
def reset_global_metrics():
    """Reset the global OperationMetrics instance before and after each test."""
    from flight_claims.observability.metrics import reset_metrics

    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def repo(temp_db):
    return ClaimRepository(db_path=temp_db)


@pytest.fixture
def airlines():
    """Built-in airline table only; ignores any data/airlines.json on disk."""
    from flight_claims.config.airlines import BUILTIN_AIRLINES

    return AirlineConfigProvider(configs=dict(BUILTIN_AIRLINES))


@pytest.fixture
def clock():
    return lambda: NOW


def claim_input(**overrides) -> ClaimInput:
    """A complete, fileable Ryanair claim submitted one hour before NOW."""
    data = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "flight_number": "FR1234",
        "airline": "FR",
        "departure_date": "2026-03-08",
        "departure_airport": "DUB",
        "arrival_airport": "STN",
        "delay_duration": "4 hours",
        "distance_km": 464.0,
        "payment_reference": "pi_test_123",
        "boarding_pass_uploaded": True,
        "delay_proof_uploaded": True,
        "submitted_at": datetime(2026, 3, 10, 11, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return ClaimInput.model_validate(data)


@pytest.fixture
def make_claim(repo):
    """Create a claim in the store; keyword overrides go to ClaimInput, `fields` to update_claim."""

    def _make(fields=None, **overrides):
        claim_id = repo.create_claim(claim_input(**overrides))
        if fields:
            assert repo.update_claim(claim_id, fields)
        return claim_id

    return _make


class FakeGateway:
    """Payment gateway double that records calls; can fail or stall.

    on_refund, if given, is called with the metadata while the refund is in flight.
    """

    def __init__(self, fail_with=None, delay=0.0, status="succeeded", on_refund=None):
        self.calls = []
        self.fail_with = fail_with
        self.delay = delay
        self.status = status
        self.on_refund = on_refund
        self._lock = threading.Lock()

    def refund(self, payment_reference, amount, metadata):
        with self._lock:
            self.calls.append((payment_reference, amount, dict(metadata)))
            n = len(self.calls)
        if self.on_refund is not None:
            self.on_refund(metadata)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return GatewayRefund(external_refund_id=f"re_{n:04d}", status=self.status, amount=Decimal(amount))


class FakeNotifier:
    """Records notifications; can be told to raise."""

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def _record(self, name, *args):
        self.events.append((name, *args))
        if self.fail:
            raise RuntimeError("notification service down")

    def claim_filed(self, claim):
        self._record("claim_filed", claim.claim_id)

    def status_changed(self, claim, old_status, notes):
        self._record("status_changed", claim.claim_id, old_status, claim.status)

    def refund_processed(self, claim, amount, external_refund_id):
        self._record("refund_processed", claim.claim_id, amount, external_refund_id)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_gateway():
    """Factory for gateways configured per test (failing, slow, pending)."""
    return FakeGateway
