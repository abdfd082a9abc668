"""
Pytest fixtures for the invoice ledger test suite.

Provides:
- In-memory LedgerStore and Ledger instances (one fresh database per test)
- A deterministic clock
- A passphrase-protected RSA key, provisioned once per session
- JSON log capture
"""

import json
import logging
from io import StringIO
from types import SimpleNamespace

import pytest

from invoice_config.schema import LedgerConfig
from invoice_kernel.db.engine import LedgerStore
from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoice_kernel.services.denomination_service import DenominationService
from invoice_kernel.services.entity_service import EntityService
from invoice_kernel.services.relationship_service import RelationshipService
from invoice_kernel.utils.encryption import Encryptor, generate_keypair
from invoice_services.ledger import Ledger

PASSPHRASE = "correct horse battery staple"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.denomination("US Dollar", "USD", "$")
            logs = captured_logs()
            assert any(r["message"] == "denomination_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoice_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Keys and clock
# =============================================================================


@pytest.fixture(scope="session")
def key_path(tmp_path_factory):
    """One provisioned keypair for the whole run; RSA generation is slow."""
    return generate_keypair(PASSPHRASE, tmp_path_factory.mktemp("keys") / "invoice_key")


@pytest.fixture
def encryptor(key_path) -> Encryptor:
    return Encryptor(key_path)


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def store():
    """A fresh in-memory store with all tables created."""
    ledger_store = LedgerStore(":memory:")
    ledger_store.open()
    ledger_store.create_tables()
    yield ledger_store
    ledger_store.close()


@pytest.fixture
def session(store):
    """A bare session; whatever the test leaves pending is rolled back."""
    db_session = store.session()
    yield db_session
    db_session.rollback()
    db_session.close()


@pytest.fixture
def ledger(store, encryptor, clock):
    """A Ledger over the in-memory store with PII enabled."""
    config = LedgerConfig(passphrase=PASSPHRASE)
    with Ledger(config, store=store, encryptor=encryptor, clock=clock) as instance:
        yield instance


# =============================================================================
# Ledger scenario helpers
# =============================================================================


@pytest.fixture
def usd(ledger):
    return ledger.denomination("US Dollar", "USD", "$")


@pytest.fixture
def shop(ledger):
    return ledger.add_entity("My LLC", {"street": "1 Main St", "city": "Springfield"})


@pytest.fixture
def client(ledger):
    return ledger.add_entity(
        "Not My LLC",
        {"street": "2 Side St", "city": "Shelbyville"},
        {"ein": "12-3456789"},
    )


@pytest.fixture
def relationship(ledger, shop, client):
    return ledger.add_relationship("Hugs for Not My LLC", payee=shop, payor=client)


@pytest.fixture
def shop_account(shop, usd):
    return shop.add_account(usd, {"bank": "First National", "number": "0001"})


@pytest.fixture
def client_account(client, usd):
    return client.add_account(usd, {"type": "credit card", "last4": "4242"})


@pytest.fixture
def parties(session, encryptor):
    """Payee and payor with USD accounts and a relationship, via the kernel services."""
    denominations = DenominationService(session)
    entities = EntityService(session, encryptor=encryptor)
    usd = denominations.create("US Dollar", "USD", "$")
    payee = entities.add_entity("My LLC", {"street": "1 Main St"}, passphrase=PASSPHRASE)
    payor = entities.add_entity("Not My LLC", {"street": "2 Side St"}, passphrase=PASSPHRASE)
    return SimpleNamespace(
        usd=usd,
        payee=payee,
        payor=payor,
        relation=RelationshipService(session).add_relationship("Hugs", payee, payor),
        payee_account=entities.add_account(payee, usd, {"bank": "0001"}, passphrase=PASSPHRASE),
        payor_account=entities.add_account(payor, usd, {"card": "4242"}, passphrase=PASSPHRASE),
    )
