import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from guardian.core.exceptions import LedgerWriteException
from guardian.domain.schemas import LedgerRecord, RiskAction, RiskLevel
from guardian.infrastructure.database.ledger_repository import (
    LedgerRepository,
    decrypt,
    encrypt,
)
from guardian.services.ledger_sink import LedgerSink


class FakeSession:
    def __init__(self, commit_error=None):
        self.added    = []
        self.commit   = AsyncMock(side_effect=commit_error)
        self.rollback = AsyncMock()

    def add(self, entry):
        self.added.append(entry)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def record():
    return LedgerRecord(
        transaction_id     = "tx-0001",
        sender_id          = "user-123",
        receiver_id        = "merchant-9",
        amount             = Decimal("120.50"),
        currency           = "USD",
        score              = 0.45,
        level              = RiskLevel.MEDIUM,
        action             = RiskAction.REVIEW,
        failsafe           = True,
        failsafe_reason    = "deadline_exceeded",
        reason_codes       = ["FAILSAFE_DEADLINE_EXCEEDED"],
        signals            = {"anomaly": {"score": 0.0, "status": "timed_out"}},
        network            = {"ip_address": "201.141.10.4", "ip_country": "MX"},
        response_signature = "a" * 64,
        processing_ms      = 201.3,
    )


# ── Repositorio ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_repository_inserts_with_encrypted_network(record):
    session    = FakeSession()
    repository = LedgerRepository(lambda: session)

    entry = await repository.save(record)

    assert session.added == [entry]
    session.commit.assert_awaited_once()
    assert entry.action == "REVIEW"
    assert entry.failsafe is True
    assert b"201.141.10.4" not in entry.encrypted_network
    assert json.loads(decrypt(entry.encrypted_network)) == record.network


@pytest.mark.asyncio
async def test_repository_wraps_commit_errors(record):
    session    = FakeSession(commit_error=ConnectionError("db down"))
    repository = LedgerRepository(lambda: session)

    with pytest.raises(LedgerWriteException):
        await repository.save(record)
    session.rollback.assert_awaited_once()


def test_encryption_uses_fresh_nonce():
    assert encrypt(b"same") != encrypt(b"same")
    assert decrypt(encrypt(b"same")) == b"same"


# ── Sink ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_append_returns_before_write_completes(record):
    release = asyncio.Event()
    writer  = MagicMock()

    async def slow_save(_):
        await release.wait()

    writer.save = slow_save
    sink = LedgerSink(writer)

    sink.append(record)
    assert sink.pending == 1

    release.set()
    await sink.drain()
    assert sink.pending == 0


@pytest.mark.asyncio
async def test_write_errors_are_swallowed(record):
    writer = AsyncMock()
    writer.save.side_effect = LedgerWriteException("INSERT falló")
    sink = LedgerSink(writer)

    sink.append(record)
    await sink.drain()

    writer.save.assert_awaited_once_with(record)
    assert sink.pending == 0


def test_append_without_event_loop_does_not_raise(record):
    sink = LedgerSink(AsyncMock())
    sink.append(record)
    assert sink.pending == 0
