"""
Tests for the claim audit repository.
"""
from datetime import datetime, timezone

import pytest

from aqua.models import ClaimStatus
from aqua.models.base import as_utc
from aqua.repositories import append_claim_record, list_claims, update_claim_status


@pytest.mark.asyncio
async def test_status_update_touches_record(session_maker):
    stale = datetime(2020, 1, 1, tzinfo=timezone.utc)
    async with session_maker() as session:
        claim = await append_claim_record(
            session,
            claim_id="c1",
            user_id="alice",
            amount_lamports=10_000_000,
            destination_address="7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        )
        claim.updated_at = stale
        await session.commit()

    async with session_maker() as session:
        updated = await update_claim_status(session, "c1", ClaimStatus.FAILED, error="x" * 600)
        await session.commit()

    assert updated is not None
    async with session_maker() as session:
        [stored] = await list_claims(session, "alice")
    assert stored.status == ClaimStatus.FAILED
    assert len(stored.error) == 512
    assert as_utc(stored.updated_at) > stale


@pytest.mark.asyncio
async def test_status_update_for_unknown_claim(session_maker):
    async with session_maker() as session:
        assert await update_claim_status(session, "missing", ClaimStatus.SUCCESS) is None
