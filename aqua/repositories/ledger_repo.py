"""Журнал начислений и записи о выплатах."""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from aqua.models import ReferralClaim, ReferralEarning


async def append_ledger_entry(
    session: AsyncSession,
    *,
    referrer_id: str,
    source_user_id: str,
    operation_type: str,
    fee_lamports: int,
    referrer_share_lamports: int,
) -> ReferralEarning:
    """Добавляет запись в сессию, коммит делает вызывающий (одна транзакция с балансом)."""

    entry = ReferralEarning(
        referrer_id=referrer_id,
        source_user_id=source_user_id,
        operation_type=operation_type,
        fee_lamports=fee_lamports,
        referrer_share_lamports=referrer_share_lamports,
    )
    session.add(entry)
    return entry


async def append_claim_record(
    session: AsyncSession,
    *,
    claim_id: str,
    user_id: str,
    amount_lamports: int,
    destination_address: str,
) -> ReferralClaim:
    claim = ReferralClaim(
        claim_id=claim_id,
        user_id=user_id,
        amount_lamports=amount_lamports,
        destination_address=destination_address,
    )
    session.add(claim)
    return claim


async def update_claim_status(
    session: AsyncSession,
    claim_id: str,
    status: str,
    *,
    tx_signature: str | None = None,
    error: str | None = None,
) -> Optional[ReferralClaim]:
    stmt = select(ReferralClaim).where(ReferralClaim.claim_id == claim_id)
    claim = (await session.exec(stmt)).one_or_none()
    if claim is None:
        return None
    claim.status = status
    if tx_signature is not None:
        claim.tx_signature = tx_signature
    if error is not None:
        claim.error = error[:512]
    claim.touch()
    session.add(claim)
    return claim


async def list_ledger_entries(session: AsyncSession, referrer_id: str) -> Sequence[ReferralEarning]:
    stmt = (
        select(ReferralEarning)
        .where(ReferralEarning.referrer_id == referrer_id)
        .order_by(ReferralEarning.id)
    )
    result = await session.exec(stmt)
    return result.all()


async def list_claims(session: AsyncSession, user_id: str) -> Sequence[ReferralClaim]:
    stmt = select(ReferralClaim).where(ReferralClaim.user_id == user_id).order_by(ReferralClaim.id)
    result = await session.exec(stmt)
    return result.all()


__all__ = [
    "append_claim_record",
    "append_ledger_entry",
    "list_claims",
    "list_ledger_entries",
    "update_claim_status",
]
