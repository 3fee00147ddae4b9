"""Записи о выплатах реферальных начислений."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger
from sqlmodel import Field

from .base import TimeStampedModel


class ClaimStatus(str):
    PENDING_TRANSFER = "pending_transfer"
    SUCCESS = "success"
    FAILED = "failed"


class ReferralClaim(TimeStampedModel, table=True):
    __tablename__ = "referral_claims"

    id: Optional[int] = Field(default=None, primary_key=True)
    claim_id: str = Field(max_length=64, unique=True, index=True)
    user_id: str = Field(max_length=128, index=True)
    amount_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)
    destination_address: str = Field(max_length=64)
    tx_signature: Optional[str] = Field(default=None, max_length=128)
    status: str = Field(default=ClaimStatus.PENDING_TRANSFER, max_length=32, index=True)
    error: Optional[str] = Field(default=None, max_length=512)


__all__ = ["ClaimStatus", "ReferralClaim"]
