"""Журнал начислений (append-only, только для аудита)."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger
from sqlmodel import Field

from .base import TimeStampedModel


class ReferralEarning(TimeStampedModel, table=True):
    __tablename__ = "referral_earnings"

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: str = Field(max_length=128, index=True)
    source_user_id: str = Field(max_length=128, index=True)
    operation_type: str = Field(max_length=64)
    fee_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)
    referrer_share_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)


__all__ = ["ReferralEarning"]
