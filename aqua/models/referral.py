"""Реферальный аккаунт пользователя (таблица ``referrals``)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime
from sqlmodel import Field

from aqua.utils.money import lamports_to_sol

from .base import TimeStampedModel


class ReferralAccount(TimeStampedModel, table=True):
    """Один аккаунт на пользователя, суммы хранятся в лампортах."""

    __tablename__ = "referrals"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=128, unique=True, index=True)
    referral_code: str = Field(max_length=32, unique=True, index=True)
    referred_by: Optional[str] = Field(default=None, max_length=128, index=True)
    referred_by_code: Optional[str] = Field(default=None, max_length=32)
    pending_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)
    total_earned_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)
    total_claimed_lamports: int = Field(default=0, nullable=False, sa_type=BigInteger)
    referral_count: int = Field(default=0, nullable=False)
    claim_count: int = Field(default=0, nullable=False)
    last_claim_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    last_claim_signature: Optional[str] = Field(default=None, max_length=128)

    @property
    def pending_earnings(self) -> Decimal:
        return lamports_to_sol(self.pending_lamports)

    @property
    def total_earnings(self) -> Decimal:
        return lamports_to_sol(self.total_earned_lamports)

    @property
    def total_claimed(self) -> Decimal:
        return lamports_to_sol(self.total_claimed_lamports)


__all__ = ["ReferralAccount"]
