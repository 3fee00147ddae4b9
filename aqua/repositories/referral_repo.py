"""Работа с таблицей ``referrals``.

Все изменения балансов делаются атомарными UPDATE в базе (инкременты и compare-and-swap),
без чтения-изменения-записи на стороне Python.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from aqua.models import ReferralAccount
from aqua.models.base import utcnow


async def get_account(session: AsyncSession, user_id: str) -> Optional[ReferralAccount]:
    # балансы меняются UPDATE-ами мимо identity map, поэтому всегда перечитываем строку
    stmt = (
        select(ReferralAccount)
        .where(ReferralAccount.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def get_account_by_code(session: AsyncSession, code: str) -> Optional[ReferralAccount]:
    stmt = select(ReferralAccount).where(ReferralAccount.referral_code == code)
    result = await session.exec(stmt)
    return result.one_or_none()


async def code_exists(session: AsyncSession, code: str) -> bool:
    stmt = select(ReferralAccount.id).where(ReferralAccount.referral_code == code)
    result = await session.exec(stmt)
    return result.first() is not None


async def insert_account(session: AsyncSession, *, user_id: str, referral_code: str) -> ReferralAccount:
    """Создаёт нулевой аккаунт. При нарушении уникальности летит ``IntegrityError``."""

    account = ReferralAccount(user_id=user_id, referral_code=referral_code)
    session.add(account)
    await session.commit()
    await session.refresh(account)
    return account


async def update_account_conditional(
    session: AsyncSession,
    user_id: str,
    expected: Mapping[str, Any],
    values: Mapping[str, Any],
) -> int:
    """Compare-and-swap: обновляет строку, только если поля ``expected`` совпали.

    ``None`` в ``expected`` означает ``IS NULL``. Значения ``values`` могут быть
    SQL-выражениями (``ReferralAccount.pending_lamports + 10``). Возвращает число
    затронутых строк, коммит делает вызывающий.
    """

    conditions = [ReferralAccount.user_id == user_id]
    for field, value in expected.items():
        column = getattr(ReferralAccount, field)
        conditions.append(column.is_(None) if value is None else column == value)
    stmt = (
        update(ReferralAccount)
        .where(*conditions)
        .values(**values, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount


async def increment_balances(
    session: AsyncSession,
    user_id: str,
    *,
    pending_lamports: int = 0,
    total_earned_lamports: int = 0,
) -> int:
    """Добавляет к балансам (отрицательные значения не допускаются)."""

    if pending_lamports < 0 or total_earned_lamports < 0:
        raise ValueError("increment_balances принимает только неотрицательные суммы")
    return await update_account_conditional(
        session,
        user_id,
        expected={},
        values={
            "pending_lamports": ReferralAccount.pending_lamports + pending_lamports,
            "total_earned_lamports": ReferralAccount.total_earned_lamports + total_earned_lamports,
        },
    )


async def increment_referral_count(session: AsyncSession, user_id: str) -> int:
    return await update_account_conditional(
        session,
        user_id,
        expected={},
        values={"referral_count": ReferralAccount.referral_count + 1},
    )


__all__ = [
    "code_exists",
    "get_account",
    "get_account_by_code",
    "increment_balances",
    "increment_referral_count",
    "insert_account",
    "update_account_conditional",
]
