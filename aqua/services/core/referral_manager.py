"""Реферальный движок AQUA: коды, привязка, начисления, статистика и выплаты.

Источник правды по балансам: база. Все суммы считаются в фиксированной точке
(9 знаков, лампорты в хранилище). Выплата проходит так:

1. проверка выключателя;
2. single-flight блокировка пользователя (``ClaimLock``);
3. перечитывание аккаунта, проверка минимума и cooldown;
4. резерв: ``pending -> 0`` через compare-and-swap по старому значению
   (+ запись ``pending_transfer`` в той же транзакции);
5. перевод через ``PayoutExecutor``; при ошибке/таймауте резерв возвращается
   прибавлением (``pending += amount``), а не перезаписью, чтобы не потерять
   начисления, пришедшие во время перевода;
6. при успехе: ``total_claimed``, ``claim_count``, ``last_claim_*`` и статус
   ``success``; блокировка снимается на любом выходе.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, Callable, Optional, Sequence

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from aqua.models import ClaimStatus, ReferralAccount, ReferralClaim, ReferralEarning
from aqua.models.base import as_utc, utcnow
from aqua.repositories import (
    append_claim_record,
    append_ledger_entry,
    code_exists,
    get_account,
    get_account_by_code,
    increment_balances,
    increment_referral_count,
    insert_account,
    list_claims,
    list_ledger_entries,
    update_account_conditional,
    update_claim_status,
)
from aqua.services.solana.payout import PayoutExecutor
from aqua.utils.money import (
    ZERO,
    AmountLike,
    format_duration,
    lamports_to_sol,
    percent_of,
    round_sol,
    sol_to_lamports,
    to_decimal,
)
from config.settings import ReferralSettings

from .claim_lock import ClaimLock
from .codes import generate_code, normalize_code
from .exceptions import (
    AccountNotFoundError,
    AlreadyReferredError,
    BelowMinimumError,
    CodeExhaustionError,
    ConcurrentModificationError,
    CooldownActiveError,
    InvalidAmountError,
    InvalidCodeError,
    ReferralError,
    ReferrerNotFoundError,
    SelfReferralError,
    StoreUnavailableError,
    SystemDisabledError,
    TransferFailedError,
)

# Эти ошибки не превращаются в результат, а уходят вызывающему.
_FATAL_ERRORS = (StoreUnavailableError, CodeExhaustionError)


@dataclass(slots=True)
class ReferralCode:
    referral_code: str
    is_new: bool


@dataclass(slots=True)
class ApplyResult:
    success: bool
    referrer_id: str | None = None
    error: ReferralError | None = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


@dataclass(slots=True)
class EarningsResult:
    success: bool
    referrer_id: str | None = None
    amount: Decimal | None = None
    new_pending: Decimal | None = None
    error: ReferralError | None = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


@dataclass(slots=True)
class ClaimResult:
    success: bool
    claim_id: str | None = None
    amount: Decimal | None = None
    tx_signature: str | None = None
    error: ReferralError | None = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


@dataclass(slots=True)
class ReferralStats:
    """Снимок для дашборда (только для отображения, не для денежных решений)."""

    referral_code: str
    referral_count: int
    pending_earnings: Decimal
    total_earnings: Decimal
    total_claimed: Decimal
    claim_count: int
    can_claim: bool
    cooldown_active: bool
    cooldown_remaining: float
    cooldown_remaining_formatted: str
    min_claim_amount: Decimal
    referrer_share_percent: int
    was_referred: bool
    referred_by_code: str | None
    last_claim_at: datetime | None
    enabled: bool


class ReferralManager:
    """Реферальная система, работающая через БД."""

    def __init__(
        self,
        settings: ReferralSettings,
        *,
        payout_executor: PayoutExecutor,
        claim_lock: ClaimLock,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        payout_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
        code_factory: Callable[[], str] | None = None,
    ) -> None:
        self._settings = settings
        self._payout = payout_executor
        self._claim_lock = claim_lock
        self._session_maker = session_maker
        self._payout_timeout = payout_timeout
        self._clock = clock
        self._code_factory = code_factory or (
            lambda: generate_code(settings.code_length, settings.code_alphabet)
        )

    def set_session_maker(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def share_percent(self) -> int:
        return self._settings.share_percent

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._session_maker is None:
            raise RuntimeError("ReferralManager: session maker не подключён")
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Хранилище рефералов недоступно: {error}", error=exc)
            raise StoreUnavailableError(f"Referral store unavailable: {exc.__class__.__name__}") from exc

    # ------------------------------------------------------------------
    # Коды и аккаунты
    # ------------------------------------------------------------------

    async def get_or_create_account(self, user_id: str) -> ReferralCode:
        """Возвращает код пользователя, создавая аккаунт при первом обращении.

        Идемпотентно при гонке: проигравший INSERT (уникальность ``user_id``)
        перечитывает строку и отдаёт код победителя.
        """

        async with self._session() as session:
            account, is_new = await self._get_or_create(session, user_id)
            return ReferralCode(referral_code=account.referral_code, is_new=is_new)

    async def _get_or_create(self, session: AsyncSession, user_id: str) -> tuple[ReferralAccount, bool]:
        existing = await get_account(session, user_id)
        if existing is not None:
            return existing, False

        attempts = self._settings.code_max_attempts
        for attempt in range(1, attempts + 1):
            code = self._code_factory()
            if await code_exists(session, code):
                logger.debug("Коллизия реферального кода {code} (попытка {n})", code=code, n=attempt)
                continue
            try:
                account = await insert_account(session, user_id=user_id, referral_code=code)
            except IntegrityError:
                await session.rollback()
                winner = await get_account(session, user_id)
                if winner is not None:
                    logger.debug("Аккаунт {user} создан параллельно, берём его код", user=user_id)
                    return winner, False
                logger.debug("Код {code} заняли параллельно (попытка {n})", code=code, n=attempt)
                continue
            logger.info("Создан реферальный аккаунт {user}: {code}", user=user_id, code=code)
            return account, True

        logger.critical(
            "Не удалось подобрать уникальный реферальный код за {n} попыток, "
            "нужно расширить алфавит или длину",
            n=attempts,
        )
        raise CodeExhaustionError(attempts)

    async def get_referrer(self, user_id: str) -> Optional[str]:
        async with self._session() as session:
            account = await get_account(session, user_id)
            return account.referred_by if account else None

    # ------------------------------------------------------------------
    # Привязка реферала
    # ------------------------------------------------------------------

    async def apply_referral_code(self, new_user_id: str, code: str) -> ApplyResult:
        """Привязывает пользователя к рефереру по его коду (один раз и навсегда)."""

        try:
            referrer_id = await self._link(new_user_id, code)
        except _FATAL_ERRORS:
            raise
        except ReferralError as exc:
            logger.info(
                "Реферальный код {code} для {user} отклонён: {reason}",
                code=code,
                user=new_user_id,
                reason=exc.reason,
            )
            return ApplyResult(success=False, error=exc)
        return ApplyResult(success=True, referrer_id=referrer_id)

    async def _link(self, new_user_id: str, code: str) -> str:
        if not self.enabled:
            raise SystemDisabledError()
        normalized = normalize_code(code)
        if not normalized:
            raise InvalidCodeError()

        async with self._session() as session:
            referrer = await get_account_by_code(session, normalized)
            if referrer is None:
                raise InvalidCodeError()
            referrer_id = referrer.user_id
            if referrer_id == new_user_id:
                raise SelfReferralError()

            current = await get_account(session, new_user_id)
            if current is not None and current.referred_by:
                raise AlreadyReferredError()
            if current is None:
                await self._get_or_create(session, new_user_id)

            linked = await update_account_conditional(
                session,
                new_user_id,
                expected={"referred_by": None},
                values={"referred_by": referrer_id, "referred_by_code": normalized},
            )
            if not linked:
                await session.rollback()
                raise AlreadyReferredError()
            await increment_referral_count(session, referrer_id)
            await session.commit()

        logger.info(
            "Новая рефералка: {ref} -> {inv} (код {code})",
            ref=referrer_id,
            inv=new_user_id,
            code=normalized,
        )
        return referrer_id

    # ------------------------------------------------------------------
    # Начисления
    # ------------------------------------------------------------------

    def calculate_referrer_share(self, fee_amount: AmountLike) -> Decimal:
        """Доля реферера от комиссии платформы (0 при выключенной программе)."""

        if not self.enabled:
            return ZERO
        return percent_of(fee_amount, self._settings.share_percent)

    async def add_referral_earnings(
        self,
        referrer_id: str,
        amount: AmountLike,
        source_user_id: str,
        operation_type: str,
    ) -> EarningsResult:
        """Начисляет рефереру ``amount`` SOL и пишет запись в журнал.

        Баланс и журнал меняются в одной транзакции.
        """

        try:
            return await self._accrue(referrer_id, amount, source_user_id, operation_type)
        except _FATAL_ERRORS:
            raise
        except ReferralError as exc:
            return EarningsResult(success=False, referrer_id=referrer_id, error=exc)

    async def _accrue(
        self,
        referrer_id: str,
        amount: AmountLike,
        source_user_id: str,
        operation_type: str,
    ) -> EarningsResult:
        if not self.enabled:
            raise SystemDisabledError()
        rounded = self._validate_amount(amount)
        share_lamports = sol_to_lamports(rounded)
        fee_lamports = sol_to_lamports(self._fee_for_share(rounded))

        async with self._session() as session:
            updated = await increment_balances(
                session,
                referrer_id,
                pending_lamports=share_lamports,
                total_earned_lamports=share_lamports,
            )
            if not updated:
                await session.rollback()
                raise ReferrerNotFoundError()
            await append_ledger_entry(
                session,
                referrer_id=referrer_id,
                source_user_id=source_user_id,
                operation_type=operation_type,
                fee_lamports=fee_lamports,
                referrer_share_lamports=share_lamports,
            )
            await session.commit()
            account = await get_account(session, referrer_id)
            new_pending = account.pending_earnings if account else ZERO

        logger.info(
            "+{amount} SOL рефереру {ref} ({op} от {src}) | pending {pending}",
            amount=rounded,
            ref=referrer_id,
            op=operation_type,
            src=source_user_id,
            pending=new_pending,
        )
        return EarningsResult(
            success=True,
            referrer_id=referrer_id,
            amount=rounded,
            new_pending=new_pending,
        )

    def _validate_amount(self, amount: AmountLike) -> Decimal:
        try:
            value = to_decimal(amount)
        except ValueError:
            value = None
        if (
            value is None
            or not value.is_finite()
            or value <= 0
            or value > self._settings.max_earning_amount
        ):
            logger.warning("Отклонено некорректное начисление: {amount!r}", amount=amount)
            raise InvalidAmountError()
        return round_sol(value)

    def _fee_for_share(self, share: Decimal) -> Decimal:
        """Полная комиссия, долей которой является ``share``."""

        percent = self._settings.share_percent
        if percent <= 0:
            return share
        return round_sol(share * 100 / percent)

    async def credit_fee(
        self,
        source_user_id: str,
        fee_amount: AmountLike,
        operation_type: str,
    ) -> EarningsResult | None:
        """Начисляет рефереру пользователя долю собранной комиссии.

        None, если у пользователя нет реферера или доля нулевая.
        """

        referrer_id = await self.get_referrer(source_user_id)
        if referrer_id is None:
            return None
        try:
            share = self.calculate_referrer_share(fee_amount)
        except ValueError:
            logger.warning("Некорректная комиссия {fee!r} от {user}", fee=fee_amount, user=source_user_id)
            return EarningsResult(success=False, referrer_id=referrer_id, error=InvalidAmountError())
        if share <= 0:
            return None
        return await self.add_referral_earnings(referrer_id, share, source_user_id, operation_type)

    # ------------------------------------------------------------------
    # Статистика
    # ------------------------------------------------------------------

    def _cooldown_remaining(self, last_claim_at: datetime | None, now: datetime) -> float:
        if last_claim_at is None:
            return 0.0
        cooldown_end = as_utc(last_claim_at) + timedelta(seconds=self._settings.claim_cooldown_seconds)
        return max(0.0, (cooldown_end - now).total_seconds())

    async def get_stats(self, user_id: str) -> ReferralStats:
        async with self._session() as session:
            account, _ = await self._get_or_create(session, user_id)

        remaining = self._cooldown_remaining(account.last_claim_at, self._clock())
        cooldown_active = remaining > 0
        pending = account.pending_earnings
        minimum = round_sol(self._settings.min_claim_amount)
        return ReferralStats(
            referral_code=account.referral_code,
            referral_count=account.referral_count,
            pending_earnings=pending,
            total_earnings=account.total_earnings,
            total_claimed=account.total_claimed,
            claim_count=account.claim_count,
            can_claim=pending >= minimum and not cooldown_active,
            cooldown_active=cooldown_active,
            cooldown_remaining=remaining,
            cooldown_remaining_formatted=format_duration(remaining),
            min_claim_amount=minimum,
            referrer_share_percent=self._settings.share_percent,
            was_referred=bool(account.referred_by),
            referred_by_code=account.referred_by_code,
            last_claim_at=as_utc(account.last_claim_at),
            enabled=self.enabled,
        )

    async def get_claims(self, user_id: str) -> Sequence[ReferralClaim]:
        async with self._session() as session:
            return await list_claims(session, user_id)

    async def get_earnings(self, referrer_id: str) -> Sequence[ReferralEarning]:
        async with self._session() as session:
            return await list_ledger_entries(session, referrer_id)

    # ------------------------------------------------------------------
    # Выплаты
    # ------------------------------------------------------------------

    async def process_claim(self, user_id: str, destination_address: str) -> ClaimResult:
        """Выводит все pending-начисления на ``destination_address``."""

        try:
            if not self.enabled:
                raise SystemDisabledError()
            async with self._claim_lock.hold(user_id):
                return await self._settle_claim(user_id, destination_address)
        except _FATAL_ERRORS:
            raise
        except ReferralError as exc:
            logger.info("Выплата для {user} отклонена: {reason}", user=user_id, reason=exc.reason)
            return ClaimResult(success=False, error=exc)

    async def _settle_claim(self, user_id: str, destination_address: str) -> ClaimResult:
        minimum = round_sol(self._settings.min_claim_amount)

        async with self._session() as session:
            account = await get_account(session, user_id)
            if account is None:
                raise AccountNotFoundError()
            claim_lamports = account.pending_lamports
            claim_amount = lamports_to_sol(claim_lamports)
            if claim_amount < minimum:
                raise BelowMinimumError(claim_amount, minimum)
            remaining = self._cooldown_remaining(account.last_claim_at, self._clock())
            if remaining > 0:
                raise CooldownActiveError(remaining)

            claim_id = uuid.uuid4().hex
            reserved = await update_account_conditional(
                session,
                user_id,
                expected={"pending_lamports": claim_lamports},
                values={"pending_lamports": 0},
            )
            if not reserved:
                await session.rollback()
                logger.warning("Pending {user} изменился до резерва, выплата отменена", user=user_id)
                raise ConcurrentModificationError()
            await append_claim_record(
                session,
                claim_id=claim_id,
                user_id=user_id,
                amount_lamports=claim_lamports,
                destination_address=destination_address,
            )
            await session.commit()

        logger.info(
            "Выплата {claim}: {amount} SOL для {user} -> {dest}",
            claim=claim_id,
            amount=claim_amount,
            user=user_id,
            dest=destination_address,
        )

        try:
            signature = await asyncio.wait_for(
                self._payout.transfer(destination_address, claim_amount, claim_id),
                timeout=self._payout_timeout,
            )
        except asyncio.TimeoutError:
            detail = f"payout timed out after {self._payout_timeout:g}s"
            await self._release_reservation(user_id, claim_id, claim_lamports, detail)
            raise TransferFailedError(detail)
        except Exception as exc:  # noqa: BLE001
            detail = str(exc) or exc.__class__.__name__
            await self._release_reservation(user_id, claim_id, claim_lamports, detail)
            raise TransferFailedError(detail) from exc

        try:
            async with self._session() as session:
                await update_account_conditional(
                    session,
                    user_id,
                    expected={},
                    values={
                        "total_claimed_lamports": ReferralAccount.total_claimed_lamports + claim_lamports,
                        "claim_count": ReferralAccount.claim_count + 1,
                        "last_claim_at": self._clock(),
                        "last_claim_signature": signature,
                    },
                )
                await update_claim_status(session, claim_id, ClaimStatus.SUCCESS, tx_signature=signature)
                await session.commit()
        except StoreUnavailableError:
            logger.critical(
                "Перевод {claim} выполнен ({sig}), но итог не записан: нужна ручная сверка",
                claim=claim_id,
                sig=signature,
            )
            raise

        logger.info(
            "Выплата {claim} успешна: {amount} SOL, tx {sig}",
            claim=claim_id,
            amount=claim_amount,
            sig=signature,
        )
        return ClaimResult(
            success=True,
            claim_id=claim_id,
            amount=claim_amount,
            tx_signature=signature,
        )

    async def _release_reservation(
        self,
        user_id: str,
        claim_id: str,
        claim_lamports: int,
        detail: str,
    ) -> None:
        logger.error(
            "Перевод {claim} не удался ({detail}), возвращаем {amount} SOL в pending",
            claim=claim_id,
            detail=detail,
            amount=lamports_to_sol(claim_lamports),
        )
        async with self._session() as session:
            await update_account_conditional(
                session,
                user_id,
                expected={},
                values={"pending_lamports": ReferralAccount.pending_lamports + claim_lamports},
            )
            await update_claim_status(session, claim_id, ClaimStatus.FAILED, error=detail)
            await session.commit()


__all__ = [
    "ApplyResult",
    "ClaimResult",
    "EarningsResult",
    "ReferralCode",
    "ReferralManager",
    "ReferralStats",
]
