"""
Pytest configuration and shared fixtures for the referral engine tests.
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("SECURITY__JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("SECURITY__INTERNAL_API_KEY", "test-internal-key")

import pytest
import pytest_asyncio
from aiocache import SimpleMemoryCache

from aqua.database import build_engine, build_session_maker, init_db
from aqua.services.core.claim_lock import ClaimLock
from aqua.services.core.referral_manager import ReferralManager
from config.settings import DatabaseSettings, ReferralSettings


class FakeClock:
    """Управляемые часы для проверок cooldown."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingExecutor:
    """Фейковый исполнитель выплат: запоминает переводы, может упасть по заказу."""

    def __init__(self) -> None:
        self.transfers = []
        self.fail_with: Exception | None = None
        self.before_transfer = None

    async def transfer(self, destination: str, amount: Decimal, claim_id: str) -> str:
        if self.before_transfer is not None:
            await self.before_transfer()
        if self.fail_with is not None:
            raise self.fail_with
        self.transfers.append((destination, amount, claim_id))
        return f"sig-{claim_id[:8]}"


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def referral_settings():
    return ReferralSettings(enabled=True)


@pytest.fixture
def claim_lock():
    # отдельный префикс: хранилище SimpleMemoryCache может быть общим между экземплярами
    return ClaimLock(SimpleMemoryCache(), lease_seconds=30, prefix=f"test-claim-{uuid.uuid4().hex}")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(DatabaseSettings(dsn=f"sqlite+aiosqlite:///{tmp_path / 'referrals.db'}"))
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def make_manager(session_maker, executor, claim_lock, clock, referral_settings):
    def _factory(**overrides):
        settings = overrides.pop("settings", referral_settings)
        params = dict(
            payout_executor=executor,
            claim_lock=claim_lock,
            session_maker=session_maker,
            payout_timeout=2.0,
            clock=clock,
        )
        params.update(overrides)
        return ReferralManager(settings, **params)

    return _factory


@pytest.fixture
def manager(make_manager):
    return make_manager()


@pytest_asyncio.fixture
async def funded_user(manager):
    """Пользователь с 0.5 SOL pending."""

    await manager.get_or_create_account("referrer")
    result = await manager.add_referral_earnings("referrer", Decimal("0.5"), "trader", "trade")
    assert result.success
    return "referrer"
