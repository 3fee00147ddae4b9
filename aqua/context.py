"""Глобальные сервисы и зависимости реферального движка."""

from __future__ import annotations

from config.settings import get_settings
from .database import build_engine, build_session_maker
from .services.core.claim_lock import ClaimLock
from .services.core.referral_manager import ReferralManager
from .services.solana.payout import build_payout_executor
from .utils.cache import get_lock_cache

settings = get_settings()

engine = build_engine(settings.database)
session_maker = build_session_maker(engine)

payout_executor = build_payout_executor(settings.payout)
claim_lock = ClaimLock(get_lock_cache(), lease_seconds=settings.referral.claim_lock_ttl_sec)
referral_manager = ReferralManager(
    settings.referral,
    payout_executor=payout_executor,
    claim_lock=claim_lock,
    session_maker=session_maker,
    payout_timeout=settings.payout.timeout_sec,
)

__all__ = [
    "claim_lock",
    "engine",
    "payout_executor",
    "referral_manager",
    "session_maker",
    "settings",
]
