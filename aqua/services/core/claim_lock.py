"""Single-flight блокировка выплат по пользователю.

Ключ ставится через ``cache.add`` (атомарно: падает, если ключ уже есть) с арендой
``lease_seconds``, чтобы упавший процесс не держал блокировку вечно. С memory
backend блокировка работает в пределах процесса; для нескольких инстансов нужен
redis backend (``CACHE__BACKEND=redis``). Деньги дополнительно защищены
compare-and-swap на ``pending_lamports`` в базе.
"""

from __future__ import annotations

import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator

from aiocache.base import BaseCache
from loguru import logger

from .exceptions import ClaimInProgressError


class ClaimLock:
    """Блокировка ``referral-claim:<user_id>`` поверх aiocache."""

    def __init__(self, cache: BaseCache, *, lease_seconds: int = 120, prefix: str = "referral-claim") -> None:
        self._cache = cache
        self._lease = lease_seconds
        self._prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def acquire(self, user_id: str) -> str | None:
        """Возвращает токен владельца или None, если блокировка занята."""

        token = secrets.token_hex(8)
        try:
            await self._cache.add(self._key(user_id), token, ttl=self._lease)
        except ValueError:
            return None
        return token

    async def release(self, user_id: str, token: str) -> None:
        key = self._key(user_id)
        try:
            if await self._cache.get(key) == token:
                await self._cache.delete(key)
        except Exception as exc:  # noqa: BLE001
            # аренда истечёт сама через lease_seconds
            logger.exception("Не удалось снять блокировку выплаты {key}: {error}", key=key, error=exc)

    async def is_locked(self, user_id: str) -> bool:
        return await self._cache.exists(self._key(user_id))

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[str]:
        """Держит блокировку на время выплаты, снимает её на любом выходе."""

        token = await self.acquire(user_id)
        if token is None:
            raise ClaimInProgressError()
        try:
            yield token
        finally:
            await self.release(user_id, token)


__all__ = ["ClaimLock"]
