"""Хранилище для блокировок выплат поверх aiocache (memory или redis)."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from aiocache import SimpleMemoryCache
from aiocache.base import BaseCache
from loguru import logger

try:
    from aiocache import RedisCache
except (ImportError, AttributeError):  # pragma: no cover - optional dependency
    RedisCache = None  # type: ignore[assignment]

from config.settings import CacheSettings, get_settings

LOCK_NAMESPACE = "aqua"

_lock_cache: BaseCache | None = None


def build_lock_cache(cfg: CacheSettings) -> BaseCache:
    """Создаёт отдельный экземпляр кеша под блокировки.

    Memory-backend живёт в рамках процесса, поэтому при нескольких воркерах API
    нужен redis.
    """

    if cfg.backend == "redis":
        if RedisCache is None:
            raise RuntimeError("CACHE__BACKEND=redis требует пакет aiocache[redis]")
        params = parse_redis_dsn(cfg.redis_dsn)
        logger.info(
            "Блокировки выплат в Redis {host}:{port}/{db}",
            host=params["endpoint"],
            port=params["port"],
            db=params["db"],
        )
        return RedisCache(namespace=LOCK_NAMESPACE, ttl=cfg.ttl_seconds, **params)
    return SimpleMemoryCache(namespace=LOCK_NAMESPACE, ttl=cfg.ttl_seconds)


def get_lock_cache() -> BaseCache:
    """Общий кеш блокировок процесса (создаётся при первом обращении)."""

    global _lock_cache
    if _lock_cache is None:
        _lock_cache = build_lock_cache(get_settings().cache)
    return _lock_cache


def parse_redis_dsn(dsn: str | None) -> dict[str, Any]:
    if not dsn:
        raise RuntimeError("CACHE__BACKEND=redis, но CACHE__REDIS_DSN не указан")
    parsed = urlparse(dsn)
    if parsed.scheme != "redis":
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    db_part = parsed.path.lstrip("/")
    if db_part and not db_part.isdigit():
        raise ValueError(f"Некорректный номер базы Redis: {db_part}")
    return {
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": int(db_part or 0),
    }


__all__ = ["LOCK_NAMESPACE", "build_lock_cache", "get_lock_cache", "parse_redis_dsn"]
