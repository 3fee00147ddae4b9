"""JWT-утилиты для пользовательских сессий и проверка внутреннего ключа."""

from __future__ import annotations

import hmac
import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from config.settings import SecuritySettings, get_settings


def _security(cfg: SecuritySettings | None) -> SecuritySettings:
    return cfg or get_settings().security


def issue_session_token(
    user_id: str,
    ttl_minutes: int | None = None,
    cfg: SecuritySettings | None = None,
) -> str:
    """Выдаёт короткоживущий JWT, в ``sub`` id пользователя (адрес основного кошелька)."""

    security = _security(cfg)
    ttl = ttl_minutes or security.jwt_ttl_minutes
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl * 60,
    }
    return jwt.encode(payload, security.jwt_secret.get_secret_value(), algorithm=security.jwt_algorithm)


def decode_session_token(token: str, cfg: SecuritySettings | None = None) -> Dict[str, Any]:
    """Валидирует и возвращает payload JWT."""

    security = _security(cfg)
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret.get_secret_value(),
            algorithms=[security.jwt_algorithm],
        )
    except InvalidTokenError as exc:
        raise ValueError("Недействительный токен сессии") from exc
    if not payload.get("sub"):
        raise ValueError("В токене нет идентификатора пользователя")
    return payload


def verify_internal_key(provided: str | None, cfg: SecuritySettings | None = None) -> bool:
    expected = _security(cfg).internal_api_key
    if expected is None or not provided:
        return False
    return hmac.compare_digest(provided, expected.get_secret_value())


__all__ = ["decode_session_token", "issue_session_token", "verify_internal_key"]
