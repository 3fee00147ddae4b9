"""Генератор реферальных кодов."""

from __future__ import annotations

import secrets

from config.settings import DEFAULT_CODE_ALPHABET

CODE_LENGTH = 8


def generate_code(length: int = CODE_LENGTH, alphabet: str = DEFAULT_CODE_ALPHABET) -> str:
    """Равномерный код без похожих символов (нет 0/1/I/O).

    Коллизии разруливает вызывающий.
    """

    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


__all__ = ["CODE_LENGTH", "generate_code", "normalize_code"]
