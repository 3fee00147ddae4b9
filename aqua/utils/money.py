"""Фиксированная точка для SOL.

Все суммы движка: ``Decimal`` с 9 знаками (1 лампорт), в базе храним целые
лампорты. Каждая арифметическая операция сразу округляется до 9 знаков.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 10**SOL_DECIMALS
SOL_QUANT = Decimal(1).scaleb(-SOL_DECIMALS)
ZERO = Decimal("0").quantize(SOL_QUANT)

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Приводит вход к Decimal без шума двоичной плавающей точки.

    Бросает ``ValueError``, если значение не число.
    """

    if isinstance(value, bool):
        raise ValueError("bool не является суммой")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr float даёт кратчайшее точное представление (0.1 -> "0.1")
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Некорректная сумма: {value!r}") from exc


def round_sol(value: AmountLike) -> Decimal:
    """Округляет до 9 знаков (half-up)."""

    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError(f"Сумма должна быть конечной: {value!r}")
    return amount.quantize(SOL_QUANT, rounding=ROUND_HALF_UP)


def sol_to_lamports(value: AmountLike) -> int:
    return int(round_sol(value).scaleb(SOL_DECIMALS))


def lamports_to_sol(lamports: int) -> Decimal:
    return (Decimal(int(lamports)) / LAMPORTS_PER_SOL).quantize(SOL_QUANT)


def percent_of(value: AmountLike, percent: AmountLike) -> Decimal:
    # округляется только результат, вход берём как есть
    return round_sol(to_decimal(value) * to_decimal(percent) / 100)


def format_sol(value: AmountLike, places: int = 6) -> str:
    """Отображение (6 знаков, округление вниз, как в кошельках)."""

    quant = Decimal(1).scaleb(-places)
    return f"{to_decimal(value).quantize(quant, rounding=ROUND_DOWN)}"


def format_duration(seconds: float) -> str:
    """Человекочитаемая длительность: ``1h 5m``, ``3m 20s``, ``45s``."""

    if seconds <= 0:
        return "0s"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


__all__ = [
    "LAMPORTS_PER_SOL",
    "SOL_DECIMALS",
    "ZERO",
    "format_duration",
    "format_sol",
    "lamports_to_sol",
    "percent_of",
    "round_sol",
    "sol_to_lamports",
    "to_decimal",
]
