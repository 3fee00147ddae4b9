"""Настройка loguru для продакшена."""

from __future__ import annotations

import sys
from loguru import logger


def setup_logging(json: bool = False, level: str = "INFO") -> None:
    logger.remove()
    if json:
        # loguru сам сериализует запись вместе с extra
        logger.add(sys.stdout, serialize=True, level=level.upper(), backtrace=False, enqueue=True)
        return
    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}",
        level=level.upper(),
        colorize=True,
        backtrace=False,
        enqueue=True,
    )


__all__ = ["setup_logging"]
