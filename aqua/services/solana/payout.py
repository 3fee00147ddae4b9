"""Исполнители реферальных выплат в SOL.

Движок не строит и не подписывает транзакции сам: перевод выполняет внутренний
сервис платформы (кошелёк выплат, ключи, RPC). ``HttpPayoutExecutor`` обращается к
нему по HTTP, ``DryRunPayoutExecutor`` нужен для dev-окружения. ``claim_id``
передаётся как ключ идемпотентности.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

import aiohttp
from loguru import logger

from aqua.utils.money import sol_to_lamports
from config.settings import PayoutSettings


class PayoutError(RuntimeError):
    """Перевод не выполнен (или результат неизвестен)."""


class PayoutExecutor(Protocol):
    async def transfer(self, destination: str, amount: Decimal, claim_id: str) -> str:
        """Переводит ``amount`` SOL и возвращает подпись транзакции."""


class HttpPayoutExecutor:
    """Клиент внутреннего transfer-сервиса (аналог /api/internal/transfer)."""

    def __init__(
        self,
        *,
        transfer_url: str,
        payout_wallet: str,
        api_key: str | None = None,
        timeout_sec: float = 30.0,
    ) -> None:
        self._transfer_url = transfer_url
        self._payout_wallet = payout_wallet
        self._api_key = api_key
        self._timeout = timeout_sec
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def transfer(self, destination: str, amount: Decimal, claim_id: str) -> str:
        session = await self.start()
        lamports = sol_to_lamports(amount)
        if lamports <= 0:
            raise PayoutError("Сумма перевода должна быть положительной")
        payload = {
            "from_wallet": self._payout_wallet,
            "to_wallet": destination,
            "amount_lamports": lamports,
            "idempotency_key": claim_id,
        }
        headers = {"Idempotency-Key": claim_id}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        logger.info(
            "Выплата {claim}: {amount} SOL -> {dest}",
            claim=claim_id,
            amount=amount,
            dest=destination,
        )
        try:
            async with session.post(self._transfer_url, json=payload, headers=headers) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if resp.status >= 400:
                    error = data.get("error") if isinstance(data, dict) else None
                    raise PayoutError(error or f"HTTP {resp.status}")
        except aiohttp.ClientError as exc:
            raise PayoutError(f"Сервис переводов недоступен: {exc}") from exc
        signature = data.get("signature") if isinstance(data, dict) else None
        if not signature:
            raise PayoutError("Сервис переводов не вернул подпись транзакции")
        logger.info("Выплата {claim} выполнена: {sig}", claim=claim_id, sig=signature)
        return str(signature)


class DryRunPayoutExecutor:
    """Ничего не переводит, возвращает фиктивную подпись (dev/staging)."""

    def __init__(self) -> None:
        self.transfers: list[tuple[str, Decimal, str]] = []

    async def transfer(self, destination: str, amount: Decimal, claim_id: str) -> str:
        logger.warning(
            "DRY-RUN выплата {claim}: {amount} SOL -> {dest}",
            claim=claim_id,
            amount=amount,
            dest=destination,
        )
        self.transfers.append((destination, amount, claim_id))
        return f"dry-run-{claim_id}"


def build_payout_executor(cfg: PayoutSettings) -> PayoutExecutor:
    if cfg.backend == "dry_run":
        return DryRunPayoutExecutor()
    if cfg.transfer_url is None or not cfg.payout_wallet:
        raise RuntimeError("PAYOUT__BACKEND=http требует PAYOUT__TRANSFER_URL и PAYOUT__PAYOUT_WALLET")
    return HttpPayoutExecutor(
        transfer_url=str(cfg.transfer_url),
        payout_wallet=cfg.payout_wallet,
        api_key=cfg.api_key.get_secret_value() if cfg.api_key else None,
        timeout_sec=cfg.timeout_sec,
    )


__all__ = [
    "DryRunPayoutExecutor",
    "HttpPayoutExecutor",
    "PayoutError",
    "PayoutExecutor",
    "build_payout_executor",
]
