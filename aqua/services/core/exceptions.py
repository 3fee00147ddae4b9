"""
Referral Engine Domain Exceptions

Бизнес-ошибки поднимаются внутри менеджера и на его границе превращаются в
результаты (``success=False``). Наружу исключениями уходят только
``StoreUnavailableError`` и ``CodeExhaustionError``.
"""

from __future__ import annotations

from decimal import Decimal

from aqua.utils.money import format_duration, format_sol


class ReferralError(Exception):
    """Base exception for referral engine errors"""

    reason = "referral_error"
    code = 5000
    category = "validation"
    retryable = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SystemDisabledError(ReferralError):
    """Referral program is switched off"""

    reason = "system_disabled"
    code = 5005
    category = "gate"

    def __init__(self, message: str = "Referral system disabled") -> None:
        super().__init__(message)


class InvalidCodeError(ReferralError):
    reason = "invalid_code"
    code = 5001

    def __init__(self, message: str = "Invalid referral code") -> None:
        super().__init__(message)


class SelfReferralError(ReferralError):
    reason = "self_referral"
    code = 5001

    def __init__(self, message: str = "Cannot use your own referral code") -> None:
        super().__init__(message)


class AlreadyReferredError(ReferralError):
    reason = "already_referred"
    code = 5001

    def __init__(self, message: str = "You have already been referred") -> None:
        super().__init__(message)


class InvalidAmountError(ReferralError):
    reason = "invalid_amount"
    code = 5002

    def __init__(self, message: str = "Invalid earnings amount") -> None:
        super().__init__(message)


class ReferrerNotFoundError(ReferralError):
    reason = "referrer_not_found"
    code = 5002

    def __init__(self, message: str = "Referrer not found") -> None:
        super().__init__(message)


class AccountNotFoundError(ReferralError):
    reason = "account_not_found"
    code = 5000

    def __init__(self, message: str = "Referral record not found") -> None:
        super().__init__(message)


class ClaimInProgressError(ReferralError):
    """Another claim for the same user is executing"""

    reason = "claim_in_progress"
    code = 5006
    category = "concurrency"
    retryable = True

    def __init__(self, message: str = "A claim is already in progress") -> None:
        super().__init__(message)


class BelowMinimumError(ReferralError):
    reason = "below_minimum"
    code = 5004

    def __init__(self, balance: Decimal, minimum: Decimal) -> None:
        self.balance = balance
        self.minimum = minimum
        super().__init__(
            f"Minimum claim is {minimum.normalize():f} SOL. You have {format_sol(balance)} SOL."
        )


class CooldownActiveError(ReferralError):
    reason = "cooldown_active"
    code = 5003
    retryable = True

    def __init__(self, remaining_seconds: float) -> None:
        self.remaining_seconds = remaining_seconds
        super().__init__(f"Cooldown active. Try again in {format_duration(remaining_seconds)}.")


class InvalidWalletError(ReferralError):
    reason = "invalid_wallet"
    code = 5004

    def __init__(self, message: str = "Invalid destination wallet") -> None:
        super().__init__(message)


class ConcurrentModificationError(ReferralError):
    """Optimistic lock lost: the pending balance changed under us"""

    reason = "concurrent_modification"
    code = 5006
    category = "concurrency"
    retryable = True

    def __init__(self, message: str = "Failed to process claim - please try again") -> None:
        super().__init__(message)


class TransferFailedError(ReferralError):
    reason = "transfer_failed"
    code = 5007
    category = "external"
    retryable = True

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Transfer failed: {detail}")


class StoreUnavailableError(ReferralError):
    """Raised when the persistence store errors out (no retries)"""

    reason = "store_unavailable"
    code = 5000
    category = "external"

    def __init__(self, message: str = "Referral store unavailable") -> None:
        super().__init__(message)


class CodeExhaustionError(ReferralError):
    """Every generated code collided; widen the alphabet or the length"""

    reason = "code_exhaustion"
    code = 5000
    category = "exhaustion"

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Could not generate a unique referral code after {attempts} attempts")


__all__ = [
    "AccountNotFoundError",
    "AlreadyReferredError",
    "BelowMinimumError",
    "ClaimInProgressError",
    "CodeExhaustionError",
    "ConcurrentModificationError",
    "CooldownActiveError",
    "InvalidAmountError",
    "InvalidCodeError",
    "InvalidWalletError",
    "ReferralError",
    "ReferrerNotFoundError",
    "SelfReferralError",
    "StoreUnavailableError",
    "SystemDisabledError",
    "TransferFailedError",
]
