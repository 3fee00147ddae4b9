"""
Tests for earnings accrual, the audit ledger and fee crediting.
"""
from decimal import Decimal

import pytest

from aqua.services.core.exceptions import (
    InvalidAmountError,
    ReferrerNotFoundError,
    SystemDisabledError,
)
from aqua.utils.money import lamports_to_sol, sol_to_lamports
from config.settings import ReferralSettings


def test_referrer_share_is_half_of_fee(manager):
    assert manager.calculate_referrer_share(Decimal("0.02")) == Decimal("0.01")
    assert manager.calculate_referrer_share("1") == Decimal("0.5")


def test_referrer_share_rounds_only_the_product(manager):
    # 0.0000000025 * 50% = 0.00000000125, до лампорта это 0.000000001
    assert manager.calculate_referrer_share(Decimal("0.0000000025")) == Decimal("0.000000001")


def test_referrer_share_respects_percent(make_manager):
    manager = make_manager(settings=ReferralSettings(enabled=True, share_percent=30))
    assert manager.calculate_referrer_share("1") == Decimal("0.3")


def test_referrer_share_zero_when_disabled(make_manager):
    manager = make_manager(settings=ReferralSettings(enabled=False))
    assert manager.calculate_referrer_share("1") == Decimal("0")


@pytest.mark.asyncio
async def test_accrual_updates_balances_and_ledger(manager):
    await manager.get_or_create_account("referrer")

    first = await manager.add_referral_earnings("referrer", Decimal("0.5"), "trader", "trade")
    second = await manager.add_referral_earnings("referrer", 0.25, "trader", "token_create")

    assert first.success and second.success
    assert second.new_pending == Decimal("0.75")
    stats = await manager.get_stats("referrer")
    assert stats.pending_earnings == Decimal("0.75")
    assert stats.total_earnings == Decimal("0.75")

    ledger = await manager.get_earnings("referrer")
    assert [e.operation_type for e in ledger] == ["trade", "token_create"]
    assert ledger[0].referrer_share_lamports == 500_000_000
    # при 50% полная комиссия вдвое больше доли
    assert ledger[0].fee_lamports == 1_000_000_000
    assert ledger[0].source_user_id == "trader"


@pytest.mark.asyncio
async def test_accrual_rounds_to_lamport(manager):
    await manager.get_or_create_account("referrer")

    result = await manager.add_referral_earnings("referrer", "0.0000000015", "trader", "trade")

    assert result.amount == Decimal("0.000000002")
    assert (await manager.get_stats("referrer")).pending_earnings == Decimal("0.000000002")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount",
    [0, -1, "nan", "inf", "not-a-number", Decimal("1000.000000001")],
)
async def test_invalid_amounts_are_rejected(manager, amount):
    await manager.get_or_create_account("referrer")

    result = await manager.add_referral_earnings("referrer", amount, "trader", "trade")

    assert result.success is False
    assert isinstance(result.error, InvalidAmountError)
    stats = await manager.get_stats("referrer")
    assert stats.pending_earnings == Decimal("0")
    assert await manager.get_earnings("referrer") == []


@pytest.mark.asyncio
async def test_maximum_amount_is_accepted(manager):
    await manager.get_or_create_account("referrer")

    result = await manager.add_referral_earnings("referrer", Decimal("1000"), "trader", "trade")

    assert result.success is True


@pytest.mark.asyncio
async def test_unknown_referrer(manager):
    result = await manager.add_referral_earnings("ghost", Decimal("0.1"), "trader", "trade")

    assert isinstance(result.error, ReferrerNotFoundError)
    assert await manager.get_earnings("ghost") == []


@pytest.mark.asyncio
async def test_accrual_when_disabled(make_manager):
    manager = make_manager(settings=ReferralSettings(enabled=False))
    await manager.get_or_create_account("referrer")

    result = await manager.add_referral_earnings("referrer", Decimal("0.1"), "trader", "trade")

    assert isinstance(result.error, SystemDisabledError)


@pytest.mark.asyncio
async def test_credit_fee_goes_to_referrer(manager):
    code = (await manager.get_or_create_account("referrer")).referral_code
    await manager.apply_referral_code("trader", code)

    result = await manager.credit_fee("trader", Decimal("0.02"), "trade")

    assert result is not None and result.success
    assert result.referrer_id == "referrer"
    assert result.amount == Decimal("0.01")
    ledger = await manager.get_earnings("referrer")
    assert ledger[0].fee_lamports == 20_000_000


@pytest.mark.asyncio
async def test_credit_fee_without_referrer(manager):
    await manager.get_or_create_account("trader")

    assert await manager.credit_fee("trader", Decimal("0.02"), "trade") is None
    assert await manager.credit_fee("stranger", Decimal("0.02"), "trade") is None


@pytest.mark.asyncio
async def test_credit_fee_with_garbage_fee(manager):
    code = (await manager.get_or_create_account("referrer")).referral_code
    await manager.apply_referral_code("trader", code)

    result = await manager.credit_fee("trader", "garbage", "trade")

    assert result is not None
    assert isinstance(result.error, InvalidAmountError)


@pytest.mark.asyncio
async def test_sub_lamport_accrual_is_recorded_as_zero(manager):
    await manager.get_or_create_account("referrer")

    result = await manager.add_referral_earnings("referrer", "0.0000000004", "trader", "trade")

    assert result.success is True
    assert result.amount == Decimal("0")
    assert (await manager.get_stats("referrer")).total_earnings == Decimal("0")
    ledger = await manager.get_earnings("referrer")
    assert [e.referrer_share_lamports for e in ledger] == [0]


@pytest.mark.asyncio
async def test_total_equals_sum_of_rounded_increments(manager):
    await manager.get_or_create_account("referrer")
    amounts = [0.1] * 10 + [1 / 3, 2 / 3, 0.0000000015, 0.30000000000000004]

    for amount in amounts:
        assert (await manager.add_referral_earnings("referrer", amount, "trader", "trade")).success

    expected_lamports = sum(sol_to_lamports(a) for a in amounts)
    stats = await manager.get_stats("referrer")
    assert stats.total_earnings == lamports_to_sol(expected_lamports)
    assert stats.pending_earnings == stats.total_earnings
    ledger = await manager.get_earnings("referrer")
    assert sum(e.referrer_share_lamports for e in ledger) == expected_lamports
