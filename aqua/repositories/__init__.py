"""Репозитории для работы с БД."""

from .referral_repo import (
    code_exists,
    get_account,
    get_account_by_code,
    increment_balances,
    increment_referral_count,
    insert_account,
    update_account_conditional,
)
from .ledger_repo import (
    append_claim_record,
    append_ledger_entry,
    list_claims,
    list_ledger_entries,
    update_claim_status,
)

__all__ = [
    "append_claim_record",
    "append_ledger_entry",
    "code_exists",
    "get_account",
    "get_account_by_code",
    "increment_balances",
    "increment_referral_count",
    "insert_account",
    "list_claims",
    "list_ledger_entries",
    "update_account_conditional",
    "update_claim_status",
]
