"""
Splitter Module

This module handles the expense splitting and balance logic for the group
ledger.

Features:
    - Build participant shares for equal, percentage, shares and exact splits
    - Per-member balance calculation restricted to current membership
    - Detection of contributions from members no longer in the group
    - Decimal-safe arithmetic

Data Model:
    Input - expenses (list of Expense):
        - paid_by: string
        - amount: Decimal
        - participants: list of ExpenseShare (user_id, amount)
        - is_active: bool

    Input - members: list of user_ids (current group membership)

    Output - balances (dict keyed by user_id, in members order):
        - paid: Decimal (sum of expenses paid by this member)
        - owed: Decimal (sum of shares owed by this member)
        - net: Decimal (paid - owed)

Functions:
    compute_balances: Calculate per-member balances.
    find_unknown_members: List contributions the calculator would drop.
    build_participant_shares: Split an amount according to a split type.
    check_expense_total: Difference between participant shares and the total.
"""

import logging
from decimal import Decimal

from group_ledger.models import (
    Expense,
    ExpenseShare,
    SPLIT_EQUAL,
    SPLIT_PERCENTAGE,
    SPLIT_SHARES,
    VALID_SPLIT_TYPES,
    ZERO,
    normalize_split_type,
    to_decimal,
)

logger = logging.getLogger(__name__)

# Tolerance used for every "sums to" comparison, one cent
TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")


def _require_list(value, name: str) -> None:
    if value is None:
        raise TypeError(f"{name} must be provided, got None")


def compute_balances(expenses: list[Expense], members: list[str]) -> dict:
    """
    Calculate per-member balances from expenses.

    For each active expense:
        1. The payer's paid grows by the expense amount
        2. Each participant's owed grows by their share amount

    Only current members are tracked. A payer or participant that is not
    in members is dropped without raising; this is what happens when a
    member was removed but their expenses were not rewritten.

    Args:
        expenses: Expenses of the group, in stored order.
        members: Current member IDs of the group.

    Returns:
        dict: Dictionary keyed by user_id containing paid, owed and net
        Decimals. Positive net means the member is owed money.

    Raises:
        TypeError: If expenses or members is None.
    """
    _require_list(expenses, "expenses")
    _require_list(members, "members")

    balances = {
        member_id: {"paid": ZERO, "owed": ZERO, "net": ZERO}
        for member_id in members
    }

    for expense in expenses:
        if not expense.is_active:
            continue

        if expense.paid_by in balances:
            balances[expense.paid_by]["paid"] += expense.amount

        for share in expense.participants:
            if share.user_id in balances:
                balances[share.user_id]["owed"] += share.amount

    for balance in balances.values():
        balance["net"] = balance["paid"] - balance["owed"]

    logger.debug("Computed balances for %d members from %d expenses",
                 len(balances), len(expenses))
    return balances


def find_unknown_members(expenses: list[Expense], members: list[str]) -> dict:
    """
    Find payers and participants of active expenses who are not members.

    Returns:
        dict: expense_id -> sorted list of unknown user_ids. Expenses with
        no unknown IDs are left out.
    """
    _require_list(expenses, "expenses")
    _require_list(members, "members")

    member_set = set(members)
    unknown = {}
    for expense in expenses:
        if not expense.is_active:
            continue
        ids = set()
        if expense.paid_by not in member_set:
            ids.add(expense.paid_by)
        for share in expense.participants:
            if share.user_id not in member_set:
                ids.add(share.user_id)
        if ids:
            unknown[expense.expense_id] = sorted(ids)
    return unknown


def _require_finite(values: list, label: str) -> None:
    if any(not value.is_finite() for value in values):
        raise ValueError(f"{label} must be finite numbers")


def _entry_value(entry, key: str):
    if isinstance(entry, ExpenseShare):
        return getattr(entry, key)
    if isinstance(entry, dict):
        return entry.get(key)
    # Bare user id
    if key == "user_id":
        return entry
    return None


def build_participant_shares(amount, split_type: str, entries: list) -> list[ExpenseShare]:
    """
    Split an expense amount among participants.

    Args:
        amount: Total expense amount (must be > 0).
        split_type: One of equal, percentage, shares, exact.
        entries: One entry per participant. Each entry is either a user_id
            string or a dict/ExpenseShare with user_id and, depending on
            the split type, percentage, shares or amount.

    Returns:
        list[ExpenseShare]: Shares in the same order as entries.

    Raises:
        ValueError: If the amount, entries or split type are invalid, or
            percentages/exact amounts do not add up.
    """
    amount = to_decimal(amount, default=None)
    if amount is None or not amount.is_finite() or amount <= ZERO:
        raise ValueError(f"amount must be a positive number, got: {amount}")

    split_type = normalize_split_type(split_type)
    if split_type not in VALID_SPLIT_TYPES:
        raise ValueError(f"split_type must be one of {sorted(VALID_SPLIT_TYPES)}, got: {split_type}")

    if not entries:
        raise ValueError("participants must be a non-empty list")

    user_ids = [_entry_value(entry, "user_id") for entry in entries]
    if any(not user_id for user_id in user_ids):
        raise ValueError("every participant needs a user_id")
    if len(set(user_ids)) != len(user_ids):
        raise ValueError("participants must not contain duplicates")

    if split_type == SPLIT_EQUAL:
        per_person = amount / Decimal(len(user_ids))
        return [ExpenseShare(user_id, per_person) for user_id in user_ids]

    if split_type == SPLIT_PERCENTAGE:
        percentages = [to_decimal(_entry_value(entry, "percentage")) for entry in entries]
        _require_finite(percentages, "percentages")
        if any(p < ZERO for p in percentages):
            raise ValueError("percentages cannot be negative")
        total_percentage = sum(percentages, ZERO)
        if abs(total_percentage - HUNDRED) > TOLERANCE:
            raise ValueError(f"percentages must add up to 100, got: {total_percentage}")
        return [
            ExpenseShare(user_id, amount * pct / HUNDRED, percentage=pct)
            for user_id, pct in zip(user_ids, percentages)
        ]

    if split_type == SPLIT_SHARES:
        shares = []
        for entry in entries:
            value = _entry_value(entry, "shares")
            shares.append(Decimal("1") if value is None else to_decimal(value))
        _require_finite(shares, "shares")
        if any(s <= ZERO for s in shares):
            raise ValueError("shares must be positive")
        total_shares = sum(shares, ZERO)
        return [
            ExpenseShare(user_id, amount * count / total_shares, shares=count)
            for user_id, count in zip(user_ids, shares)
        ]

    # SPLIT_EXACT
    amounts = [to_decimal(_entry_value(entry, "amount")) for entry in entries]
    _require_finite(amounts, "participant amounts")
    if any(a < ZERO for a in amounts):
        raise ValueError("participant amounts cannot be negative")
    total_amounts = sum(amounts, ZERO)
    if abs(total_amounts - amount) > TOLERANCE:
        raise ValueError(
            f"participant amounts must add up to {amount}, got: {total_amounts}"
        )
    return [ExpenseShare(user_id, value) for user_id, value in zip(user_ids, amounts)]


def check_expense_total(expense: Expense) -> Decimal:
    """
    Return amount minus the sum of participant shares.

    Zero (within a cent) for a consistent expense. Positive for an exact
    split that absorbed a removed member's share.
    """
    return expense.amount - expense.participants_total()

