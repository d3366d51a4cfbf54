"""
Reconciler Module

Rewrites expense participant shares after a member leaves a group.

Redistribution depends on the expense's split type:
    equal       - amount is split evenly among the remaining participants
    percentage  - remaining percentages are rescaled to add up to 100;
                  falls back to equal when they add up to 0
    shares      - amount is split by the remaining share counts (default 1)
    exact       - amounts are kept when they fit in the total, otherwise
                  scaled down proportionally

The exact case keeps the removed member's share unassigned, so the
participants can end up owing less than the expense amount.

No rounding happens here; amounts stay full-precision Decimals.
"""

import logging
from decimal import Decimal
from typing import Optional

from group_ledger.models import (
    Expense,
    SPLIT_EQUAL,
    SPLIT_PERCENTAGE,
    SPLIT_SHARES,
    ZERO,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ONE = Decimal("1")


class ReconciliationResult:
    """
    Outcome of reconcile_after_removal.

    Attributes:
        removed_member_id (str): Member that left the group.
        changed (list[Expense]): Rewritten copies of the affected expenses.
        skipped (list[str]): IDs of expenses left untouched because the
            member was their only participant.
    """

    def __init__(self, removed_member_id: str, changed: list, skipped: list):
        self.removed_member_id = removed_member_id
        self.changed = changed
        self.skipped = skipped

    def to_dict(self) -> dict:
        return {
            "removed_member_id": self.removed_member_id,
            "changed_expense_ids": [e.expense_id for e in self.changed],
            "skipped_expense_ids": list(self.skipped)
        }

    def __repr__(self) -> str:
        return (
            f"ReconciliationResult(removed='{self.removed_member_id}', "
            f"changed={len(self.changed)}, skipped={len(self.skipped)})"
        )


def _split_equal(expense: Expense, remaining: list, with_percentage: bool = False) -> list:
    count = Decimal(len(remaining))
    per_person = expense.amount / count
    if with_percentage:
        percentage = HUNDRED / count
        return [share.copy(amount=per_person, percentage=percentage) for share in remaining]
    return [share.copy(amount=per_person) for share in remaining]


def _split_percentage(expense: Expense, remaining: list) -> list:
    total_percentage = sum((share.percentage or ZERO for share in remaining), ZERO)
    if total_percentage <= ZERO:
        return _split_equal(expense, remaining, with_percentage=True)

    scale_factor = HUNDRED / total_percentage
    rewritten = []
    for share in remaining:
        percentage = (share.percentage or ZERO) * scale_factor
        rewritten.append(share.copy(
            amount=expense.amount * percentage / HUNDRED,
            percentage=percentage
        ))
    return rewritten


def _split_shares(expense: Expense, remaining: list) -> list:
    counts = [share.shares or ONE for share in remaining]
    total_shares = sum(counts, ZERO)
    return [
        share.copy(amount=expense.amount * count / total_shares)
        for share, count in zip(remaining, counts)
    ]


def _split_exact(expense: Expense, remaining: list) -> list:
    total_amounts = sum((share.amount for share in remaining), ZERO)
    if total_amounts <= expense.amount:
        return [share.copy() for share in remaining]

    scale_factor = expense.amount / total_amounts
    return [share.copy(amount=share.amount * scale_factor) for share in remaining]


_STRATEGIES = {
    SPLIT_EQUAL: _split_equal,
    SPLIT_PERCENTAGE: _split_percentage,
    SPLIT_SHARES: _split_shares,
}


def redistribute(expense: Expense, removed_member_id: str) -> Optional[list]:
    """
    New participant list for one expense without removed_member_id.

    Returns None when nobody would be left on the expense.
    """
    remaining = [share for share in expense.participants if share.user_id != removed_member_id]
    if not remaining:
        return None

    strategy = _STRATEGIES.get(expense.split_type, _split_exact)
    return strategy(expense, remaining)


def reconcile_after_removal(
    expenses: list[Expense],
    removed_member_id: str,
    remaining_member_ids: list[str],
    recalculated_at: Optional[str] = None
) -> ReconciliationResult:
    """
    Rewrite the expenses a removed member took part in.

    Only expenses listing removed_member_id among their participants are
    rewritten. The input expenses are not modified; changed ones are
    returned as copies carrying the new participants and an audit reason.

    Args:
        expenses: Active expenses of the group.
        removed_member_id: Member leaving the group.
        remaining_member_ids: Membership after the removal. When empty,
            nothing is rewritten.
        recalculated_at: Timestamp stamped on changed expenses.

    Returns:
        ReconciliationResult: Changed expenses and skipped expense IDs.

    Raises:
        TypeError: If expenses or remaining_member_ids is None.
    """
    if expenses is None:
        raise TypeError("expenses must be provided, got None")
    if remaining_member_ids is None:
        raise TypeError("remaining_member_ids must be provided, got None")

    result = ReconciliationResult(removed_member_id, changed=[], skipped=[])
    if not remaining_member_ids:
        return result

    reason = f"Member removed: {removed_member_id}"

    for expense in expenses:
        if removed_member_id not in expense.participant_ids:
            continue

        participants = redistribute(expense, removed_member_id)
        if participants is None:
            logger.debug("Expense %s has no participants left, skipping", expense.expense_id)
            result.skipped.append(expense.expense_id)
            continue

        result.changed.append(expense.copy(
            participants=participants,
            updated_at=recalculated_at or expense.updated_at,
            recalculated_at=recalculated_at,
            recalculated_reason=reason
        ))

    return result
