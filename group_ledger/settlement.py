"""
Settlement Module

This module handles the settlement calculations for the group ledger.

Features:
    - Convert net balances into settlement instructions
    - Deduct transfers that were already recorded as completed
    - Validate custom (partial) settlement amounts
    - Handle rounding safely

Data Model:
    Input - balances (dict keyed by user_id, from compute_balances):
        - paid: Decimal
        - owed: Decimal
        - net: Decimal (positive = owed money, negative = owes money)

    Input - completed_settlements: list of SettlementRecord

    Output - list of settlement instructions:
        - from_user_id: string (debtor who pays)
        - to_user_id: string (creditor who receives)
        - amount: Decimal (rounded to 2 decimal places)

Functions:
    plan_settlements: Convert balances into outstanding transfers.
    outstanding_between: Outstanding amount for one ordered pair.
    validate_settlement_amount: Check a custom settlement amount.
    apply_settlements: Adjust net balances by a list of transfers.
    summarize_for_user: Split instructions into what a user pays/receives.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from group_ledger.models import SettlementRecord, ZERO, to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Anything that rounds to 0.00 is treated as settled
HALF_CENT = Decimal("0.005")


class SettlementValidationError(ValueError):
    """Raised when a custom settlement amount cannot be recorded."""


def _round_decimal(value: Decimal) -> Decimal:
    """Round a Decimal to 2 decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _net_of(entry) -> Decimal:
    """Net balance of one balances entry; malformed entries count as zero."""
    if isinstance(entry, dict):
        return to_decimal(entry.get("net"))
    if isinstance(entry, (int, float, Decimal, str)) and not isinstance(entry, bool):
        return to_decimal(entry)
    return ZERO


def _as_record(settlement) -> SettlementRecord:
    if isinstance(settlement, SettlementRecord):
        return settlement
    return SettlementRecord.from_dict(settlement)


def _settled_amounts(completed_settlements: list, known_ids) -> dict:
    """
    Sum completed settlement amounts per ordered (from, to) pair.

    Pending, cancelled or inactive records are skipped, as are records
    naming users that have no balance entry.
    """
    settled = {}
    for settlement in completed_settlements:
        record = _as_record(settlement)
        if not record.is_completed or not record.is_active:
            continue
        if record.from_user_id not in known_ids or record.to_user_id not in known_ids:
            continue
        key = (record.from_user_id, record.to_user_id)
        settled[key] = settled.get(key, ZERO) + record.amount
    return settled


def plan_settlements(balances: dict, completed_settlements: list = None) -> list[dict]:
    """
    Convert net balances into outstanding settlement instructions.

    Uses a single greedy pass:
        1. Separate members into debtors (net < 0) and creditors (net > 0),
           keeping the order of the balances dict
        2. For each debtor, walk the creditors in order and transfer
           min(remaining debt, remaining credit)
        3. Subtract what the debtor already paid that creditor in completed
           settlements; emit the rest if anything is left

    The pass is deterministic but does not always find the smallest
    possible number of transfers.

    Args:
        balances: Dictionary keyed by user_id with a net entry.
        completed_settlements: Recorded SettlementRecord objects (or dicts).
            Only completed ones reduce the outstanding amounts.

    Returns:
        list[dict]: Instructions in discovery order, each containing
        from_user_id, to_user_id and amount.

    Raises:
        TypeError: If balances is None.
    """
    if balances is None:
        raise TypeError("balances must be provided, got None")
    completed_settlements = completed_settlements or []

    debtors = []   # [user_id, remaining debt] with debt stored as positive
    creditors = [] # [user_id, remaining credit]

    for user_id, entry in balances.items():
        net = _net_of(entry)
        if net <= -HALF_CENT:
            debtors.append([user_id, -net])
        elif net >= HALF_CENT:
            creditors.append([user_id, net])

    settled = _settled_amounts(completed_settlements, set(balances))

    instructions = []
    for debtor in debtors:
        for creditor in creditors:
            if debtor[1] < HALF_CENT:
                break
            if creditor[1] < HALF_CENT:
                continue

            transfer = min(debtor[1], creditor[1])
            debtor[1] -= transfer
            creditor[1] -= transfer

            already_paid = settled.get((debtor[0], creditor[0]), ZERO)
            outstanding = _round_decimal(transfer - already_paid)
            if outstanding <= ZERO:
                continue

            instructions.append({
                "from_user_id": debtor[0],
                "to_user_id": creditor[0],
                "amount": outstanding
            })

    logger.debug("Planned %d settlement instructions", len(instructions))
    return instructions


def outstanding_between(instructions: list[dict], from_user_id: str, to_user_id: str) -> Decimal:
    """Outstanding amount from_user_id still owes to_user_id."""
    total = ZERO
    for instruction in instructions:
        if instruction["from_user_id"] == from_user_id and instruction["to_user_id"] == to_user_id:
            total += instruction["amount"]
    return total


def validate_settlement_amount(amount, outstanding) -> Decimal:
    """
    Validate a custom settlement amount against what is outstanding.

    Args:
        amount: Amount the debtor wants to pay.
        outstanding: Outstanding amount for the pair.

    Returns:
        Decimal: The amount, rounded to cents.

    Raises:
        SettlementValidationError: "invalid amount" when the amount is not a
            positive number, "amount exceeds outstanding balance" when it is
            more than what is owed.
    """
    if isinstance(amount, bool):
        raise SettlementValidationError("invalid amount")
    value = to_decimal(amount, default=None)
    if value is None or not value.is_finite():
        raise SettlementValidationError("invalid amount")

    value = _round_decimal(value)
    if value <= ZERO:
        raise SettlementValidationError("invalid amount")

    if value > _round_decimal(to_decimal(outstanding)):
        raise SettlementValidationError("amount exceeds outstanding balance")

    return value


def apply_settlements(balances: dict, settlements: list) -> dict:
    """
    Adjust net balances by a list of transfers.

    Paying moves the payer's net up and the receiver's net down. Accepts
    planner instructions or SettlementRecord objects. Unknown users are
    ignored.

    Returns:
        dict: user_id -> adjusted net (Decimal).
    """
    adjusted = {user_id: _net_of(entry) for user_id, entry in balances.items()}
    for settlement in settlements:
        if isinstance(settlement, SettlementRecord):
            from_id, to_id, amount = settlement.from_user_id, settlement.to_user_id, settlement.amount
        else:
            from_id = settlement["from_user_id"]
            to_id = settlement["to_user_id"]
            amount = to_decimal(settlement["amount"])
        if from_id in adjusted:
            adjusted[from_id] += amount
        if to_id in adjusted:
            adjusted[to_id] -= amount
    return adjusted


def summarize_for_user(instructions: list[dict], user_id: str) -> dict:
    """
    Split instructions into what one user has to pay and receive.

    Both lists are sorted by amount, largest first, for display.
    """
    to_pay = [i for i in instructions if i["from_user_id"] == user_id]
    to_receive = [i for i in instructions if i["to_user_id"] == user_id]

    to_pay.sort(key=lambda i: i["amount"], reverse=True)
    to_receive.sort(key=lambda i: i["amount"], reverse=True)

    return {
        "to_pay": to_pay,
        "to_receive": to_receive,
        "total_to_pay": sum((i["amount"] for i in to_pay), ZERO),
        "total_to_receive": sum((i["amount"] for i in to_receive), ZERO)
    }
