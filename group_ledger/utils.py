"""
Utilities Module

This module provides utility functions and helpers for the group ledger.

Features:
    - Transparency of how a member's balance was built up
    - Display names for settlement instructions
    - Currency formatting and JSON-friendly money values
    - Shared validation and timestamp helpers

Functions:
    explain_member_balance: Per-expense breakdown for one member.
    explain_all_members: Breakdown for every member.
    describe_instructions: Attach display names to settlement instructions.
    format_currency: Format amount with currency symbol.
    to_money: Round a Decimal to cents and convert to float for JSON.
    get_timestamp: Current UTC timestamp in ISO format.
    validate_non_empty_string: Reject empty identifiers.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from group_ledger.config.settings import Config
from group_ledger.models import ZERO


def to_money(value) -> float:
    """
    Round a Decimal to 2 decimal places and convert to float.

    Args:
        value: Decimal (or number) to round.

    Returns:
        float: Rounded value as float.
    """
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def get_timestamp() -> str:
    """
    Get current UTC timestamp in ISO format.

    Returns:
        str: ISO formatted timestamp.
    """
    return datetime.now(timezone.utc).isoformat()


def validate_non_empty_string(value: str, field_name: str) -> bool:
    """
    Validate that a string is non-empty.

    Args:
        value: String to validate.
        field_name: Name of the field for error messages.

    Returns:
        bool: True if valid.

    Raises:
        ValueError: If string is empty or not a string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return True


def format_currency(amount, symbol: str = None) -> str:
    """
    Format a monetary amount with the appropriate currency symbol.

    Args:
        amount: The amount to format.
        symbol: Currency symbol (default: Config.CURRENCY_SYMBOL).

    Returns:
        str: Formatted string like "₹1,234.56".
    """
    if symbol is None:
        symbol = Config.CURRENCY_SYMBOL
    return f"{symbol}{to_money(amount):,.2f}"


def balances_to_json(balances: dict) -> dict:
    """Convert compute_balances() output to floats rounded to cents."""
    return {
        user_id: {key: to_money(value) for key, value in balance.items()}
        for user_id, balance in balances.items()
    }


def instructions_to_json(instructions: list[dict]) -> list[dict]:
    """Convert planner instructions to floats for JSON."""
    return [
        {**instruction, "amount": to_money(instruction["amount"])}
        for instruction in instructions
    ]


def describe_instructions(instructions: list[dict], users: dict) -> list[dict]:
    """
    Attach display names to settlement instructions.

    Args:
        instructions: Output of plan_settlements().
        users: user_id -> Member lookup. Unknown IDs fall back to the ID.

    Returns:
        list[dict]: Instructions with from_name, to_name and a description
        such as "Bob pays ₹30.00 to Alice".
    """
    described = []
    for instruction in instructions:
        from_member = users.get(instruction["from_user_id"])
        to_member = users.get(instruction["to_user_id"])
        from_name = from_member.name if from_member else instruction["from_user_id"]
        to_name = to_member.name if to_member else instruction["to_user_id"]
        described.append({
            **instruction,
            "from_name": from_name,
            "to_name": to_name,
            "description": f"{from_name} pays {format_currency(instruction['amount'])} to {to_name}"
        })
    return described


def explain_member_balance(user_id: str, expenses: list, balances: dict) -> dict:
    """
    Generate a breakdown of how a member's balance was calculated.

    For each active expense the member paid for or took part in:
        - Shows expense details (id, description, split type, total amount)
        - Shows what the member paid and what share they owe

    Args:
        user_id: ID of the member to explain.
        expenses: List of Expense objects.
        balances: Output from compute_balances().

    Returns:
        dict: Explanation containing:
            - user_id: string
            - expense_contributions: list of dicts with expense breakdown
            - paid, owed, net: floats (from balances)
    """
    balance_info = balances.get(user_id, {"paid": ZERO, "owed": ZERO, "net": ZERO})

    contributions = []
    for expense in expenses:
        if not expense.is_active:
            continue

        share = ZERO
        took_part = False
        for participant in expense.participants:
            if participant.user_id == user_id:
                share += participant.amount
                took_part = True

        paid = expense.amount if expense.paid_by == user_id else ZERO
        if not took_part and paid == ZERO:
            continue

        contributions.append({
            "expense_id": expense.expense_id,
            "description": expense.description,
            "split_type": expense.split_type,
            "total_expense_amount": to_money(expense.amount),
            "num_participants": len(expense.participants),
            "paid": to_money(paid),
            "member_share": to_money(share)
        })

    return {
        "user_id": user_id,
        "expense_contributions": contributions,
        "paid": to_money(balance_info["paid"]),
        "owed": to_money(balance_info["owed"]),
        "net": to_money(balance_info["net"])
    }


def explain_all_members(expenses: list, balances: dict) -> list[dict]:
    """
    Generate explanations for every member in balances.

    Notes:
        - Includes members with no expenses
        - Ordered by user_id
    """
    explanations = [
        explain_member_balance(user_id, expenses, balances)
        for user_id in balances
    ]
    explanations.sort(key=lambda x: x["user_id"])
    return explanations
