"""
Ledger Module

Service layer between the Data Store and the pure ledger engine
(splitter, settlement, reconciler). Every caller that needs balances,
outstanding transfers or a member removal goes through here; nothing
else re-implements the math.

Request flow:
    1. Fetch members, active expenses and settlement records from the store
    2. Compute balances (splitter.py)
    3. Plan outstanding settlements (settlement.py)
    4. For writes, validate against freshly computed state before saving

Functions:
    get_group_balances: Balances of the current members.
    get_outstanding_settlements: Balances plus outstanding instructions.
    settle_up: Record a full or partial payment between two members.
    remove_member: Remove a member and rewrite their expenses atomically.
    describe_group: Outstanding state with display names and breakdowns.
    add_admin / remove_admin: Grant or revoke admin rights as an admin.
    get_user_overview: What a user owes and is owed across their groups.
"""

import logging
from typing import Optional

from group_ledger.models import STATUS_COMPLETED, STATUS_PENDING, ZERO
from group_ledger.reconciler import ReconciliationResult, reconcile_after_removal
from group_ledger.settlement import (
    SettlementValidationError,
    outstanding_between,
    plan_settlements,
    summarize_for_user,
    validate_settlement_amount,
)
from group_ledger.splitter import compute_balances, find_unknown_members
from group_ledger.utils import (
    describe_instructions,
    explain_all_members,
    get_timestamp,
    validate_non_empty_string,
)

logger = logging.getLogger(__name__)


def _warn_unknown_members(group_id: str, expenses: list, members: list) -> None:
    for expense_id, user_ids in find_unknown_members(expenses, members).items():
        logger.warning(
            "Expense %s in group %s references users outside the group %s; "
            "their contributions are left out of the balances",
            expense_id, group_id, user_ids
        )


def _require_admin(group, acting_user_id: str) -> None:
    validate_non_empty_string(acting_user_id, "acting_user_id")
    if acting_user_id not in group.admin_ids:
        raise PermissionError("Only group admins can manage members and admins")


def _load(store, group_id: str):
    validate_non_empty_string(group_id, "group_id")
    members = store.get_group_members(group_id)
    expenses = store.get_active_expenses(group_id)
    _warn_unknown_members(group_id, expenses, members)
    return members, expenses


def get_group_balances(store, group_id: str) -> dict:
    """
    Balances of the current members of a group.

    Returns:
        dict: user_id -> {paid, owed, net} as Decimals.
    """
    members, expenses = _load(store, group_id)
    return compute_balances(expenses, members)


def get_outstanding_settlements(store, group_id: str) -> dict:
    """
    Compute what is still owed in a group.

    Returns:
        dict: Containing:
            - balances: output of compute_balances()
            - instructions: outstanding transfers from plan_settlements()
            - settled: completed SettlementRecords
            - pending: pending SettlementRecords (not yet proof of payment)
            - expenses: the active expenses used
    """
    members, expenses = _load(store, group_id)
    balances = compute_balances(expenses, members)

    records = store.get_group_settlements(group_id)
    settled = [r for r in records if r.is_completed]
    pending = [r for r in records if r.status == STATUS_PENDING]

    instructions = plan_settlements(balances, settled)
    return {
        "balances": balances,
        "instructions": instructions,
        "settled": settled,
        "pending": pending,
        "expenses": expenses
    }


def settle_up(
    store,
    group_id: str,
    from_user_id: str,
    to_user_id: str,
    amount=None,
    settled_by: Optional[str] = None
):
    """
    Record a payment from a debtor to a creditor.

    The outstanding amount is recomputed from the stored expenses and
    settlements before anything is written, so a payment can never push
    the pair's outstanding amount below zero.

    Args:
        store: Data Store.
        group_id: The ID of the group.
        from_user_id: Debtor paying.
        to_user_id: Creditor receiving.
        amount: Amount paid; None settles the full outstanding amount.
        settled_by: User recording the payment.

    Returns:
        SettlementRecord: The completed record.

    Raises:
        SettlementValidationError: If the amount is invalid, exceeds what is
            outstanding, or nothing is outstanding.
        ValueError: If the user IDs are invalid.
    """
    validate_non_empty_string(from_user_id, "from_user_id")
    validate_non_empty_string(to_user_id, "to_user_id")
    if from_user_id == to_user_id:
        raise ValueError("cannot settle with yourself")

    state = get_outstanding_settlements(store, group_id)
    outstanding = outstanding_between(state["instructions"], from_user_id, to_user_id)

    if amount is None:
        if outstanding <= ZERO:
            raise SettlementValidationError(
                f"no outstanding balance from {from_user_id} to {to_user_id}"
            )
        amount = outstanding

    value = validate_settlement_amount(amount, outstanding)
    return store.record_settlement(
        group_id, from_user_id, to_user_id, value,
        status=STATUS_COMPLETED,
        settled_by=settled_by
    )


def remove_member(
    store,
    group_id: str,
    member_id: str,
    acting_user_id: str
) -> ReconciliationResult:
    """
    Remove a member from a group and rewrite the expenses they shared.

    The membership update and the expense rewrites are queued on one
    write batch and committed together. If the commit fails, neither is
    applied.

    Args:
        store: Data Store.
        group_id: The ID of the group.
        member_id: Member to remove.
        acting_user_id: User performing the removal; must be an admin.

    Returns:
        ReconciliationResult: Which expenses were rewritten or skipped.

    Raises:
        PermissionError: If acting_user_id is not an admin.
        ValueError: If acting_user_id is missing, or member_id is not in the
            group or is its last admin.
    """
    validate_non_empty_string(member_id, "member_id")
    group = store.get_group(group_id)
    _require_admin(group, acting_user_id)

    if member_id not in group.members:
        raise ValueError(f"User {member_id} is not a member of group {group_id}")
    if member_id in group.admin_ids and len(group.admin_ids) <= 1:
        raise ValueError("Cannot remove the last admin from the group")

    remaining = [m for m in group.members if m != member_id]
    expenses = store.get_active_expenses(group_id)
    result = reconcile_after_removal(
        expenses, member_id, remaining, recalculated_at=get_timestamp()
    )

    for expense_id in result.skipped:
        logger.warning(
            "Expense %s has no participants left after removing %s; left unchanged",
            expense_id, member_id
        )

    batch = store.batch()
    store.remove_group_member(group_id, member_id, batch=batch)
    store.write_reconciled_expenses(result.changed, batch=batch)
    batch.commit()

    logger.info("Removed %s from group %s, rewrote %d expenses",
                member_id, group_id, len(result.changed))
    return result


def describe_group(store, group_id: str) -> dict:
    """
    Outstanding state of a group ready for display.

    Adds member names to the instructions and a per-member breakdown of
    the expenses behind each balance.
    """
    state = get_outstanding_settlements(store, group_id)

    user_ids = list(state["balances"])
    for instruction in state["instructions"]:
        user_ids.extend([instruction["from_user_id"], instruction["to_user_id"]])
    users = store.get_users(user_ids)

    state["instructions"] = describe_instructions(state["instructions"], users)
    state["explanations"] = explain_all_members(state["expenses"], state["balances"])
    return state


def add_admin(store, group_id: str, user_id: str, acting_user_id: str) -> list[str]:
    """
    Grant admin rights to a member; only an admin may do this.

    Returns:
        list[str]: The group's admin IDs afterwards.
    """
    _require_admin(store.get_group(group_id), acting_user_id)
    return store.add_group_admin(group_id, user_id)


def remove_admin(store, group_id: str, user_id: str, acting_user_id: str) -> list[str]:
    """Revoke admin rights from a member; the last admin is kept."""
    _require_admin(store.get_group(group_id), acting_user_id)
    return store.remove_group_admin(group_id, user_id)


def get_user_overview(store, user_id: str) -> dict:
    """
    What a user owes and is owed across all of their groups.

    Each group's figures come from its outstanding settlements, so
    completed payments are already taken into account.

    Returns:
        dict: Containing:
            - user_id: string
            - total_you_owe, total_you_are_owed, net_balance: Decimals
            - groups: one entry per group with group_id, group_name,
              you_owe, you_are_owed, net_balance and total_expenses
    """
    validate_non_empty_string(user_id, "user_id")

    details = []
    total_you_owe = ZERO
    total_you_are_owed = ZERO
    for group in store.get_user_groups(user_id):
        state = get_outstanding_settlements(store, group.group_id)
        summary = summarize_for_user(state["instructions"], user_id)

        you_owe = summary["total_to_pay"]
        you_are_owed = summary["total_to_receive"]
        total_you_owe += you_owe
        total_you_are_owed += you_are_owed
        details.append({
            "group_id": group.group_id,
            "group_name": group.name,
            "you_owe": you_owe,
            "you_are_owed": you_are_owed,
            "net_balance": you_are_owed - you_owe,
            "total_expenses": group.total_expenses
        })

    return {
        "user_id": user_id,
        "total_you_owe": total_you_owe,
        "total_you_are_owed": total_you_are_owed,
        "net_balance": total_you_are_owed - total_you_owe,
        "groups": details
    }
