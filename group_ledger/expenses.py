"""
Expenses Module

This module handles all expense-related operations for the group ledger.

Features:
    - Add/edit/delete expenses
    - Equal, percentage, shares and exact splits
    - Track who paid and who owes what
    - Batched rewrite of participant shares after a member leaves

Data Model:
    Expense stored at: expenses/{expense_id}
    Fields:
        - expense_id: string (Firestore auto ID)
        - group_id: string
        - amount: float (must be > 0)
        - paid_by: string (user_id who paid)
        - split_type: string (equal, percentage, shares, exact)
        - participants: list of {user_id, amount, percentage?, shares?}
        - is_active: bool (False once deleted)
        - description, category, currency: strings
        - created_by: string or None
        - created_at, updated_at: ISO timestamps
        - recalculated_at, recalculated_reason: set when shares are rewritten

Functions:
    add_expense: Add a new expense to a group.
    get_expense: Load one expense.
    get_active_expenses: Get all active expenses for a group.
    update_expense: Edit amount, split or labels of an expense.
    delete_expense: Soft delete an expense.
    write_reconciled_expenses: Store rewritten participant shares.
"""

import logging
import math
from typing import Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from group_ledger.config.firebase_config import get_db
from group_ledger.config.settings import Config
from group_ledger.groups import get_group, update_group_total_expenses
from group_ledger.models import (
    Expense,
    SPLIT_EXACT,
    VALID_SPLIT_TYPES,
    ZERO,
    normalize_split_type,
    to_decimal,
)
from group_ledger.splitter import build_participant_shares
from group_ledger.utils import get_timestamp, validate_non_empty_string

logger = logging.getLogger(__name__)


class ExpenseNotFoundError(ValueError):
    """Raised when an expense document does not exist."""


def _require_db():
    db = get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")
    return db


def _validate_split_type(split_type: str) -> str:
    split_type = normalize_split_type(split_type)
    if split_type not in VALID_SPLIT_TYPES:
        raise ValueError(f"split_type must be one of {sorted(VALID_SPLIT_TYPES)}, got: {split_type}")
    return split_type


def _validate_amount(amount) -> None:
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or not math.isfinite(amount)
        or amount <= 0
    ):
        raise ValueError(f"amount must be a positive number, got: {amount}")


def _scale_exact_shares(shares: list, new_amount) -> list:
    """Scale stored exact amounts so they add up to new_amount."""
    total = sum((share.amount for share in shares), ZERO)
    if total <= ZERO:
        raise ValueError("exact split has no participant amounts to reuse, pass participants with amounts")
    factor = to_decimal(new_amount) / total
    return [share.copy(amount=share.amount * factor) for share in shares]


def _participant_ids(entries: list) -> list[str]:
    ids = []
    for entry in entries:
        if isinstance(entry, dict):
            ids.append(entry.get("user_id"))
        else:
            ids.append(entry)
    return ids


def add_expense(
    group_id: str,
    paid_by: str,
    amount: float,
    split_type: str,
    participants: list,
    description: str = "",
    category: Optional[str] = None,
    currency: Optional[str] = None,
    created_by: Optional[str] = None
) -> Expense:
    """
    Add a new expense to a group.

    Args:
        group_id: The ID of the group.
        paid_by: User ID of who paid the expense.
        amount: Amount of the expense (must be > 0).
        split_type: equal, percentage, shares or exact.
        participants: One entry per participant; a user_id, or a dict with
            user_id plus percentage/shares/amount for the split type.
        description: Label shown in the expense list.
        category: Optional category.
        currency: Currency code (default: Config.DEFAULT_CURRENCY).
        created_by: User logging the expense (default: paid_by).

    Returns:
        Expense: The created expense object.

    Raises:
        ValueError: If input validation fails.
        GroupNotFoundError: If the group does not exist.
        RuntimeError: If Firestore is not available.

    Notes:
        - Payer does NOT have to be a participant
        - Payer and participants must be current group members
    """
    validate_non_empty_string(group_id, "group_id")
    validate_non_empty_string(paid_by, "paid_by")
    _validate_amount(amount)
    split_type = _validate_split_type(split_type)
    if not isinstance(participants, list) or len(participants) == 0:
        raise ValueError("participants must be a non-empty list")

    group = get_group(group_id)
    if paid_by not in group.members:
        raise ValueError(f"paid_by '{paid_by}' is not a member of group {group_id}")
    for user_id in _participant_ids(participants):
        if user_id not in group.members:
            raise ValueError(f"participant '{user_id}' is not a member of group {group_id}")

    shares = build_participant_shares(amount, split_type, participants)

    db = _require_db()
    doc_ref = db.collection("expenses").document()
    timestamp = get_timestamp()

    expense = Expense(
        expense_id=doc_ref.id,
        group_id=group_id,
        amount=amount,
        paid_by=paid_by,
        split_type=split_type,
        participants=shares,
        description=description.strip() if description else "",
        category=category,
        currency=currency or Config.DEFAULT_CURRENCY,
        created_by=created_by or paid_by,
        created_at=timestamp,
        updated_at=timestamp
    )
    doc_ref.set(expense.to_dict())

    update_group_total_expenses(group_id)
    logger.info("Added expense %s (%s) to group %s", expense.expense_id, expense.amount, group_id)
    return expense


def get_expense(expense_id: str) -> Expense:
    """
    Load a single expense.

    Raises:
        ExpenseNotFoundError: If the expense does not exist.
        RuntimeError: If Firestore is not available.
    """
    validate_non_empty_string(expense_id, "expense_id")
    db = _require_db()

    doc = db.collection("expenses").document(expense_id).get()
    if not doc.exists:
        raise ExpenseNotFoundError(f"Expense {expense_id} not found")

    data = doc.to_dict()
    data.setdefault("expense_id", doc.id)
    return Expense.from_dict(data)


def get_active_expenses(group_id: str) -> list[Expense]:
    """
    Get all active expenses for a group.

    Expenses are returned oldest first (created_at, then expense_id) so
    that balance sums are always taken in the same order.

    Raises:
        ValueError: If group_id is invalid.
        RuntimeError: If Firestore is not available.
    """
    validate_non_empty_string(group_id, "group_id")
    db = _require_db()

    # Single-field filter only; is_active is checked here to avoid a
    # composite index
    docs = db.collection("expenses") \
             .where(filter=FieldFilter("group_id", "==", group_id)).stream()

    expenses = []
    for doc in docs:
        data = doc.to_dict()
        data.setdefault("expense_id", doc.id)
        expense = Expense.from_dict(data)
        if expense.is_active:
            expenses.append(expense)

    expenses.sort(key=lambda e: (e.created_at or "", e.expense_id or ""))
    return expenses


def update_expense(
    expense_id: str,
    amount: Optional[float] = None,
    split_type: Optional[str] = None,
    participants: Optional[list] = None,
    description: Optional[str] = None,
    category: Optional[str] = None
) -> Expense:
    """
    Edit an expense.

    Changing amount, split_type or participants rebuilds the participant
    shares. When participants are not given, the stored entries are
    reused: equal, percentage and shares splits are recomputed for the new
    amount, and exact amounts are scaled so they add up to it.

    Returns:
        Expense: The updated expense.

    Raises:
        ExpenseNotFoundError: If the expense does not exist.
        ValueError: If the new values are invalid or the expense is deleted.
    """
    expense = get_expense(expense_id)
    if not expense.is_active:
        raise ValueError(f"Expense {expense_id} has been deleted")

    updates = {}
    if description is not None:
        updates["description"] = description.strip()
    if category is not None:
        updates["category"] = category

    if amount is not None or split_type is not None or participants is not None:
        if amount is not None:
            _validate_amount(amount)
        new_amount = amount if amount is not None else expense.amount
        new_split = _validate_split_type(split_type) if split_type is not None else expense.split_type

        if participants is None:
            entries = expense.participants
            if new_split == SPLIT_EXACT:
                entries = _scale_exact_shares(entries, new_amount)
        else:
            if not isinstance(participants, list) or not participants:
                raise ValueError("participants must be a non-empty list")
            group = get_group(expense.group_id)
            for user_id in _participant_ids(participants):
                if user_id not in group.members:
                    raise ValueError(f"participant '{user_id}' is not a member of group {expense.group_id}")
            entries = participants

        shares = build_participant_shares(new_amount, new_split, entries)
        updates["amount"] = float(new_amount)
        updates["split_type"] = new_split
        updates["participants"] = [share.to_dict() for share in shares]

    if not updates:
        return expense

    updates["updated_at"] = get_timestamp()
    db = _require_db()
    db.collection("expenses").document(expense_id).update(updates)

    if "amount" in updates:
        update_group_total_expenses(expense.group_id)

    return get_expense(expense_id)


def delete_expense(expense_id: str) -> Expense:
    """
    Soft delete an expense by clearing is_active.

    The document is kept so the group's history stays auditable.
    """
    expense = get_expense(expense_id)

    db = _require_db()
    db.collection("expenses").document(expense_id).update({
        "is_active": False,
        "updated_at": get_timestamp()
    })
    update_group_total_expenses(expense.group_id)

    logger.info("Deleted expense %s from group %s", expense_id, expense.group_id)
    return expense.copy(is_active=False)


def write_reconciled_expenses(changed_expenses: list[Expense], batch=None) -> int:
    """
    Store rewritten participant shares.

    Only participants and the recalculation audit fields are written.
    When a batch is given the updates are queued on it and the caller
    commits; otherwise a batch is created and committed here.

    Returns:
        int: Number of expenses written.
    """
    db = _require_db()
    own_batch = batch is None
    if own_batch:
        batch = db.batch()

    for expense in changed_expenses:
        doc_ref = db.collection("expenses").document(expense.expense_id)
        batch.update(doc_ref, {
            "participants": [share.to_dict() for share in expense.participants],
            "updated_at": expense.updated_at or get_timestamp(),
            "recalculated_at": expense.recalculated_at,
            "recalculated_reason": expense.recalculated_reason
        })

    if own_batch:
        batch.commit()
    return len(changed_expenses)
