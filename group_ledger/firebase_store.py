"""
Firebase Store Module

This module handles settlement records in Firebase Firestore and exposes
the Data Store used by the ledger service.

Features:
    - Record settlements (full or partial payments)
    - Fetch a group's settlement records, optionally only completed ones
    - Payment history between two members
    - Update a payment's status
    - FirestoreDataStore: one object giving the ledger service every read
      and write it needs, including the atomic member removal batch

Firestore Structure:
    settlements/{settlement_id}
        - settlement_id: string (Firestore auto ID)
        - group_id: string
        - from_user_id: string (debtor)
        - to_user_id: string (creditor)
        - amount: float
        - status: string (pending, completed, cancelled)
        - description: string
        - currency: string
        - settled_by: string or None
        - is_active: bool
        - created_at, updated_at: ISO timestamps

Functions:
    record_settlement: Save a new settlement record.
    get_settlement: Load one settlement record.
    get_group_settlements: Active settlement records of a group.
    get_completed_settlements: Completed settlement records of a group.
    get_settlements_between: Payment history between two members.
    update_payment_status: Change the status of a settlement record.
"""

import logging
from typing import Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from group_ledger import expenses, groups, users
from group_ledger.config.firebase_config import get_db
from group_ledger.config.settings import Config
from group_ledger.models import (
    STATUS_COMPLETED,
    VALID_STATUSES,
    SettlementRecord,
    normalize_status,
)
from group_ledger.utils import format_currency, get_timestamp, validate_non_empty_string

logger = logging.getLogger(__name__)


class SettlementNotFoundError(ValueError):
    """Raised when a settlement record does not exist."""


def _require_db():
    db = get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")
    return db


def record_settlement(
    group_id: str,
    from_user_id: str,
    to_user_id: str,
    amount,
    status: str = STATUS_COMPLETED,
    description: Optional[str] = None,
    settled_by: Optional[str] = None,
    currency: Optional[str] = None
) -> SettlementRecord:
    """
    Save a settlement record.

    Args:
        group_id: The ID of the group.
        from_user_id: User who pays (debtor).
        to_user_id: User who receives (creditor).
        amount: Amount paid, must be > 0.
        status: pending or completed (default: completed).
        description: Optional note; a default one is generated.
        settled_by: User who recorded the payment.
        currency: Currency code (default: Config.DEFAULT_CURRENCY).

    Returns:
        SettlementRecord: The stored record.

    Raises:
        ValueError: If the record is invalid.
        RuntimeError: If Firestore is not available.
    """
    validate_non_empty_string(group_id, "group_id")
    validate_non_empty_string(from_user_id, "from_user_id")
    validate_non_empty_string(to_user_id, "to_user_id")

    db = _require_db()
    doc_ref = db.collection("settlements").document()
    timestamp = get_timestamp()

    record = SettlementRecord(
        settlement_id=doc_ref.id,
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        status=status,
        currency=currency or Config.DEFAULT_CURRENCY,
        settled_by=settled_by,
        created_at=timestamp,
        updated_at=timestamp
    )
    record.validate()
    record.description = description or (
        f"{from_user_id} paid {format_currency(record.amount)} to {to_user_id}"
    )

    doc_ref.set(record.to_dict())
    logger.info("Recorded %s settlement %s in group %s: %s -> %s %s",
                record.status, record.settlement_id, group_id,
                from_user_id, to_user_id, record.amount)
    return record


def get_settlement(settlement_id: str) -> SettlementRecord:
    """
    Load a settlement record.

    Raises:
        SettlementNotFoundError: If the record does not exist.
    """
    validate_non_empty_string(settlement_id, "settlement_id")
    db = _require_db()

    doc = db.collection("settlements").document(settlement_id).get()
    if not doc.exists:
        raise SettlementNotFoundError(f"Settlement {settlement_id} not found")

    data = doc.to_dict()
    data.setdefault("settlement_id", doc.id)
    return SettlementRecord.from_dict(data)


def get_group_settlements(group_id: str) -> list[SettlementRecord]:
    """
    Get all active settlement records of a group, oldest first.
    """
    validate_non_empty_string(group_id, "group_id")
    db = _require_db()

    docs = db.collection("settlements") \
             .where(filter=FieldFilter("group_id", "==", group_id)).stream()

    records = []
    for doc in docs:
        data = doc.to_dict()
        data.setdefault("settlement_id", doc.id)
        record = SettlementRecord.from_dict(data)
        if record.is_active:
            records.append(record)

    records.sort(key=lambda r: (r.created_at or "", r.settlement_id or ""))
    return records


def get_completed_settlements(group_id: str) -> list[SettlementRecord]:
    """Completed settlement records of a group; the proof of payment."""
    return [r for r in get_group_settlements(group_id) if r.is_completed]


def get_settlements_between(group_id: str, user_a: str, user_b: str) -> list[SettlementRecord]:
    """
    Active settlement records between two members, in either direction,
    oldest first. Records of every status are included.
    """
    validate_non_empty_string(user_a, "user_a")
    validate_non_empty_string(user_b, "user_b")
    pair = {user_a, user_b}
    return [
        r for r in get_group_settlements(group_id)
        if {r.from_user_id, r.to_user_id} == pair
    ]


def update_payment_status(payment_id: str, status: str) -> SettlementRecord:
    """
    Change the status of a settlement record.

    Raises:
        ValueError: If status is not pending, completed or cancelled.
        SettlementNotFoundError: If the record does not exist.
        RuntimeError: If Firestore is not available.
    """
    status = normalize_status(status)
    if status not in VALID_STATUSES:
        raise ValueError(f"status must be one of {sorted(VALID_STATUSES)}, got: {status}")

    record = get_settlement(payment_id)

    db = _require_db()
    timestamp = get_timestamp()
    db.collection("settlements").document(payment_id).update({
        "status": status,
        "updated_at": timestamp
    })

    logger.info("Settlement %s status %s -> %s", payment_id, record.status, status)
    record.status = status
    record.updated_at = timestamp
    return record


class FirestoreDataStore:
    """
    Data Store backed by Firestore.

    Groups every read and write the ledger service needs. Writes that must
    land together take a batch from batch() and are committed by the caller.
    """

    def batch(self):
        """A new Firestore write batch."""
        return _require_db().batch()

    def get_group(self, group_id: str):
        return groups.get_group(group_id)

    def get_group_members(self, group_id: str) -> list[str]:
        return groups.get_group_members(group_id)

    def get_active_expenses(self, group_id: str):
        return expenses.get_active_expenses(group_id)

    def get_group_settlements(self, group_id: str) -> list[SettlementRecord]:
        return get_group_settlements(group_id)

    def get_completed_settlements(self, group_id: str) -> list[SettlementRecord]:
        return get_completed_settlements(group_id)

    def get_settlements_between(self, group_id: str, user_a: str, user_b: str) -> list[SettlementRecord]:
        return get_settlements_between(group_id, user_a, user_b)

    def get_user_groups(self, user_id: str):
        return groups.get_user_groups(user_id)

    def add_group_admin(self, group_id: str, user_id: str) -> list[str]:
        return groups.add_group_admin(group_id, user_id)

    def remove_group_admin(self, group_id: str, user_id: str) -> list[str]:
        return groups.remove_group_admin(group_id, user_id)

    def update_expense(self, expense_id: str, **changes):
        return expenses.update_expense(expense_id, **changes)

    def write_reconciled_expenses(self, changed_expenses, batch=None) -> int:
        return expenses.write_reconciled_expenses(changed_expenses, batch=batch)

    def remove_group_member(self, group_id: str, member_id: str, batch=None) -> list[str]:
        return groups.remove_group_member(group_id, member_id, batch=batch)

    def record_settlement(self, group_id, from_user_id, to_user_id, amount, **kwargs) -> SettlementRecord:
        return record_settlement(group_id, from_user_id, to_user_id, amount, **kwargs)

    def update_payment_status(self, payment_id: str, status: str) -> SettlementRecord:
        return update_payment_status(payment_id, status)

    def get_user_by_id(self, user_id: str):
        return users.get_user_by_id(user_id)

    def get_users(self, user_ids: list[str]) -> dict:
        return users.get_users(user_ids)
