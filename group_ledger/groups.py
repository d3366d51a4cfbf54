"""
Groups Module

This module handles all group and membership operations for the group
ledger.

Features:
    - Create groups and add members
    - Remove a member (as part of a write batch)
    - Admin checks, granting and revoking admin rights
    - Groups a user belongs to
    - Keep the denormalized total_expenses up to date

Data Model:
    Group stored at: groups/{group_id}
    Fields:
        - group_id: string (Firestore auto ID)
        - name: string
        - description: string or None
        - members: list of user_ids
        - admin_ids: list of user_ids
        - created_by: string or None
        - total_expenses: float
        - created_at, updated_at: ISO timestamps

Functions:
    create_group: Create a new group.
    get_group: Load one group.
    get_group_members: Current member IDs of a group.
    add_members: Add users to a group.
    remove_group_member: Drop a member from the group document.
    is_group_admin: Check whether a user administers a group.
    add_group_admin: Grant admin rights to a member.
    remove_group_admin: Revoke admin rights from a member.
    get_user_groups: Groups a user is a member of.
    update_group_total_expenses: Recompute total_expenses.
"""

import logging
from typing import Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from group_ledger.config.firebase_config import get_db
from group_ledger.models import Group, ZERO, to_decimal
from group_ledger.utils import get_timestamp, validate_non_empty_string

logger = logging.getLogger(__name__)


class GroupNotFoundError(ValueError):
    """Raised when a group document does not exist."""


def _require_db():
    db = get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")
    return db


def create_group(
    name: str,
    members: list[str],
    created_by: Optional[str] = None,
    description: Optional[str] = None
) -> Group:
    """
    Create a new group.

    The creator (or the first member when there is no creator) becomes
    the group's admin and is always part of members.

    Args:
        name: Display name of the group.
        members: Initial member user_ids.
        created_by: User creating the group.
        description: Optional description.

    Returns:
        Group: The created group.

    Raises:
        ValueError: If input validation fails.
        RuntimeError: If Firestore is not available.
    """
    validate_non_empty_string(name, "name")
    if not isinstance(members, list):
        raise ValueError("members must be a list of user IDs")
    for member_id in members:
        validate_non_empty_string(member_id, "member id")

    # Keep join order, drop duplicates
    member_ids = list(dict.fromkeys(members))
    if created_by:
        validate_non_empty_string(created_by, "created_by")
        if created_by not in member_ids:
            member_ids.insert(0, created_by)
    if not member_ids:
        raise ValueError("a group needs at least one member")

    db = _require_db()
    doc_ref = db.collection("groups").document()
    timestamp = get_timestamp()

    group = Group(
        group_id=doc_ref.id,
        name=name.strip(),
        members=member_ids,
        admin_ids=[created_by or member_ids[0]],
        description=description.strip() if description else None,
        created_by=created_by,
        total_expenses=ZERO,
        created_at=timestamp,
        updated_at=timestamp
    )
    doc_ref.set(group.to_dict())

    logger.info("Created group %s with %d members", group.group_id, len(member_ids))
    return group


def get_group(group_id: str) -> Group:
    """
    Load a group.

    Raises:
        GroupNotFoundError: If the group does not exist.
        RuntimeError: If Firestore is not available.
    """
    validate_non_empty_string(group_id, "group_id")
    db = _require_db()

    doc = db.collection("groups").document(group_id).get()
    if not doc.exists:
        raise GroupNotFoundError(f"Group {group_id} not found")

    data = doc.to_dict()
    data.setdefault("group_id", doc.id)
    return Group.from_dict(data)


def get_group_members(group_id: str) -> list[str]:
    """Current member IDs of a group, in join order."""
    return get_group(group_id).members


def add_members(group_id: str, user_ids: list[str]) -> list[str]:
    """
    Add users to a group.

    Users already in the group are ignored.

    Returns:
        list[str]: The user_ids that were actually added.
    """
    if not isinstance(user_ids, list) or not user_ids:
        raise ValueError("user_ids must be a non-empty list")
    for user_id in user_ids:
        validate_non_empty_string(user_id, "user_id")

    group = get_group(group_id)
    new_members = [u for u in dict.fromkeys(user_ids) if u not in group.members]
    if not new_members:
        return []

    db = _require_db()
    db.collection("groups").document(group_id).update({
        "members": group.members + new_members,
        "updated_at": get_timestamp()
    })

    logger.info("Added %d members to group %s", len(new_members), group_id)
    return new_members


def remove_group_member(group_id: str, member_id: str, batch=None) -> list[str]:
    """
    Remove a member from the group document.

    The member is also dropped from admin_ids. When a batch is given the
    update is only queued on it and the caller commits.

    Returns:
        list[str]: Remaining member IDs.

    Raises:
        GroupNotFoundError: If the group does not exist.
        ValueError: If member_id is not a member of the group.
    """
    validate_non_empty_string(member_id, "member_id")
    group = get_group(group_id)
    if member_id not in group.members:
        raise ValueError(f"User {member_id} is not a member of group {group_id}")

    remaining = [m for m in group.members if m != member_id]
    update = {
        "members": remaining,
        "admin_ids": [a for a in group.admin_ids if a != member_id],
        "updated_at": get_timestamp()
    }

    db = _require_db()
    doc_ref = db.collection("groups").document(group_id)
    if batch is not None:
        batch.update(doc_ref, update)
    else:
        doc_ref.update(update)
    return remaining


def is_group_admin(group_id: str, user_id: str) -> bool:
    """Return True when user_id is an admin of the group."""
    return user_id in get_group(group_id).admin_ids


def update_group_total_expenses(group_id: str) -> float:
    """
    Recompute total_expenses from the group's active expenses.

    Returns:
        float: The new total.
    """
    db = _require_db()
    # Imported here, expenses imports this module
    from group_ledger.expenses import get_active_expenses

    total = ZERO
    for expense in get_active_expenses(group_id):
        total += to_decimal(expense.amount)

    db.collection("groups").document(group_id).update({
        "total_expenses": float(total),
        "updated_at": get_timestamp()
    })
    return float(total)


def add_group_admin(group_id: str, user_id: str) -> list[str]:
    """
    Grant admin rights to a member.

    Returns:
        list[str]: The group's admin IDs afterwards.

    Raises:
        ValueError: If user_id is not a member of the group.
    """
    validate_non_empty_string(user_id, "user_id")
    group = get_group(group_id)
    if user_id not in group.members:
        raise ValueError(f"User {user_id} is not a member of group {group_id}")
    if user_id in group.admin_ids:
        return group.admin_ids

    admin_ids = group.admin_ids + [user_id]
    db = _require_db()
    db.collection("groups").document(group_id).update({
        "admin_ids": admin_ids,
        "updated_at": get_timestamp()
    })

    logger.info("User %s is now an admin of group %s", user_id, group_id)
    return admin_ids


def remove_group_admin(group_id: str, user_id: str) -> list[str]:
    """
    Revoke admin rights; the user stays a member.

    Returns:
        list[str]: The group's admin IDs afterwards.

    Raises:
        ValueError: If user_id is not an admin, or is the last one.
    """
    validate_non_empty_string(user_id, "user_id")
    group = get_group(group_id)
    if user_id not in group.admin_ids:
        raise ValueError(f"User {user_id} is not an admin of group {group_id}")
    if len(group.admin_ids) <= 1:
        raise ValueError("Cannot remove the last admin from the group")

    admin_ids = [a for a in group.admin_ids if a != user_id]
    db = _require_db()
    db.collection("groups").document(group_id).update({
        "admin_ids": admin_ids,
        "updated_at": get_timestamp()
    })

    logger.info("User %s is no longer an admin of group %s", user_id, group_id)
    return admin_ids


def get_user_groups(user_id: str) -> list[Group]:
    """
    Groups user_id is a member of, most recently updated first.
    """
    validate_non_empty_string(user_id, "user_id")
    db = _require_db()

    docs = db.collection("groups") \
             .where(filter=FieldFilter("members", "array_contains", user_id)).stream()

    user_groups = []
    for doc in docs:
        data = doc.to_dict()
        data.setdefault("group_id", doc.id)
        user_groups.append(Group.from_dict(data))

    user_groups.sort(key=lambda g: (g.updated_at or "", g.group_id or ""), reverse=True)
    return user_groups
