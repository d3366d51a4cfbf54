"""
Users Module

Read access to the user directory. Names and avatars are only used to
present balances and settlement instructions, never in the calculations.

Data Model:
    User stored at: users/{user_id}
    Fields:
        - user_id, name, avatar_url, email, phone
"""

import logging

from group_ledger.config.firebase_config import get_db
from group_ledger.models import Member
from group_ledger.utils import validate_non_empty_string

logger = logging.getLogger(__name__)


def _require_db():
    db = get_db()
    if db is None:
        raise RuntimeError("Firestore is not available")
    return db


def save_user(member: Member) -> Member:
    """Create or overwrite a user profile."""
    validate_non_empty_string(member.user_id, "user_id")
    validate_non_empty_string(member.name, "name")

    db = _require_db()
    db.collection("users").document(member.user_id).set(member.to_dict())
    return member


def get_user_by_id(user_id: str) -> Member:
    """
    Look up a user profile.

    Users without a profile document get a placeholder named
    "Unknown User" so instructions can still be displayed.
    """
    validate_non_empty_string(user_id, "user_id")
    db = _require_db()

    doc = db.collection("users").document(user_id).get()
    if not doc.exists:
        logger.debug("No profile for user %s", user_id)
        return Member(user_id=user_id, name="Unknown User")

    data = doc.to_dict()
    data.setdefault("user_id", doc.id)
    return Member.from_dict(data)


def get_users(user_ids: list[str]) -> dict:
    """user_id -> Member for every ID in user_ids."""
    return {user_id: get_user_by_id(user_id) for user_id in dict.fromkeys(user_ids)}
