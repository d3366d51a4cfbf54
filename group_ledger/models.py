"""
Models Module

This module defines the records shared by the ledger engine, the Firestore
store and the HTTP layer.

Data Model:
    Member - read-only identity from the user directory
    ExpenseShare - one participant entry of an expense
    Expense - a payment made by one member on behalf of participants
    SettlementRecord - a real-world transfer between two members
    Group - members list and denormalized expense total

Money:
    All amounts are kept as Decimal. Firestore stores floats, so values are
    converted with to_decimal() when read and float() when written.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional


SPLIT_EQUAL = "equal"
SPLIT_PERCENTAGE = "percentage"
SPLIT_SHARES = "shares"
SPLIT_EXACT = "exact"

VALID_SPLIT_TYPES = {SPLIT_EQUAL, SPLIT_PERCENTAGE, SPLIT_SHARES, SPLIT_EXACT}

# Older expense documents used "custom" for exact amounts
_SPLIT_TYPE_ALIASES = {"custom": SPLIT_EXACT, "amount": SPLIT_EXACT}

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED}

_STATUS_ALIASES = {"settled": STATUS_COMPLETED}

ZERO = Decimal("0")


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """
    Convert a stored number to Decimal.

    Goes through str() so that float noise such as 0.1 + 0.2 is not
    carried into the Decimal. None and malformed values give the default.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def _optional_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value)


def normalize_split_type(split_type: str) -> str:
    """Map legacy split type names onto the four supported ones."""
    if split_type is None:
        return SPLIT_EQUAL
    split_type = str(split_type).strip().lower()
    return _SPLIT_TYPE_ALIASES.get(split_type, split_type)


def normalize_status(status: str) -> str:
    """Map legacy settlement statuses; missing status means pending."""
    if not status:
        return STATUS_PENDING
    status = str(status).strip().lower()
    return _STATUS_ALIASES.get(status, status)


class Member:
    """
    A group member as seen by the user directory.

    Attributes:
        user_id (str): Unique identifier of the user.
        name (str): Display name.
        avatar_url (str | None): Profile image reference.
        email (str | None): Contact email.
        phone (str | None): Contact phone number.
    """

    def __init__(
        self,
        user_id: str,
        name: str,
        avatar_url: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ):
        self.user_id = user_id
        self.name = name
        self.avatar_url = avatar_url
        self.email = email
        self.phone = phone

    def to_dict(self) -> dict:
        """Convert member to dictionary for Firestore storage."""
        return {
            "user_id": self.user_id,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "email": self.email,
            "phone": self.phone
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        """Create a Member instance from a dictionary."""
        return cls(
            user_id=data.get("user_id"),
            name=data.get("name") or data.get("user_id"),
            avatar_url=data.get("avatar_url"),
            email=data.get("email"),
            phone=data.get("phone")
        )

    def __repr__(self) -> str:
        return f"Member(id='{self.user_id}', name='{self.name}')"


class ExpenseShare:
    """
    One participant's part of an expense.

    Attributes:
        user_id (str): Participant who owes this share.
        amount (Decimal): Amount owed.
        percentage (Decimal | None): Percentage for percentage splits.
        shares (Decimal | None): Share count for shares splits.
    """

    def __init__(
        self,
        user_id: str,
        amount,
        percentage=None,
        shares=None
    ):
        self.user_id = user_id
        self.amount = to_decimal(amount)
        self.percentage = _optional_decimal(percentage)
        self.shares = _optional_decimal(shares)

    def copy(self, **changes) -> "ExpenseShare":
        """Return a new share with the given fields replaced."""
        values = {
            "user_id": self.user_id,
            "amount": self.amount,
            "percentage": self.percentage,
            "shares": self.shares
        }
        values.update(changes)
        return ExpenseShare(**values)

    def to_dict(self) -> dict:
        """Convert share to dictionary for Firestore storage."""
        data = {"user_id": self.user_id, "amount": float(self.amount)}
        if self.percentage is not None:
            data["percentage"] = float(self.percentage)
        if self.shares is not None:
            data["shares"] = float(self.shares)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExpenseShare":
        """Create an ExpenseShare from a dictionary (accepts legacy userId)."""
        return cls(
            user_id=data.get("user_id") or data.get("userId"),
            amount=data.get("amount"),
            percentage=data.get("percentage"),
            shares=data.get("shares")
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, ExpenseShare):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ExpenseShare(user='{self.user_id}', amount={self.amount})"


class Expense:
    """
    Represents a single expense in a group.

    Attributes:
        expense_id (str): Unique identifier.
        group_id (str): Owning group.
        amount (Decimal): Total cost, must be > 0.
        paid_by (str): User ID of who fronted the money.
        split_type (str): One of equal, percentage, shares, exact.
        participants (list[ExpenseShare]): Who owes what, in stored order.
        is_active (bool): False once the expense is deleted.
        description (str): Free text label.
        category (str | None): Optional category.
        currency (str): Currency code, INR by default.
        created_by (str | None): User who logged the expense.
        created_at, updated_at (str | None): ISO timestamps.
        recalculated_at (str | None): When shares were last rewritten.
        recalculated_reason (str | None): Why they were rewritten.
    """

    def __init__(
        self,
        expense_id: str,
        group_id: str,
        amount,
        paid_by: str,
        split_type: str = SPLIT_EQUAL,
        participants: Optional[list] = None,
        is_active: bool = True,
        description: str = "",
        category: Optional[str] = None,
        currency: str = "INR",
        created_by: Optional[str] = None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
        recalculated_at: Optional[str] = None,
        recalculated_reason: Optional[str] = None
    ):
        self.expense_id = expense_id
        self.group_id = group_id
        self.amount = to_decimal(amount)
        self.paid_by = paid_by
        self.split_type = normalize_split_type(split_type)
        self.participants = list(participants or [])
        self.is_active = is_active
        self.description = description
        self.category = category
        self.currency = currency
        self.created_by = created_by
        self.created_at = created_at
        self.updated_at = updated_at
        self.recalculated_at = recalculated_at
        self.recalculated_reason = recalculated_reason

    @property
    def participant_ids(self) -> list[str]:
        return [share.user_id for share in self.participants]

    def participants_total(self) -> Decimal:
        """Sum of participant amounts, in stored order."""
        total = ZERO
        for share in self.participants:
            total += share.amount
        return total

    def copy(self, **changes) -> "Expense":
        """Return a new expense with the given fields replaced."""
        values = {
            "expense_id": self.expense_id,
            "group_id": self.group_id,
            "amount": self.amount,
            "paid_by": self.paid_by,
            "split_type": self.split_type,
            "participants": [share.copy() for share in self.participants],
            "is_active": self.is_active,
            "description": self.description,
            "category": self.category,
            "currency": self.currency,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "recalculated_at": self.recalculated_at,
            "recalculated_reason": self.recalculated_reason
        }
        values.update(changes)
        return Expense(**values)

    def to_dict(self) -> dict:
        """Convert expense to dictionary for Firestore storage."""
        return {
            "expense_id": self.expense_id,
            "group_id": self.group_id,
            "amount": float(self.amount),
            "paid_by": self.paid_by,
            "split_type": self.split_type,
            "participants": [share.to_dict() for share in self.participants],
            "is_active": self.is_active,
            "description": self.description,
            "category": self.category,
            "currency": self.currency,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "recalculated_at": self.recalculated_at,
            "recalculated_reason": self.recalculated_reason
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Expense":
        """Create an Expense instance from a dictionary."""
        return cls(
            expense_id=data.get("expense_id"),
            group_id=data.get("group_id"),
            amount=data.get("amount"),
            paid_by=data.get("paid_by"),
            split_type=data.get("split_type"),
            participants=[
                ExpenseShare.from_dict(p) for p in data.get("participants") or []
            ],
            is_active=data.get("is_active", True),
            description=data.get("description") or "",
            category=data.get("category"),
            currency=data.get("currency") or "INR",
            created_by=data.get("created_by"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            recalculated_at=data.get("recalculated_at"),
            recalculated_reason=data.get("recalculated_reason")
        )

    def __repr__(self) -> str:
        return (
            f"Expense(id='{self.expense_id}', paid_by='{self.paid_by}', "
            f"amount={self.amount}, split='{self.split_type}')"
        )


class SettlementRecord:
    """
    A transfer between two members that was recorded by a user.

    Only completed records count as proof of payment. Pending records are
    intentions and never reduce what is outstanding.
    """

    def __init__(
        self,
        settlement_id: Optional[str],
        group_id: str,
        from_user_id: str,
        to_user_id: str,
        amount,
        status: str = STATUS_PENDING,
        description: Optional[str] = None,
        currency: str = "INR",
        settled_by: Optional[str] = None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
        is_active: bool = True
    ):
        self.settlement_id = settlement_id
        self.group_id = group_id
        self.from_user_id = from_user_id
        self.to_user_id = to_user_id
        self.amount = to_decimal(amount)
        self.status = normalize_status(status)
        self.description = description
        self.currency = currency
        self.settled_by = settled_by
        self.created_at = created_at
        self.updated_at = updated_at
        self.is_active = is_active

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def validate(self) -> None:
        """
        Check the record constraints.

        Raises:
            ValueError: If amount is not positive or both sides are the same user.
        """
        if self.amount <= ZERO:
            raise ValueError(f"settlement amount must be positive, got: {self.amount}")
        if self.from_user_id == self.to_user_id:
            raise ValueError("settlement cannot be made to the same user")
        if self.status not in VALID_STATUSES:
            raise ValueError(f"status must be one of {sorted(VALID_STATUSES)}, got: {self.status}")

    def to_dict(self) -> dict:
        """Convert settlement to dictionary for Firestore storage."""
        return {
            "settlement_id": self.settlement_id,
            "group_id": self.group_id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "amount": float(self.amount),
            "status": self.status,
            "description": self.description,
            "currency": self.currency,
            "settled_by": self.settled_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_active": self.is_active
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SettlementRecord":
        """Create a SettlementRecord from a dictionary."""
        return cls(
            settlement_id=data.get("settlement_id"),
            group_id=data.get("group_id"),
            from_user_id=data.get("from_user_id"),
            to_user_id=data.get("to_user_id"),
            amount=data.get("amount"),
            status=data.get("status"),
            description=data.get("description"),
            currency=data.get("currency") or "INR",
            settled_by=data.get("settled_by"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            is_active=data.get("is_active", True)
        )

    def __repr__(self) -> str:
        return (
            f"SettlementRecord(from='{self.from_user_id}', to='{self.to_user_id}', "
            f"amount={self.amount}, status='{self.status}')"
        )


class Group:
    """
    A group of members sharing expenses.

    Attributes:
        group_id (str): Unique identifier.
        name (str): Display name.
        members (list[str]): Current member user IDs, in join order.
        admin_ids (list[str]): Members allowed to manage the group.
        total_expenses (Decimal): Sum of active expense amounts.
    """

    def __init__(
        self,
        group_id: str,
        name: str,
        members: Optional[list] = None,
        admin_ids: Optional[list] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
        total_expenses=None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None
    ):
        self.group_id = group_id
        self.name = name
        self.members = list(members or [])
        self.admin_ids = list(admin_ids or [])
        self.description = description
        self.created_by = created_by
        self.total_expenses = to_decimal(total_expenses)
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> dict:
        """Convert group to dictionary for Firestore storage."""
        return {
            "group_id": self.group_id,
            "name": self.name,
            "members": self.members,
            "admin_ids": self.admin_ids,
            "description": self.description,
            "created_by": self.created_by,
            "total_expenses": float(self.total_expenses),
            "created_at": self.created_at,
            "updated_at": self.updated_at
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Group":
        """Create a Group instance from a dictionary."""
        return cls(
            group_id=data.get("group_id"),
            name=data.get("name"),
            members=data.get("members") or [],
            admin_ids=data.get("admin_ids") or [],
            description=data.get("description"),
            created_by=data.get("created_by"),
            total_expenses=data.get("total_expenses"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at")
        )

    def __repr__(self) -> str:
        return f"Group(id='{self.group_id}', name='{self.name}', members={len(self.members)})"

