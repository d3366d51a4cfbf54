"""
Group Ledger - FastAPI Web Backend

This module serves as the main entry point for the group expense
splitting API.

Features:
    - RESTful API for managing groups, members, expenses and settlements
    - Integration with Firebase Firestore backend
    - Balance and outstanding settlement calculations
    - Member removal with expense reconciliation
    - Per-user overview across all of their groups

Endpoints:
    POST   /groups                                   - Create a new group
    POST   /groups/{group_id}/members                - Add members to a group
    DELETE /groups/{group_id}/members/{user_id}      - Remove a member (admins only)
    POST   /groups/{group_id}/admins                 - Grant admin rights
    DELETE /groups/{group_id}/admins/{user_id}       - Revoke admin rights
    POST   /groups/{group_id}/expenses               - Add expense to a group
    PATCH  /expenses/{expense_id}                    - Edit an expense
    DELETE /expenses/{expense_id}                    - Delete an expense
    GET    /groups/{group_id}/balances               - Member balances
    GET    /groups/{group_id}/settlements            - Outstanding transfers
    POST   /groups/{group_id}/settlements            - Record a (partial) payment
    GET    /groups/{group_id}/settlements/between    - Payment history of a pair
    PATCH  /settlements/{settlement_id}              - Update payment status
    GET    /users/{user_id}/groups                   - Groups of a user
    GET    /users/{user_id}/overview                 - Totals across a user's groups

Usage:
    uvicorn group_ledger.main:app --reload
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from group_ledger import ledger
from group_ledger.config.settings import Config
from group_ledger.expenses import ExpenseNotFoundError, add_expense, delete_expense
from group_ledger.firebase_store import FirestoreDataStore, SettlementNotFoundError
from group_ledger.groups import GroupNotFoundError, add_members, create_group
from group_ledger.settlement import summarize_for_user
from group_ledger.utils import balances_to_json, instructions_to_json, to_money

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

store = FirestoreDataStore()

NOT_FOUND_ERRORS = (GroupNotFoundError, ExpenseNotFoundError, SettlementNotFoundError)


# =============================================================================
# Pydantic Models for Request/Response Validation
# =============================================================================

class GroupCreate(BaseModel):
    """Request model for creating a new group."""
    name: str = Field(..., min_length=1, description="Group name")
    members: list[str] = Field(default_factory=list, description="Initial member user IDs")
    created_by: Optional[str] = Field(None, description="User creating the group")
    description: Optional[str] = Field(None, description="Optional description")


class GroupResponse(BaseModel):
    """Response model for group data."""
    group_id: str
    name: str
    members: list[str]
    admin_ids: list[str]
    description: Optional[str]
    total_expenses: float


class MembersAdd(BaseModel):
    """Request model for adding members."""
    user_ids: list[str] = Field(..., min_length=1, description="User IDs to add")


class AdminAdd(BaseModel):
    """Request model for granting admin rights."""
    user_id: str = Field(..., min_length=1, description="Member to promote")
    acting_user_id: str = Field(..., min_length=1, description="Admin making the change")


class ParticipantIn(BaseModel):
    """One participant of a new expense."""
    user_id: str = Field(..., min_length=1)
    percentage: Optional[float] = Field(None, ge=0, description="For percentage splits")
    shares: Optional[float] = Field(None, gt=0, description="For shares splits")
    amount: Optional[float] = Field(None, ge=0, description="For exact splits")


class ExpenseCreate(BaseModel):
    """Request model for adding an expense."""
    paid_by: str = Field(..., min_length=1, description="User ID of payer")
    amount: float = Field(..., gt=0, description="Expense amount (must be > 0)")
    split_type: str = Field("equal", description="equal, percentage, shares or exact")
    participants: list[ParticipantIn] = Field(..., min_length=1, description="Who shares the cost")
    description: str = Field("", description="Expense label")
    category: Optional[str] = Field(None, description="Optional category")
    currency: Optional[str] = Field(None, description="Currency code")
    created_by: Optional[str] = Field(None, description="User logging the expense")


class ExpenseUpdate(BaseModel):
    """Request model for editing an expense; omitted fields are kept."""
    amount: Optional[float] = Field(None, gt=0, description="New amount")
    split_type: Optional[str] = Field(None, description="equal, percentage, shares or exact")
    participants: Optional[list[ParticipantIn]] = Field(None, min_length=1, description="New participants")
    description: Optional[str] = Field(None, description="New label")
    category: Optional[str] = Field(None, description="New category")


class ExpenseResponse(BaseModel):
    """Response model for expense data."""
    expense_id: str
    group_id: str
    paid_by: str
    amount: float
    split_type: str
    participants: list[dict]
    description: str
    category: Optional[str]
    is_active: bool


class SettlementCreate(BaseModel):
    """Request model for recording a payment; omit amount to settle in full."""
    from_user_id: str = Field(..., min_length=1, description="Debtor")
    to_user_id: str = Field(..., min_length=1, description="Creditor")
    amount: Optional[float] = Field(None, description="Amount paid")
    settled_by: Optional[str] = Field(None, description="User recording the payment")


class SettlementStatusUpdate(BaseModel):
    """Request model for a payment status change."""
    status: str = Field(..., description="pending, completed or cancelled")


class SettlementResponse(BaseModel):
    """Response model for a settlement record."""
    settlement_id: str
    group_id: str
    from_user_id: str
    to_user_id: str
    amount: float
    status: str
    description: Optional[str]


class BalancesResponse(BaseModel):
    """Response model for member balances."""
    group_id: str
    balances: dict


class OutstandingResponse(BaseModel):
    """Response model for outstanding settlements."""
    group_id: str
    balances: dict
    instructions: list
    settled: list
    pending: list
    explanations: list
    user_summary: Optional[dict] = None


class RemovalResponse(BaseModel):
    """Response model for member removal."""
    removed_member_id: str
    changed_expense_ids: list[str]
    skipped_expense_ids: list[str]


class GroupBalanceDetail(BaseModel):
    """One group's figures in a user overview."""
    group_id: str
    group_name: str
    you_owe: float
    you_are_owed: float
    net_balance: float
    total_expenses: float


class UserOverviewResponse(BaseModel):
    """Response model for a user's totals across groups."""
    user_id: str
    total_you_owe: float
    total_you_are_owed: float
    net_balance: float
    groups: list[GroupBalanceDetail]


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Group Ledger",
    description="Group expense splitting and settlement API",
    version="1.0.0"
)


# =============================================================================
# Helper Functions
# =============================================================================

def _group_response(group) -> GroupResponse:
    return GroupResponse(
        group_id=group.group_id,
        name=group.name,
        members=group.members,
        admin_ids=group.admin_ids,
        description=group.description,
        total_expenses=to_money(group.total_expenses)
    )


def _expense_response(expense) -> ExpenseResponse:
    return ExpenseResponse(
        expense_id=expense.expense_id,
        group_id=expense.group_id,
        paid_by=expense.paid_by,
        amount=float(expense.amount),
        split_type=expense.split_type,
        participants=[share.to_dict() for share in expense.participants],
        description=expense.description,
        category=expense.category,
        is_active=expense.is_active
    )


def _settlement_response(record) -> SettlementResponse:
    return SettlementResponse(
        settlement_id=record.settlement_id,
        group_id=record.group_id,
        from_user_id=record.from_user_id,
        to_user_id=record.to_user_id,
        amount=to_money(record.amount),
        status=record.status,
        description=record.description
    )


# =============================================================================
# Group Endpoints
# =============================================================================

@app.post("/groups", response_model=GroupResponse, status_code=201)
async def create_new_group(group_data: GroupCreate):
    """Create a new group; the creator becomes its admin."""
    try:
        group = create_group(
            name=group_data.name,
            members=group_data.members,
            created_by=group_data.created_by,
            description=group_data.description
        )
        return _group_response(group)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Creating group failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/groups/{group_id}/members", response_model=GroupResponse)
async def add_group_members(group_id: str, members_data: MembersAdd):
    """Add members to a group; existing members are ignored."""
    try:
        add_members(group_id, members_data.user_ids)
        return _group_response(store.get_group(group_id))

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Adding members to group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/groups/{group_id}/members/{user_id}", response_model=RemovalResponse)
async def remove_group_member(group_id: str, user_id: str, acting_user_id: str):
    """
    Remove a member from a group.

    Request flow:
        1. Check the acting user is an admin
        2. Check membership and the last-admin rule
        3. Rewrite the member's expense shares (reconciler.py)
        4. Commit membership change and rewrites in one batch
    """
    try:
        result = ledger.remove_member(store, group_id, user_id, acting_user_id=acting_user_id)
        return RemovalResponse(**result.to_dict())

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Removing %s from group %s failed", user_id, group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/groups/{group_id}/admins", response_model=GroupResponse)
async def add_group_admin(group_id: str, admin_data: AdminAdd):
    """Grant admin rights to a member; the acting user must be an admin."""
    try:
        ledger.add_admin(store, group_id, admin_data.user_id, admin_data.acting_user_id)
        return _group_response(store.get_group(group_id))

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Granting admin in group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/groups/{group_id}/admins/{user_id}", response_model=GroupResponse)
async def remove_group_admin(group_id: str, user_id: str, acting_user_id: str):
    """Revoke admin rights; the group always keeps one admin."""
    try:
        ledger.remove_admin(store, group_id, user_id, acting_user_id)
        return _group_response(store.get_group(group_id))

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Revoking admin in group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Expense Endpoints
# =============================================================================

@app.post("/groups/{group_id}/expenses", response_model=ExpenseResponse, status_code=201)
async def add_group_expense(group_id: str, expense_data: ExpenseCreate):
    """Add an expense to a group."""
    try:
        participants = [
            p.model_dump(exclude_none=True) for p in expense_data.participants
        ]
        expense = add_expense(
            group_id=group_id,
            paid_by=expense_data.paid_by,
            amount=expense_data.amount,
            split_type=expense_data.split_type,
            participants=participants,
            description=expense_data.description,
            category=expense_data.category,
            currency=expense_data.currency,
            created_by=expense_data.created_by
        )
        return _expense_response(expense)

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Adding expense to group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/expenses/{expense_id}", response_model=ExpenseResponse)
async def edit_expense(expense_id: str, expense_data: ExpenseUpdate):
    """
    Edit an expense.

    Shares are rebuilt when the amount, split type or participants change.
    """
    try:
        participants = None
        if expense_data.participants is not None:
            participants = [
                p.model_dump(exclude_none=True) for p in expense_data.participants
            ]
        expense = store.update_expense(
            expense_id,
            amount=expense_data.amount,
            split_type=expense_data.split_type,
            participants=participants,
            description=expense_data.description,
            category=expense_data.category
        )
        return _expense_response(expense)

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Editing expense %s failed", expense_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/expenses/{expense_id}", response_model=ExpenseResponse)
async def remove_expense(expense_id: str):
    """Soft delete an expense."""
    try:
        return _expense_response(delete_expense(expense_id))

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Deleting expense %s failed", expense_id)
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Balance and Settlement Endpoints
# =============================================================================

@app.get("/groups/{group_id}/balances", response_model=BalancesResponse)
async def get_balances(group_id: str):
    """Paid, owed and net amounts of every current member."""
    try:
        balances = ledger.get_group_balances(store, group_id)
        return BalancesResponse(group_id=group_id, balances=balances_to_json(balances))

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Computing balances for group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/groups/{group_id}/settlements", response_model=OutstandingResponse)
async def get_settlements(group_id: str, user_id: Optional[str] = None):
    """
    Outstanding transfers of a group.

    Pass user_id to also get what that user pays and receives.
    """
    try:
        state = ledger.describe_group(store, group_id)
        user_summary = None
        if user_id:
            summary = summarize_for_user(state["instructions"], user_id)
            user_summary = {
                "to_pay": instructions_to_json(summary["to_pay"]),
                "to_receive": instructions_to_json(summary["to_receive"]),
                "total_to_pay": to_money(summary["total_to_pay"]),
                "total_to_receive": to_money(summary["total_to_receive"])
            }
        return OutstandingResponse(
            group_id=group_id,
            balances=balances_to_json(state["balances"]),
            instructions=instructions_to_json(state["instructions"]),
            settled=[_settlement_response(r).model_dump() for r in state["settled"]],
            pending=[_settlement_response(r).model_dump() for r in state["pending"]],
            explanations=state["explanations"],
            user_summary=user_summary
        )

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Computing settlements for group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/groups/{group_id}/settlements", response_model=SettlementResponse, status_code=201)
async def record_group_settlement(group_id: str, settlement_data: SettlementCreate):
    """
    Record a full or partial payment.

    The amount is checked against the freshly computed outstanding amount
    for the pair; over-payments are rejected with 400.
    """
    try:
        record = ledger.settle_up(
            store,
            group_id,
            settlement_data.from_user_id,
            settlement_data.to_user_id,
            amount=settlement_data.amount,
            settled_by=settlement_data.settled_by
        )
        return _settlement_response(record)

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Recording settlement in group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/groups/{group_id}/settlements/between", response_model=list[SettlementResponse])
async def get_settlement_history(group_id: str, user_a: str, user_b: str):
    """Payments recorded between two members, in either direction."""
    try:
        records = store.get_settlements_between(group_id, user_a, user_b)
        return [_settlement_response(r) for r in records]

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Loading payment history in group %s failed", group_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/settlements/{settlement_id}", response_model=SettlementResponse)
async def update_settlement_status(settlement_id: str, status_data: SettlementStatusUpdate):
    """
    Update a payment's status.

    Clients should re-fetch the group's settlements afterwards instead of
    assuming the change went through.
    """
    try:
        record = store.update_payment_status(settlement_id, status_data.status)
        return _settlement_response(record)

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Updating settlement %s failed", settlement_id)
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# User Endpoints
# =============================================================================

@app.get("/users/{user_id}/groups", response_model=list[GroupResponse])
async def get_groups_of_user(user_id: str):
    """Groups the user is a member of, most recently updated first."""
    try:
        return [_group_response(group) for group in store.get_user_groups(user_id)]

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Loading groups of user %s failed", user_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/users/{user_id}/overview", response_model=UserOverviewResponse)
async def get_user_overview(user_id: str):
    """What the user owes and is owed, in total and per group."""
    try:
        overview = ledger.get_user_overview(store, user_id)
        return UserOverviewResponse(
            user_id=user_id,
            total_you_owe=to_money(overview["total_you_owe"]),
            total_you_are_owed=to_money(overview["total_you_are_owed"]),
            net_balance=to_money(overview["net_balance"]),
            groups=[
                GroupBalanceDetail(
                    group_id=detail["group_id"],
                    group_name=detail["group_name"],
                    you_owe=to_money(detail["you_owe"]),
                    you_are_owed=to_money(detail["you_are_owed"]),
                    net_balance=to_money(detail["net_balance"]),
                    total_expenses=to_money(detail["total_expenses"])
                )
                for detail in overview["groups"]
            ]
        )

    except NOT_FOUND_ERRORS as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.exception("Building overview for user %s failed", user_id)
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint to verify API is running."""
    return {"status": "healthy", "service": "Group Ledger"}


# =============================================================================
# Run with: python -m group_ledger.main
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("group_ledger.main:app", host=Config.API_HOST, port=Config.API_PORT, reload=True)
