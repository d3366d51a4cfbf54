from decimal import Decimal

import pytest

from group_ledger.models import ExpenseShare
from group_ledger.splitter import (
    build_participant_shares,
    check_expense_total,
    compute_balances,
    find_unknown_members,
)


def test_single_equal_expense(dinner):
    balances = compute_balances([dinner], ["A", "B", "C"])

    assert balances["A"] == {"paid": Decimal("90"), "owed": Decimal("30"), "net": Decimal("60")}
    assert balances["B"]["net"] == Decimal("-30")
    assert balances["C"]["net"] == Decimal("-30")


def test_every_member_is_initialized_in_member_order():
    balances = compute_balances([], ["C", "A", "B"])

    assert list(balances) == ["C", "A", "B"]
    for balance in balances.values():
        assert balance == {"paid": 0, "owed": 0, "net": 0}


def test_net_sums_to_zero_over_members(make_expense):
    expenses = [
        make_expense("e1", 100, "A", [("A", Decimal(100) / 3), ("B", Decimal(100) / 3), ("C", Decimal(100) / 3)]),
        make_expense("e2", 45.5, "B", [("B", 20), ("C", 25.5)], split_type="exact"),
        make_expense("e3", 12.34, "C", [("A", 6.17), ("C", 6.17)]),
    ]

    balances = compute_balances(expenses, ["A", "B", "C"])

    total = sum(b["net"] for b in balances.values())
    assert abs(total) <= Decimal("0.01")


def test_inactive_expenses_are_ignored(dinner, make_expense):
    deleted = make_expense("e2", 60, "B", [("A", 30), ("B", 30)], is_active=False)

    balances = compute_balances([dinner, deleted], ["A", "B", "C"])

    assert balances["B"]["paid"] == 0
    assert balances["A"]["owed"] == Decimal("30")


def test_unknown_payer_and_participants_are_dropped(make_expense):
    expense = make_expense("e1", 60, "D", [("A", 30), ("D", 30)])

    balances = compute_balances([expense], ["A", "B"])

    assert "D" not in balances
    assert balances["A"] == {"paid": 0, "owed": Decimal("30"), "net": Decimal("-30")}
    assert balances["B"]["net"] == 0


@pytest.mark.parametrize("expenses, members", [(None, ["A"]), ([], None)])
def test_missing_collections_raise(expenses, members):
    with pytest.raises(TypeError):
        compute_balances(expenses, members)


def test_find_unknown_members(make_expense):
    expenses = [
        make_expense("e1", 60, "D", [("A", 30), ("E", 30)]),
        make_expense("e2", 10, "A", [("A", 10)]),
        make_expense("e3", 10, "Z", [("Z", 10)], is_active=False),
    ]

    assert find_unknown_members(expenses, ["A", "B"]) == {"e1": ["D", "E"]}


class TestBuildParticipantShares:

    def test_equal(self):
        shares = build_participant_shares(90, "equal", ["A", "B", "C"])

        assert [s.user_id for s in shares] == ["A", "B", "C"]
        assert all(s.amount == Decimal("30") for s in shares)

    def test_percentage(self):
        shares = build_participant_shares(200, "percentage", [
            {"user_id": "A", "percentage": 50},
            {"user_id": "B", "percentage": 30},
            {"user_id": "C", "percentage": 20},
        ])

        assert [s.amount for s in shares] == [Decimal("100"), Decimal("60"), Decimal("40")]
        assert shares[0].percentage == Decimal("50")

    def test_percentage_must_add_up_to_100(self):
        with pytest.raises(ValueError, match="add up to 100"):
            build_participant_shares(200, "percentage", [
                {"user_id": "A", "percentage": 50},
                {"user_id": "B", "percentage": 30},
            ])

    def test_shares_default_to_one(self):
        shares = build_participant_shares(100, "shares", [
            {"user_id": "A", "shares": 2},
            {"user_id": "B"},
            "C",
        ])

        assert [s.amount for s in shares] == [Decimal("50"), Decimal("25"), Decimal("25")]
        assert shares[1].shares == Decimal("1")

    def test_exact(self):
        shares = build_participant_shares(50, "exact", [
            ExpenseShare("A", 20),
            ExpenseShare("B", 30),
        ])

        assert [s.amount for s in shares] == [Decimal("20"), Decimal("30")]

    def test_exact_must_add_up_to_amount(self):
        with pytest.raises(ValueError, match="must add up to"):
            build_participant_shares(50, "exact", [
                {"user_id": "A", "amount": 20},
                {"user_id": "B", "amount": 20},
            ])

    def test_legacy_custom_split_is_exact(self):
        shares = build_participant_shares(50, "custom", [
            {"user_id": "A", "amount": 50},
        ])

        assert shares[0].amount == Decimal("50")

    @pytest.mark.parametrize("amount, split_type, entries", [
        (0, "equal", ["A"]),
        (-5, "equal", ["A"]),
        (10, "weighted", ["A"]),
        (10, "equal", []),
        (10, "equal", ["A", "A"]),
        (10, "equal", ["A", ""]),
        (float("nan"), "equal", ["A"]),
        (float("inf"), "equal", ["A"]),
        ("Infinity", "shares", ["A"]),
        (10, "percentage", [{"user_id": "A", "percentage": float("nan")}]),
        (10, "shares", [{"user_id": "A", "shares": float("inf")}]),
        (10, "exact", [{"user_id": "A", "amount": float("nan")}]),
    ])
    def test_invalid_input(self, amount, split_type, entries):
        with pytest.raises(ValueError):
            build_participant_shares(amount, split_type, entries)


def test_check_expense_total(dinner, make_expense):
    assert check_expense_total(dinner) == 0

    absorbed = make_expense("e2", 100, "A", [("A", 50), ("C", 20)], split_type="exact")
    assert check_expense_total(absorbed) == Decimal("30")
