from decimal import Decimal

import pytest

from group_ledger.reconciler import reconcile_after_removal, redistribute
from group_ledger.splitter import compute_balances

CENT = Decimal("0.01")


def _amounts(expense):
    return {share.user_id: share.amount for share in expense.participants}


def test_equal_expense_after_removal(dinner):
    result = reconcile_after_removal([dinner], "B", ["A", "C"], recalculated_at="2024-01-01T00:00:00+00:00")

    assert result.skipped == []
    [changed] = result.changed
    assert _amounts(changed) == {"A": Decimal("45"), "C": Decimal("45")}
    assert changed.recalculated_reason == "Member removed: B"
    assert changed.recalculated_at == "2024-01-01T00:00:00+00:00"

    balances = compute_balances(result.changed, ["A", "C"])
    assert balances["A"]["net"] == Decimal("45")
    assert balances["C"]["net"] == Decimal("-45")


def test_percentages_are_rescaled(make_expense):
    expense = make_expense("e1", 200, "A", [
        ("A", 100, {"percentage": 50}),
        ("B", 50, {"percentage": 25}),
        ("C", 50, {"percentage": 25}),
    ], split_type="percentage")

    [changed] = reconcile_after_removal([expense], "B", ["A", "C"]).changed

    assert [s.user_id for s in changed.participants] == ["A", "C"]
    assert abs(changed.participants_total() - Decimal("200")) <= CENT
    assert abs(sum(s.percentage for s in changed.participants) - Decimal("100")) <= CENT
    assert abs(changed.participants[0].amount - Decimal("133.33")) <= CENT


def test_zero_percentages_fall_back_to_equal(make_expense):
    expense = make_expense("e1", 200, "A", [
        ("A", 0, {"percentage": 0}),
        ("B", 200, {"percentage": 100}),
        ("C", 0, {"percentage": 0}),
    ], split_type="percentage")

    [changed] = reconcile_after_removal([expense], "B", ["A", "C"]).changed

    assert _amounts(changed) == {"A": Decimal("100"), "C": Decimal("100")}
    assert [s.percentage for s in changed.participants] == [Decimal("50"), Decimal("50")]


def test_shares_are_reweighted(make_expense):
    expense = make_expense("e1", 120, "A", [
        ("A", 60, {"shares": 2}),
        ("B", 30, {"shares": 1}),
        ("C", 30),
    ], split_type="shares")

    [changed] = reconcile_after_removal([expense], "B", ["A", "C"]).changed

    assert _amounts(changed) == {"A": Decimal("80"), "C": Decimal("40")}
    assert changed.participants[0].shares == Decimal("2")


def test_exact_keeps_remaining_amounts(make_expense):
    expense = make_expense("e1", 100, "A", [("A", 50), ("B", 30), ("C", 20)], split_type="exact")

    [changed] = reconcile_after_removal([expense], "B", ["A", "C"]).changed

    assert _amounts(changed) == {"A": Decimal("50"), "C": Decimal("20")}
    assert changed.participants_total() <= changed.amount


def test_exact_scales_down_amounts_over_the_total(make_expense):
    expense = make_expense("e1", 100, "A", [("A", 80), ("B", 10), ("C", 40)], split_type="exact")

    [changed] = reconcile_after_removal([expense], "B", ["A", "C"]).changed

    amounts = _amounts(changed)
    assert abs(amounts["A"] - Decimal("66.67")) <= CENT
    assert abs(amounts["C"] - Decimal("33.33")) <= CENT
    assert abs(changed.participants_total() - Decimal("100")) <= CENT


def test_expense_left_without_participants_is_skipped(make_expense):
    solo = make_expense("e1", 40, "A", [("B", 40)])

    result = reconcile_after_removal([solo], "B", ["A", "C"])

    assert result.changed == []
    assert result.skipped == ["e1"]
    assert redistribute(solo, "B") is None


def test_only_expenses_with_the_member_are_returned(dinner, make_expense):
    other = make_expense("e2", 20, "A", [("A", 10), ("C", 10)])

    result = reconcile_after_removal([dinner, other], "B", ["A", "C"])

    assert [e.expense_id for e in result.changed] == ["e1"]
    assert result.to_dict() == {
        "removed_member_id": "B",
        "changed_expense_ids": ["e1"],
        "skipped_expense_ids": [],
    }


def test_no_remaining_members_changes_nothing(dinner):
    result = reconcile_after_removal([dinner], "B", [])

    assert result.changed == []
    assert result.skipped == []


def test_inputs_are_not_modified(dinner):
    before = dinner.to_dict()

    reconcile_after_removal([dinner], "B", ["A", "C"])

    assert dinner.to_dict() == before


@pytest.mark.parametrize("split_type, shares", [
    ("equal", [("A", 25), ("B", 25), ("C", 25), ("D", 25)]),
    ("percentage", [("A", 10, {"percentage": 10}), ("B", 30, {"percentage": 30}),
                    ("C", 45, {"percentage": 45}), ("D", 15, {"percentage": 15})]),
    ("shares", [("A", 10, {"shares": 1}), ("B", 30, {"shares": 3}),
                ("C", 40, {"shares": 4}), ("D", 20, {"shares": 2})]),
    ("exact", [("A", 10), ("B", 30), ("C", 40), ("D", 20)]),
])
def test_removed_member_is_gone_and_total_is_kept(make_expense, split_type, shares):
    expense = make_expense("e1", 100, "A", shares, split_type=split_type)

    [changed] = reconcile_after_removal([expense], "B", ["A", "C", "D"]).changed

    assert [s.user_id for s in changed.participants] == ["A", "C", "D"]
    if split_type == "exact":
        assert changed.participants_total() <= changed.amount
    else:
        assert abs(changed.participants_total() - changed.amount) <= CENT


@pytest.mark.parametrize("expenses, remaining", [(None, ["A"]), ([], None)])
def test_missing_collections_raise(expenses, remaining):
    with pytest.raises(TypeError):
        reconcile_after_removal(expenses, "B", remaining)
