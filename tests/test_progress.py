from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import FakeTransactions, make_budget, make_txn

from finance_core.progress import compute_progress, percentage_of, spend_ratio

NOW = datetime(2024, 2, 15, 9, tzinfo=timezone.utc)


def _progress(budget, *amounts):
    query = FakeTransactions([make_txn(amount, date(2024, 2, 10)) for amount in amounts])
    return compute_progress(budget, query, NOW)


@pytest.mark.parametrize(
    "spent, remaining, overspent",
    [
        (("30.25",), "69.75", False),
        (("60", "40"), "0.00", False),
        (("100.01",), "-0.01", True),
    ],
)
def test_remaining_and_overspent(spent, remaining, overspent):
    progress = _progress(make_budget("100"), *spent)

    assert progress.remaining == Decimal(remaining)
    assert progress.remaining == Decimal("100") - progress.total_spent
    assert progress.is_overspent is overspent


def test_full_spend_is_exactly_one_hundred_percent():
    progress = _progress(make_budget("250.00"), "125.00", "125.00")

    assert progress.percentage_spent == Decimal("100")
    assert progress.is_overspent is False


def test_percentage_is_rounded_to_cents():
    progress = _progress(make_budget("3"), "1")

    assert progress.percentage_spent == Decimal("33.33")


def test_spend_ratio_is_not_rounded():
    assert spend_ratio(Decimal("800.00"), Decimal("1000.01")) < Decimal("80")
    assert percentage_of(Decimal("800.00"), Decimal("1000.01")) == Decimal("80.00")

    progress = _progress(make_budget("1000.01"), "1000.00")
    assert progress.percentage_spent == Decimal("100.00")
    assert progress.is_overspent is False


def test_zero_amount_budget_never_divides_by_zero():
    assert percentage_of(Decimal("0"), Decimal("0")) == Decimal("0")
    assert percentage_of(Decimal("5"), Decimal("0")) == Decimal("100")

    progress = _progress(make_budget("0"), "5")
    assert progress.is_overspent is True
    assert progress.remaining == Decimal("-5.00")


def test_window_comes_from_the_budget_dates():
    budget = make_budget(start=date(2024, 1, 1), end=date(2024, 1, 31))
    query = FakeTransactions([
        make_txn("10", date(2024, 1, 31)),
        make_txn("99", date(2024, 2, 10)),
    ])

    progress = compute_progress(budget, query, NOW)

    assert progress.total_spent == Decimal("10")
    assert progress.period.start.date() == date(2024, 1, 1)
    assert progress.period.end.date() == date(2024, 1, 31)


def test_compute_progress_is_idempotent():
    budget = make_budget("80")
    query = FakeTransactions([make_txn("12.5", date(2024, 2, 3)), make_txn("7", date(2024, 2, 4))])

    first = compute_progress(budget, query, NOW)
    second = compute_progress(budget, query, NOW)

    assert first == second
    assert query.calls == 2


def test_wire_shape():
    payload = _progress(make_budget("100"), "80").to_dict()

    assert payload == {
        "progress": {
            "totalSpent": "80.00",
            "remaining": "20.00",
            "percentageSpent": "80.00",
            "isOverspent": False,
        },
        "period": {
            "startDate": "2024-02-01T00:00:00.000Z",
            "endDate": "2024-02-29T23:59:59.999Z",
        },
    }
