from datetime import date

import pytest

from finance_core.exceptions import ValidationError
from finance_core.reports import ReportService, bucket_start
from finance_core.services import TransactionService


@pytest.fixture
def reports(storage):
    transactions = TransactionService(storage)
    for amount, txn_type, category, day in [
        ("3000", "income", "Salary", "2024-01-31"),
        ("1200", "expense", "Rent", "2024-01-01"),
        ("150.50", "expense", "Food", "2024-01-15"),
        ("49.50", "expense", "Food", "2024-01-16"),
        ("3000", "income", "Salary", "2024-02-29"),
        ("80", "expense", "Food", "2024-02-05"),
        ("999", "expense", "Food", "2023-12-31"),
        ("5", "expense", "Food", "2024-01-10"),
    ]:
        owner = "u2" if amount == "5" else "u1"
        transactions.add(owner, {"amount": amount, "type": txn_type, "category": category, "date": day})
    return ReportService(transactions)


def test_summary_defaults_to_the_current_month(reports):
    result = reports.summary("u1", today=date(2024, 1, 20))

    assert result["period"] == {"startDate": "2024-01-01", "endDate": "2024-01-31"}
    assert result["summary"] == {
        "totalIncome": "3000.00",
        "totalExpense": "1400.00",
        "netSavings": "1600.00",
        "categorySummary": {"Rent": "1200.00", "Food": "200.00"},
    }


def test_monthly_report_fills_all_twelve_months(reports):
    result = reports.monthly("u1", 2024)

    assert len(result["months"]) == 12
    assert result["months"][0] == {
        "month": "January", "income": "3000.00", "expense": "1400.00", "savings": "1600.00",
    }
    assert result["months"][1]["savings"] == "2920.00"
    assert result["months"][11] == {
        "month": "December", "income": "0.00", "expense": "0.00", "savings": "0.00",
    }
    assert result["totals"] == {
        "totalIncome": "6000.00", "totalExpense": "1480.00", "totalSavings": "4520.00",
    }


def test_category_report_sorts_by_amount_with_shares(reports):
    result = reports.by_category("u1", date(2024, 1, 1), date(2024, 2, 29))

    assert result["expense"]["categories"] == [
        {"category": "Rent", "amount": "1200.00", "percentage": "81.08"},
        {"category": "Food", "amount": "280.00", "percentage": "18.92"},
    ]
    assert result["expense"]["total"] == "1480.00"
    assert result["income"]["categories"] == [
        {"category": "Salary", "amount": "6000.00", "percentage": "100.00"},
    ]


def test_category_report_type_filter(reports):
    result = reports.by_category("u1", date(2024, 1, 1), date(2024, 1, 31), "income")

    assert result["expense"] == {"categories": [], "total": "0.00"}
    assert result["income"]["total"] == "3000.00"

    with pytest.raises(ValidationError):
        reports.by_category("u1", txn_type="refund")


def test_cash_flow_weekly_buckets_accumulate(reports):
    result = reports.cash_flow("u1", "weekly", date(2024, 1, 1), date(2024, 1, 31))

    assert result["period"] == "weekly"
    assert [row["period"] for row in result["cashFlow"]] == ["2024-01-01", "2024-01-15", "2024-01-29"]
    assert [row["netCashFlow"] for row in result["cashFlow"]] == ["-1200.00", "-200.00", "3000.00"]
    assert [row["cumulativeCashFlow"] for row in result["cashFlow"]] == [
        "-1200.00", "-1400.00", "1600.00",
    ]


def test_cash_flow_defaults_to_last_thirty_days_monthly(reports):
    result = reports.cash_flow("u1", "hourly", today=date(2024, 3, 1))

    assert result["period"] == "monthly"
    assert result["dateRange"] == {"startDate": "2024-01-31", "endDate": "2024-03-01"}
    assert [row["period"] for row in result["cashFlow"]] == ["2024-01-01", "2024-02-01"]


def test_bucket_start():
    assert bucket_start(date(2024, 3, 13), "daily") == date(2024, 3, 13)
    assert bucket_start(date(2024, 3, 13), "weekly") == date(2024, 3, 11)
    assert bucket_start(date(2024, 3, 13), "monthly") == date(2024, 3, 1)
