"""Aggregated income/expense reports over a user's transactions."""

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from .models import TRANSACTION_TYPES, Transaction, format_amount
from .services import TransactionService
from .validators import validate_enum

ZERO = Decimal("0.00")
CASH_FLOW_PERIODS = ("daily", "weekly", "monthly")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _month_bounds(day: date) -> Tuple[date, date]:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def _share(amount: Decimal, total: Decimal) -> str:
    if total <= 0:
        return "0.00"
    return format_amount((amount / total * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def bucket_start(day: date, period: str) -> date:
    """Truncate ``day`` to the start of its daily/weekly/monthly bucket (weeks start Monday)."""
    if period == "daily":
        return day
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


class ReportService:
    """Read-only reports built on :class:`TransactionService` queries."""

    def __init__(self, transactions: TransactionService) -> None:
        self._transactions = transactions

    def _between(self, user_id: str, start: date, end: date, **filters: object) -> List[Transaction]:
        return self._transactions.list(user_id, start=start, end=end, **filters)

    def summary(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Income, expense, net savings and per-category expense totals (default: this month)."""
        default_start, default_end = _month_bounds(today or _today())
        start = start or default_start
        end = end or default_end
        income = expense = ZERO
        by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for txn in self._between(user_id, start, end):
            if txn.type == "income":
                income += txn.amount
            else:
                expense += txn.amount
                by_category[txn.category] += txn.amount
        return {
            "summary": {
                "totalIncome": format_amount(income),
                "totalExpense": format_amount(expense),
                "netSavings": format_amount(income - expense),
                "categorySummary": {name: format_amount(total) for name, total in by_category.items()},
            },
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        }

    def monthly(self, user_id: str, year: Optional[int] = None) -> Dict[str, Any]:
        year = year or _today().year
        income = [ZERO] * 12
        expense = [ZERO] * 12
        for txn in self._between(user_id, date(year, 1, 1), date(year, 12, 31)):
            bucket = income if txn.type == "income" else expense
            bucket[txn.date.month - 1] += txn.amount

        months = [
            {
                "month": calendar.month_name[index + 1],
                "income": format_amount(income[index]),
                "expense": format_amount(expense[index]),
                "savings": format_amount(income[index] - expense[index]),
            }
            for index in range(12)
        ]
        total_income = sum(income, start=ZERO)
        total_expense = sum(expense, start=ZERO)
        return {
            "year": year,
            "months": months,
            "totals": {
                "totalIncome": format_amount(total_income),
                "totalExpense": format_amount(total_expense),
                "totalSavings": format_amount(total_income - total_expense),
            },
        }

    def by_category(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        txn_type: Optional[str] = None,
        *,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Per-category totals split by type, largest first, with percentage share."""
        default_start, default_end = _month_bounds(today or _today())
        start = start or default_start
        end = end or default_end
        filters = {"type": validate_enum(txn_type, "type", TRANSACTION_TYPES)} if txn_type else {}

        totals: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for txn in self._between(user_id, start, end, **filters):
            totals[(txn.type, txn.category)] += txn.amount

        sections: Dict[str, Any] = {}
        for kind in TRANSACTION_TYPES:
            rows = sorted(
                ((category, amount) for (t, category), amount in totals.items() if t == kind),
                key=lambda row: row[1],
                reverse=True,
            )
            section_total = sum((amount for _, amount in rows), start=ZERO)
            sections[kind] = {
                "categories": [
                    {
                        "category": category,
                        "amount": format_amount(amount),
                        "percentage": _share(amount, section_total),
                    }
                    for category, amount in rows
                ],
                "total": format_amount(section_total),
            }
        return {
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
            **sections,
        }

    def cash_flow(
        self,
        user_id: str,
        period: Optional[str] = "monthly",
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Income/expense/net per bucket with a running cumulative net (default: last 30 days)."""
        period = period if period in CASH_FLOW_PERIODS else "monthly"
        if not (start and end):
            end = today or _today()
            start = end - timedelta(days=30)

        buckets: Dict[date, Dict[str, Decimal]] = {}
        for txn in self._between(user_id, start, end):
            key = bucket_start(txn.date, period)
            bucket = buckets.setdefault(key, {"income": ZERO, "expense": ZERO})
            bucket[txn.type] += txn.amount

        cash_flow = []
        cumulative = ZERO
        for key in sorted(buckets):
            bucket = buckets[key]
            net = bucket["income"] - bucket["expense"]
            cumulative += net
            cash_flow.append(
                {
                    "period": key.isoformat(),
                    "income": format_amount(bucket["income"]),
                    "expense": format_amount(bucket["expense"]),
                    "netCashFlow": format_amount(net),
                    "cumulativeCashFlow": format_amount(cumulative),
                }
            )
        return {
            "period": period,
            "dateRange": {"startDate": start.isoformat(), "endDate": end.isoformat()},
            "cashFlow": cash_flow,
        }
