"""Spending-against-budget for a budget's current window."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .aggregation import TransactionQuery, sum_expenses
from .models import Budget, BudgetProgress
from .periods import resolve_period

HUNDRED = Decimal("100")


def spend_ratio(spent: Decimal, amount: Decimal) -> Decimal:
    """``spent`` as an unrounded percentage of ``amount``.

    A zero amount reads as 0% until anything is spent, then as 100%.
    """
    if amount == 0:
        return Decimal("0") if spent <= 0 else HUNDRED
    return spent * HUNDRED / amount


def percentage_of(spent: Decimal, amount: Decimal) -> Decimal:
    """Display form of :func:`spend_ratio`, rounded to two places."""
    return spend_ratio(spent, amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_progress(
    budget: Budget, query: TransactionQuery, now: Optional[datetime] = None
) -> BudgetProgress:
    """Compute spent/remaining/percentage for ``budget`` at ``now``.

    The budget's stored start/end dates override the calendar window of its
    period kind. Reads only; calling it twice on unchanged data gives equal
    results.
    """
    window = resolve_period(budget.period, budget.start_date, budget.end_date, now)
    total_spent = sum_expenses(query, budget.user_id, budget.category, window)
    return BudgetProgress(
        total_spent=total_spent,
        remaining=budget.amount - total_spent,
        percentage_spent=percentage_of(total_spent, budget.amount),
        is_overspent=total_spent > budget.amount,
        period=window,
    )
