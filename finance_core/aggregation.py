"""Sum expense amounts for a (user, category, window) tuple."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Protocol

from .models import Period, Transaction

ZERO = Decimal("0.00")


class TransactionQuery(Protocol):
    def find_transactions(
        self,
        user_id: str,
        category: str,
        txn_type: str,
        date_range: Optional[Period] = None,
    ) -> List[Transaction]:
        ...


def sum_expenses(query: TransactionQuery, user_id: str, category: str, window: Period) -> Decimal:
    """Exact Decimal total of the user's expenses in ``category`` during ``window``.

    The query layer may return a superset; the window and matching rules are
    enforced here as well so the total never depends on how it filters.
    """
    transactions = query.find_transactions(user_id, category, "expense", window)
    return sum(
        (
            txn.amount
            for txn in transactions
            if txn.user_id == user_id
            and txn.is_expense
            and txn.category == category
            and window.contains(txn.date)
        ),
        start=ZERO,
    )
