from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from finance_core.models import Budget, Notification, Period, Transaction, User
from finance_core.storage import JSONStorage

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_budget(
    amount="100",
    *,
    category="Food",
    period="monthly",
    start=date(2024, 2, 1),
    end: Optional[date] = None,
    user_id="u1",
    budget_id="b1",
) -> Budget:
    return Budget(
        id=budget_id,
        user_id=user_id,
        name=category,
        category=category,
        amount=Decimal(amount),
        period=period,
        start_date=start,
        end_date=end,
        created_at=CREATED,
    )


_txn_counter = iter(range(1, 10_000))


def make_txn(
    amount,
    day: date,
    *,
    category="Food",
    txn_type="expense",
    user_id="u1",
) -> Transaction:
    return Transaction(
        id=f"t{next(_txn_counter)}",
        user_id=user_id,
        amount=Decimal(str(amount)),
        type=txn_type,
        category=category,
        date=day,
        created_at=CREATED,
    )


class FakeTransactions:
    """Query double that returns every stored transaction, ignoring filters."""

    def __init__(self, transactions: List[Transaction]) -> None:
        self.transactions = list(transactions)
        self.calls = 0

    def find_transactions(self, user_id, category, txn_type, date_range: Optional[Period] = None):
        self.calls += 1
        return list(self.transactions)


class FakeUsers:
    def __init__(self, *users: User) -> None:
        self._users = {user.id: user for user in users}

    def find_user_by_id(self, user_id):
        return self._users.get(user_id)


class FakeNotificationStore:
    def __init__(self, fail: bool = False) -> None:
        self.records: List[Notification] = []
        self.fail = fail

    def persist_notification(self, record: Dict[str, object]) -> Notification:
        if self.fail:
            raise RuntimeError("database unavailable")
        notification = Notification(
            id=f"n{len(self.records) + 1}",
            user_id=str(record["user_id"]),
            type=str(record["type"]),
            message=str(record["message"]),
            related_entity_id=record.get("related_entity_id"),
            related_entity_type=record.get("related_entity_type"),
            created_at=CREATED,
        )
        self.records.append(notification)
        return notification


class FakeBudgets:
    def __init__(self, *budgets: Budget) -> None:
        self.budgets = list(budgets)

    def find_budgets_by_category(self, user_id, category):
        return [b for b in self.budgets if b.user_id == user_id and b.category == category]


@pytest.fixture
def storage(tmp_path):
    return JSONStorage(tmp_path / "data")


@pytest.fixture
def alice():
    return User(id="u1", name="Alice", email="alice@example.com")
