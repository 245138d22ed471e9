"""Framework-agnostic record services for the finance tracker.

Each service keeps an in-memory cache hydrated from :class:`JSONStorage` and
writes a full snapshot back on every mutation. Besides CRUD they expose the
query primitives the budget engine consumes: ``find_transactions``,
``find_budgets_by_category``, ``find_user_by_id`` and ``persist_notification``.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, Generic, Iterable, List, Optional, TypeVar
from uuid import uuid4

from .exceptions import PersistenceError, RecordNotFoundError, ValidationError
from .models import (
    BUDGET_PERIODS,
    NOTIFICATION_TYPES,
    TRANSACTION_TYPES,
    Budget,
    Notification,
    Period,
    Transaction,
    User,
)
from .storage import JSONStorage
from .validators import (
    ensure_date_order,
    parse_amount,
    validate_bool,
    validate_date,
    validate_email,
    validate_enum,
    validate_optional_date,
    validate_optional_str,
    validate_required_str,
)

RecordT = TypeVar("RecordT", User, Budget, Transaction, Notification)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _RecordService(Generic[RecordT]):
    """Shared load/persist plumbing for a single JSON resource."""

    resource = ""
    label = "Record"
    record_type: type

    def __init__(self, storage: JSONStorage, resource: Optional[str] = None) -> None:
        self._storage = storage
        self._resource = resource or self.resource
        self._records: Dict[str, RecordT] = {}
        # Guards _records across request threads and background mail threads.
        self._lock = threading.RLock()
        self.load()  # Hydrate in-memory cache from persistence on construction.

    def load(self) -> None:
        raw_records = self._storage.load(self._resource)
        records = {payload["id"]: self.record_type.from_dict(payload) for payload in raw_records}
        with self._lock:
            self._records = records

    def _persist(self) -> None:
        try:
            with self._lock:
                snapshot = [record.to_dict() for record in self._records.values()]
                self._storage.save(self._resource, snapshot)
        except PersistenceError:
            raise
        except Exception as exc:  # pragma: no cover - defensive guard
            raise PersistenceError(f"Unexpected error while saving {self._resource}") from exc

    def _get_or_raise(self, record_id: str, user_id: Optional[str] = None) -> RecordT:
        record = self._records.get(record_id)
        # Records owned by another user are reported as missing.
        if record is None or (user_id is not None and record.user_id != user_id):
            raise RecordNotFoundError(f"{self.label} {record_id} not found")
        return record

    def _owned_by(self, user_id: str) -> List[RecordT]:
        with self._lock:
            return [record for record in self._records.values() if record.user_id == user_id]


class UserService(_RecordService[User]):
    """Minimal user directory used to resolve alert recipients."""

    resource = "users.json"
    label = "User"
    record_type = User

    def add(self, payload: Dict[str, object]) -> User:
        user = User(
            id=str(uuid4()),
            name=validate_required_str(payload.get("name"), "name", 100),
            email=validate_email(payload.get("email")),
        )
        with self._lock:
            self._records[user.id] = user
            self._persist()
        return user

    def get(self, user_id: str) -> User:
        return self._get_or_raise(user_id)

    def list(self) -> List[User]:
        with self._lock:
            users = list(self._records.values())
        return sorted(users, key=lambda user: user.name.lower())

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        return self._records.get(user_id)

    def _get_or_raise(self, record_id: str, user_id: Optional[str] = None) -> User:
        try:
            return self._records[record_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"User {record_id} not found") from exc


class BudgetService(_RecordService[Budget]):
    """Manages category budgets."""

    resource = "budgets.json"
    label = "Budget"
    record_type = Budget

    def add(self, user_id: str, payload: Dict[str, object]) -> Budget:
        data = self._validate_payload({**payload, "user_id": user_id})
        budget = Budget(**data)
        with self._lock:
            self._records[budget.id] = budget
            self._persist()
        return budget

    def update(self, user_id: str, budget_id: str, changes: Dict[str, object]) -> Budget:
        with self._lock:
            existing = self._get_or_raise(budget_id, user_id)
            # Merge existing serialised data with incoming changes to support partial updates.
            merged_payload = {**existing.to_dict(), **changes}
            data = self._validate_payload(merged_payload, current=existing)
            updated = Budget(**data)
            self._records[budget_id] = updated
            self._persist()
        return updated

    def delete(self, user_id: str, budget_id: str) -> None:
        with self._lock:
            self._get_or_raise(budget_id, user_id)
            del self._records[budget_id]
            self._persist()

    def get(self, user_id: str, budget_id: str) -> Budget:
        return self._get_or_raise(budget_id, user_id)

    def list(self, user_id: str) -> List[Budget]:
        return sorted(self._owned_by(user_id), key=lambda budget: budget.created_at, reverse=True)

    def find_budgets_by_category(self, user_id: str, category: str) -> List[Budget]:
        """Budgets whose category string equals ``category`` exactly."""
        return [budget for budget in self._owned_by(user_id) if budget.category == category]

    def _validate_payload(
        self, payload: Dict[str, object], *, current: Optional[Budget] = None
    ) -> Dict[str, object]:
        category = validate_required_str(payload.get("category"), "category", 50)
        start_date = (
            validate_date(payload["start_date"], "start_date")
            if payload.get("start_date") not in (None, "")
            else _utcnow().date()
        )
        end_date = validate_optional_date(payload.get("end_date"), "end_date")
        ensure_date_order(start_date, end_date, "start_date", "end_date")
        return {
            "id": current.id if current else str(uuid4()),
            "user_id": current.user_id if current else str(payload["user_id"]),
            "name": validate_optional_str(payload.get("name"), "name", 100) or category,
            "category": category,
            # Zero-amount budgets cannot produce a meaningful percentage.
            "amount": parse_amount(payload.get("amount"), "amount", allow_zero=False),
            "period": validate_enum(payload.get("period") or "monthly", "period", BUDGET_PERIODS),
            "start_date": start_date,
            "end_date": end_date,
            "is_recurring": validate_bool(payload.get("is_recurring", True), "is_recurring"),
            "description": validate_optional_str(payload.get("description"), "description", 500),
            "created_at": current.created_at if current else _utcnow(),
        }


class TransactionService(_RecordService[Transaction]):
    """Manages income and expense records."""

    resource = "transactions.json"
    label = "Transaction"
    record_type = Transaction

    def add(self, user_id: str, payload: Dict[str, object]) -> Transaction:
        data = self._validate_payload({**payload, "user_id": user_id})
        transaction = Transaction(**data)
        with self._lock:
            self._records[transaction.id] = transaction
            self._persist()
        return transaction

    def update(self, user_id: str, transaction_id: str, changes: Dict[str, object]) -> Transaction:
        with self._lock:
            existing = self._get_or_raise(transaction_id, user_id)
            merged_payload = {**existing.to_dict(), **changes}
            data = self._validate_payload(merged_payload, current=existing)
            updated = Transaction(**data)
            self._records[transaction_id] = updated
            self._persist()
        return updated

    def delete(self, user_id: str, transaction_id: str) -> None:
        with self._lock:
            self._get_or_raise(transaction_id, user_id)
            del self._records[transaction_id]
            self._persist()

    def get(self, user_id: str, transaction_id: str) -> Transaction:
        return self._get_or_raise(transaction_id, user_id)

    def list(self, user_id: str, **filters: object) -> List[Transaction]:
        """Return the user's transactions, newest first."""
        records = list(self._apply_filters(self._owned_by(user_id), filters))
        return sorted(records, key=lambda txn: (txn.date, txn.created_at), reverse=True)

    def find_transactions(
        self,
        user_id: str,
        category: str,
        txn_type: str,
        date_range: Optional[Period] = None,
    ) -> List[Transaction]:
        """Exact (case-sensitive) category match, inclusive date window."""
        return [
            txn
            for txn in self._owned_by(user_id)
            if txn.category == category
            and txn.type == txn_type
            and (date_range is None or date_range.contains(txn.date))
        ]

    def _validate_payload(
        self, payload: Dict[str, object], *, current: Optional[Transaction] = None
    ) -> Dict[str, object]:
        return {
            "id": current.id if current else str(uuid4()),
            "user_id": current.user_id if current else str(payload["user_id"]),
            "amount": parse_amount(payload.get("amount"), "amount"),
            "type": validate_enum(payload.get("type"), "type", TRANSACTION_TYPES),
            "category": validate_required_str(payload.get("category"), "category", 50),
            "date": (
                validate_date(payload["date"], "date")
                if payload.get("date") not in (None, "")
                else _utcnow().date()
            ),
            "description": validate_optional_str(payload.get("description"), "description", 200),
            "receipt_url": validate_optional_str(payload.get("receipt_url"), "receipt_url", 255),
            "created_at": current.created_at if current else _utcnow(),
        }

    def _apply_filters(
        self, records: Iterable[Transaction], filters: Dict[str, object]
    ) -> Iterable[Transaction]:
        # Pre-compute normalised filter values once to avoid repeated parsing per record.
        txn_type = (
            validate_enum(filters["type"], "type", TRANSACTION_TYPES)
            if filters.get("type") is not None
            else None
        )
        category = str(filters["category"]) if filters.get("category") is not None else None
        start: Optional[date] = (
            validate_date(filters["start"], "start") if filters.get("start") is not None else None
        )
        end: Optional[date] = (
            validate_date(filters["end"], "end") if filters.get("end") is not None else None
        )

        def matches(txn: Transaction) -> bool:
            if txn_type and txn.type != txn_type:
                return False
            if category is not None and txn.category != category:
                return False
            if start and txn.date < start:
                return False
            if end and txn.date > end:
                return False
            return True

        return filter(matches, records)


class NotificationService(_RecordService[Notification]):
    """Stores in-app notifications; records are never deleted."""

    resource = "notifications.json"
    label = "Notification"
    record_type = Notification

    def persist_notification(self, record: Dict[str, object]) -> Notification:
        message = record.get("message")
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message cannot be empty")
        notification = Notification(
            id=str(uuid4()),
            user_id=str(record["user_id"]),
            type=validate_enum(record.get("type"), "type", NOTIFICATION_TYPES),
            message=message,
            related_entity_id=record.get("related_entity_id"),  # type: ignore[arg-type]
            related_entity_type=record.get("related_entity_type"),  # type: ignore[arg-type]
            created_at=_utcnow(),
        )
        with self._lock:
            self._records[notification.id] = notification
            self._persist()
        return notification

    def list(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        records = [n for n in self._owned_by(user_id) if not (unread_only and n.is_read)]
        return sorted(records, key=lambda n: n.created_at, reverse=True)

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        with self._lock:
            existing = self._get_or_raise(notification_id, user_id)
            updated = replace(existing, is_read=True)
            self._records[notification_id] = updated
            self._persist()
        return updated
