"""Data models for the finance tracker domain."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

__all__ = [
    "Budget",
    "BudgetProgress",
    "Notification",
    "Period",
    "Transaction",
    "User",
    "format_amount",
    "isoformat_utc",
    "parse_date",
    "parse_datetime",
]

BUDGET_PERIODS = ("daily", "weekly", "monthly", "yearly")
TRANSACTION_TYPES = ("income", "expense")
NOTIFICATION_TYPES = ("budget_overrun", "system", "reminder")


def isoformat_utc(dt: datetime, timespec: str = "seconds") -> str:
    """Return an ISO 8601 string with trailing Z for UTC-aware datetimes."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    iso = dt.isoformat(timespec=timespec)
    # datetime.isoformat renders +00:00 for UTC; replace with the shorter Z form.
    return iso.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Treat naive datetimes as UTC to avoid accidental timezone drift.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string; full datetimes are truncated to their UTC date."""
    value = value.strip()
    if len(value) == 10:
        return date.fromisoformat(value)
    return parse_datetime(value).date()


def format_amount(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _optional_date(raw: Optional[str]) -> Optional[date]:
    return parse_date(raw) if raw else None


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(id=data["id"], name=data["name"], email=data.get("email"))


@dataclass(frozen=True)
class Budget:
    id: str
    user_id: str
    category: str
    amount: Decimal
    period: str
    start_date: date
    created_at: datetime
    name: Optional[str] = None
    end_date: Optional[date] = None
    is_recurring: bool = True
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the budget to JSON-friendly natives."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "category": self.category,
            "amount": format_amount(self.amount),
            "period": self.period,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_recurring": self.is_recurring,
            "description": self.description,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Budget":
        """Hydrate a Budget from JSON-native data."""
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data.get("name"),
            category=data["category"],
            amount=Decimal(str(data["amount"])),
            period=data["period"],
            start_date=parse_date(data["start_date"]),
            end_date=_optional_date(data.get("end_date")),
            is_recurring=bool(data.get("is_recurring", True)),
            description=data.get("description"),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: str
    amount: Decimal
    type: str
    category: str
    date: date
    created_at: datetime
    description: Optional[str] = None
    receipt_url: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.type == "expense"

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the transaction to JSON-friendly natives."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": format_amount(self.amount),
            "type": self.type,
            "category": self.category,
            "date": self.date.isoformat(),
            "description": self.description,
            "receipt_url": self.receipt_url,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """Hydrate a Transaction from JSON-native data."""
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            amount=Decimal(str(data["amount"])),
            type=data["type"],
            category=data["category"],
            date=parse_date(data["date"]),
            description=data.get("description"),
            receipt_url=data.get("receipt_url"),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: str
    type: str
    message: str
    created_at: datetime
    is_read: bool = False
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "message": self.message,
            "is_read": self.is_read,
            "related_entity_id": self.related_entity_id,
            "related_entity_type": self.related_entity_type,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=data["type"],
            message=data["message"],
            is_read=bool(data.get("is_read", False)),
            related_entity_id=data.get("related_entity_id"),
            related_entity_type=data.get("related_entity_type"),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Period:
    """Concrete, inclusive window a budget's spending is measured over."""

    start: datetime
    end: datetime

    def contains(self, day: date) -> bool:
        return self.start.date() <= day <= self.end.date()

    def to_dict(self) -> Dict[str, str]:
        return {
            "startDate": isoformat_utc(self.start, "milliseconds"),
            "endDate": isoformat_utc(self.end, "milliseconds"),
        }


@dataclass(frozen=True)
class BudgetProgress:
    total_spent: Decimal
    remaining: Decimal
    percentage_spent: Decimal
    is_overspent: bool
    period: Period

    def to_dict(self) -> Dict[str, Any]:
        """Render the wire shape used by the budget progress endpoint."""
        return {
            "progress": {
                "totalSpent": format_amount(self.total_spent),
                "remaining": format_amount(self.remaining),
                "percentageSpent": format_amount(self.percentage_spent),
                "isOverspent": self.is_overspent,
            },
            "period": self.period.to_dict(),
        }
