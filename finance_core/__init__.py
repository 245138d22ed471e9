"""Core business logic package for the finance tracker."""

from .aggregation import sum_expenses
from .exceptions import DeliveryError, PersistenceError, RecordNotFoundError, ValidationError
from .mailer import DeliveryResult, MailChain
from .models import Budget, BudgetProgress, Notification, Period, Transaction, User
from .notifications import BudgetMonitor, NotificationDispatcher
from .periods import resolve_period
from .progress import compute_progress
from .reports import ReportService
from .services import BudgetService, NotificationService, TransactionService, UserService
from .storage import JSONStorage

__all__ = [
    "Budget",
    "BudgetProgress",
    "Notification",
    "Period",
    "Transaction",
    "User",
    "BudgetService",
    "NotificationService",
    "TransactionService",
    "UserService",
    "ReportService",
    "JSONStorage",
    "BudgetMonitor",
    "NotificationDispatcher",
    "DeliveryResult",
    "MailChain",
    "resolve_period",
    "sum_expenses",
    "compute_progress",
    "DeliveryError",
    "PersistenceError",
    "ValidationError",
    "RecordNotFoundError",
]
