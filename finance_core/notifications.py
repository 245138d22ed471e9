"""Budget threshold alerts: in-app notifications plus best-effort email."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Protocol

from .aggregation import TransactionQuery
from .config import MailSettings
from .mailer import DeliveryResult, MailChain
from .models import Budget, Notification, Transaction, User
from .progress import compute_progress, percentage_of, spend_ratio

logger = logging.getLogger(__name__)

APPROACHING_THRESHOLD = Decimal("80")
EXCEEDED_THRESHOLD = Decimal("100")

APPROACHING_SUBJECT = "Budget Alert: Approaching your limit"
EXCEEDED_SUBJECT = "Budget Alert: You've exceeded your budget"


class UserLookup(Protocol):
    def find_user_by_id(self, user_id: str) -> Optional[User]:
        ...


class NotificationStore(Protocol):
    def persist_notification(self, record: Dict[str, object]) -> Notification:
        ...


class BudgetLookup(Protocol):
    def find_budgets_by_category(self, user_id: str, category: str) -> List[Budget]:
        ...


def threshold_band(percentage: Decimal) -> Optional[str]:
    """``"exceeded"`` at 100%+, ``"approaching"`` from 80%, otherwise ``None``.

    Expects the unrounded ratio from :func:`spend_ratio`.
    """
    if percentage >= EXCEEDED_THRESHOLD:
        return "exceeded"
    if percentage >= APPROACHING_THRESHOLD:
        return "approaching"
    return None


def approaching_message(budget: Budget, percentage: Decimal) -> str:
    return (
        f"You've used {percentage:.2f}% of your {budget.category} budget "
        f"for this {budget.period} period."
    )


def exceeded_message(budget: Budget, spent: Decimal, percentage: Decimal) -> str:
    return (
        f"Alert: You've exceeded your {budget.category} budget for this {budget.period} period! "
        f"You've spent {spent:.2f} which is {percentage - EXCEEDED_THRESHOLD:.2f}% over "
        f"your budget of {budget.amount:.2f}."
    )


class NotificationDispatcher:
    """Turn a budget's spend level into a notification record and an email.

    Every qualifying evaluation writes a new record; repeated checks inside
    the same band are not deduplicated. Email goes out on ``executor`` when
    one is given so callers never wait on provider round-trips.
    """

    def __init__(
        self,
        users: UserLookup,
        notifications: NotificationStore,
        mail_settings: Optional[MailSettings] = None,
        *,
        executor: Optional[Executor] = None,
        chain_factory: Callable[[MailSettings], MailChain] = MailChain.from_settings,
    ) -> None:
        self._users = users
        self._notifications = notifications
        self._mail_settings = mail_settings or MailSettings()
        self._executor = executor
        self._chain_factory = chain_factory

    def evaluate_and_notify(
        self, user_id: str, budget: Budget, total_spent: Decimal
    ) -> Optional[Notification]:
        """Create an alert for ``budget`` if spending crossed a threshold.

        Returns the stored notification, or ``None`` when no alert applies or
        the user has no email address. Storage errors propagate.
        """
        user = self._users.find_user_by_id(user_id)
        if user is None or not user.email:
            logger.warning(
                "Cannot send budget notification: user %s not found or has no email address",
                user_id,
            )
            return None

        percentage = percentage_of(total_spent, budget.amount)
        logger.debug(
            "Checking budget %s for %s (%.2f%% spent)", budget.id, user.email, percentage
        )
        band = threshold_band(spend_ratio(total_spent, budget.amount))
        if band is None:
            return None

        if band == "approaching":
            message = approaching_message(budget, percentage)
            subject = APPROACHING_SUBJECT
        else:
            message = exceeded_message(budget, total_spent, percentage)
            subject = EXCEEDED_SUBJECT

        notification = self._notifications.persist_notification(
            {
                "user_id": user_id,
                "type": "budget_overrun",
                "message": message,
                "related_entity_id": budget.id,
                "related_entity_type": "Budget",
            }
        )
        self._dispatch_email(user.email, subject, message)
        logger.info("Budget %s notification recorded for %s", band, user.email)
        return notification

    def send_email_safely(
        self, to_address: str, subject: str, body_text: str
    ) -> Optional[DeliveryResult]:
        """Send through a freshly built chain; any failure is logged and yields ``None``."""
        try:
            chain = self._chain_factory(self._mail_settings)
            return chain.send_email(to_address, subject, body_text)
        except Exception:
            logger.exception("Error sending email notification to %s", to_address)
            return None

    def _dispatch_email(self, to_address: str, subject: str, body_text: str) -> None:
        if self._executor is None:
            self.send_email_safely(to_address, subject, body_text)
            return
        future: Future = self._executor.submit(
            self.send_email_safely, to_address, subject, body_text
        )
        future.add_done_callback(_log_unexpected_failure)


def _log_unexpected_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Background email task crashed: %s", exc)


class BudgetMonitor:
    """Re-check every budget a transaction write can affect.

    Only expense transactions are considered. Any failure is logged and
    swallowed so the triggering write still succeeds.
    """

    def __init__(
        self,
        budgets: BudgetLookup,
        transactions: TransactionQuery,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._budgets = budgets
        self._transactions = transactions
        self._dispatcher = dispatcher

    def check_transaction(
        self, transaction: Transaction, now: Optional[datetime] = None
    ) -> List[Notification]:
        created: List[Notification] = []
        if not transaction.is_expense:
            return created
        try:
            budgets = self._budgets.find_budgets_by_category(
                transaction.user_id, transaction.category
            )
            for budget in budgets:
                progress = compute_progress(budget, self._transactions, now)
                notification = self._dispatcher.evaluate_and_notify(
                    transaction.user_id, budget, progress.total_spent
                )
                if notification is not None:
                    created.append(notification)
        except Exception:
            logger.exception("Error checking budget notifications for %s", transaction.id)
        return created
