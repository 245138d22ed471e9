"""Console interface for the finance tracker."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from finance_core.config import MailSettings, data_dir as configured_data_dir, load_environment
from finance_core.exceptions import PersistenceError, RecordNotFoundError, ValidationError
from finance_core.models import Budget, Notification, Transaction
from finance_core.notifications import BudgetMonitor, NotificationDispatcher
from finance_core.progress import compute_progress
from finance_core.reports import ReportService
from finance_core.services import (
    BudgetService,
    NotificationService,
    TransactionService,
    UserService,
)
from finance_core.storage import JSONStorage


class Services:
    """Services wired over one data directory; email is sent inline."""

    def __init__(self, data_dir: Path, mail_settings: Optional[MailSettings] = None) -> None:
        storage = JSONStorage(data_dir)
        self.users = UserService(storage)
        self.budgets = BudgetService(storage)
        self.transactions = TransactionService(storage)
        self.notifications = NotificationService(storage)
        self.reports = ReportService(self.transactions)
        dispatcher = NotificationDispatcher(
            self.users, self.notifications, mail_settings or MailSettings.from_env()
        )
        self.monitor = BudgetMonitor(self.budgets, self.transactions, dispatcher)


def _parse_date(value: str) -> str:
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{value}'. Expected format YYYY-MM-DD."
        ) from exc
    return value


def _parse_amount(value: str) -> str:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError("Amount must be a numeric value") from exc
    if amount < 0:
        raise argparse.ArgumentTypeError("Amount must not be negative")
    return value


def _cleaned(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _format_budget(budget: Budget) -> str:
    window = f"{budget.start_date.isoformat()} .. {budget.end_date.isoformat() if budget.end_date else '-'}"
    return (
        f"[{budget.id}] {budget.name} ({budget.category}) {budget.amount:.2f} {budget.period}\n"
        f"  Window: {window} | Recurring: {'yes' if budget.is_recurring else 'no'}\n"
    )


def _format_transaction(txn: Transaction) -> str:
    return (
        f"[{txn.id}] {txn.date.isoformat()} {txn.type} {txn.amount:.2f}\n"
        f"  Category: {txn.category} | Description: {txn.description or '-'}\n"
    )


def _format_notification(notification: Notification) -> str:
    marker = " " if notification.is_read else "*"
    return f"{marker} [{notification.id}] {notification.type}: {notification.message}"


def handle_user(args: argparse.Namespace, services: Services) -> None:
    if args.command == "add":
        user = services.users.add({"name": args.name, "email": args.email})
        print(f"User added: [{user.id}] {user.name} <{user.email or '-'}>")
    elif args.command == "list":
        for user in services.users.list():
            print(f"[{user.id}] {user.name} <{user.email or '-'}>")


def handle_budget(args: argparse.Namespace, services: Services) -> None:
    user_id = services.users.get(args.user).id
    if args.command == "add":
        payload = _cleaned({
            "name": args.name,
            "category": args.category,
            "amount": args.amount,
            "period": args.period,
            "start_date": args.start_date,
            "end_date": args.end_date,
            "description": args.description,
        })
        payload["is_recurring"] = not args.once
        budget = services.budgets.add(user_id, payload)
        print("Budget added:\n" + _format_budget(budget))
    elif args.command == "list":
        budgets = services.budgets.list(user_id)
        if not budgets:
            print("No budgets found.")
            return
        for budget in budgets:
            print(_format_budget(budget))
    elif args.command == "edit":
        changes = _cleaned({
            "name": args.name,
            "category": args.category,
            "amount": args.amount,
            "period": args.period,
            "start_date": args.start_date,
            "end_date": args.end_date,
            "description": args.description,
        })
        if args.clear_end_date:
            changes["end_date"] = None
        budget = services.budgets.update(user_id, args.id, changes)
        print("Budget updated:\n" + _format_budget(budget))
    elif args.command == "delete":
        services.budgets.delete(user_id, args.id)
        print(f"Budget {args.id} deleted.")
    elif args.command == "progress":
        budget = services.budgets.get(user_id, args.id)
        progress = compute_progress(budget, services.transactions)
        print(json.dumps({"budget": budget.to_dict(), **progress.to_dict()}, indent=2))


def handle_transaction(args: argparse.Namespace, services: Services) -> None:
    user_id = services.users.get(args.user).id
    if args.command == "add":
        payload = _cleaned({
            "amount": args.amount,
            "type": args.type,
            "category": args.category,
            "date": args.date,
            "description": args.description,
            "receipt_url": args.receipt,
        })
        transaction = services.transactions.add(user_id, payload)
        print("Transaction added:\n" + _format_transaction(transaction))
        _report_alerts(services.monitor.check_transaction(transaction))
    elif args.command == "list":
        filters = _cleaned({
            "type": args.type,
            "category": args.category,
            "start": args.start,
            "end": args.end,
        })
        transactions = services.transactions.list(user_id, **filters)
        if not transactions:
            print("No transactions found.")
            return
        print(f"Found {len(transactions)} transactions:")
        for transaction in transactions:
            print(_format_transaction(transaction))
    elif args.command == "edit":
        changes = _cleaned({
            "amount": args.amount,
            "type": args.type,
            "category": args.category,
            "date": args.date,
            "description": args.description,
            "receipt_url": args.receipt,
        })
        transaction = services.transactions.update(user_id, args.id, changes)
        print("Transaction updated:\n" + _format_transaction(transaction))
        _report_alerts(services.monitor.check_transaction(transaction))
    elif args.command == "delete":
        services.transactions.delete(user_id, args.id)
        print(f"Transaction {args.id} deleted.")


def _report_alerts(notifications: List[Notification]) -> None:
    for notification in notifications:
        print(_format_notification(notification))


def handle_notification(args: argparse.Namespace, services: Services) -> None:
    user_id = services.users.get(args.user).id
    if args.command == "list":
        notifications = services.notifications.list(user_id, unread_only=args.unread)
        if not notifications:
            print("No notifications.")
            return
        for notification in notifications:
            print(_format_notification(notification))
    elif args.command == "read":
        notification = services.notifications.mark_read(user_id, args.id)
        print(_format_notification(notification))


def handle_report(args: argparse.Namespace, services: Services) -> None:
    user_id = services.users.get(args.user).id
    start = date.fromisoformat(args.start) if getattr(args, "start", None) else None
    end = date.fromisoformat(args.end) if getattr(args, "end", None) else None
    if args.command == "summary":
        report = services.reports.summary(user_id, start, end)
    elif args.command == "monthly":
        report = services.reports.monthly(user_id, args.year)
    elif args.command == "category":
        report = services.reports.by_category(user_id, start, end, args.type)
    else:
        report = services.reports.cash_flow(user_id, args.period, start, end)
    print(json.dumps(report, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Finance Tracker CLI")
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory to store JSON data (default: $FINANCE_TRACKER_DATA_DIR or ./data)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="entity", required=True)

    user_parser = subparsers.add_parser("user", help="Manage users")
    user_sub = user_parser.add_subparsers(dest="command", required=True)
    user_add = user_sub.add_parser("add", help="Add a user")
    user_add.add_argument("name")
    user_add.add_argument("--email")
    user_sub.add_parser("list", help="List users")

    budget_parser = subparsers.add_parser("budget", help="Manage budgets")
    budget_parser.add_argument("--user", required=True, help="Owning user id")
    budget_sub = budget_parser.add_subparsers(dest="command", required=True)

    budget_add = budget_sub.add_parser("add", help="Add a budget")
    budget_add.add_argument("category")
    budget_add.add_argument("amount", type=_parse_amount)
    budget_add.add_argument("--period", choices=["daily", "weekly", "monthly", "yearly"])
    budget_add.add_argument("--name")
    budget_add.add_argument("--start-date", type=_parse_date)
    budget_add.add_argument("--end-date", type=_parse_date)
    budget_add.add_argument("--description")
    budget_add.add_argument("--once", action="store_true", help="Mark the budget as non-recurring")

    budget_sub.add_parser("list", help="List budgets")

    budget_edit = budget_sub.add_parser("edit", help="Edit a budget")
    budget_edit.add_argument("id")
    budget_edit.add_argument("--category")
    budget_edit.add_argument("--amount", type=_parse_amount)
    budget_edit.add_argument("--period", choices=["daily", "weekly", "monthly", "yearly"])
    budget_edit.add_argument("--name")
    budget_edit.add_argument("--start-date", type=_parse_date)
    budget_edit.add_argument("--end-date", type=_parse_date)
    budget_edit.add_argument("--clear-end-date", action="store_true")
    budget_edit.add_argument("--description")

    budget_delete = budget_sub.add_parser("delete", help="Delete a budget")
    budget_delete.add_argument("id")

    budget_progress = budget_sub.add_parser("progress", help="Show spending against a budget")
    budget_progress.add_argument("id")

    txn_parser = subparsers.add_parser("transaction", help="Manage transactions")
    txn_parser.add_argument("--user", required=True, help="Owning user id")
    txn_sub = txn_parser.add_subparsers(dest="command", required=True)

    txn_add = txn_sub.add_parser("add", help="Record a transaction")
    txn_add.add_argument("type", choices=["income", "expense"])
    txn_add.add_argument("amount", type=_parse_amount)
    txn_add.add_argument("category")
    txn_add.add_argument("--date", type=_parse_date)
    txn_add.add_argument("--description")
    txn_add.add_argument("--receipt")

    txn_list = txn_sub.add_parser("list", help="List transactions")
    txn_list.add_argument("--type", choices=["income", "expense"])
    txn_list.add_argument("--category")
    txn_list.add_argument("--start", type=_parse_date)
    txn_list.add_argument("--end", type=_parse_date)

    txn_edit = txn_sub.add_parser("edit", help="Edit a transaction")
    txn_edit.add_argument("id")
    txn_edit.add_argument("--type", choices=["income", "expense"])
    txn_edit.add_argument("--amount", type=_parse_amount)
    txn_edit.add_argument("--category")
    txn_edit.add_argument("--date", type=_parse_date)
    txn_edit.add_argument("--description")
    txn_edit.add_argument("--receipt")

    txn_delete = txn_sub.add_parser("delete", help="Delete a transaction")
    txn_delete.add_argument("id")

    notif_parser = subparsers.add_parser("notification", help="Review notifications")
    notif_parser.add_argument("--user", required=True, help="Owning user id")
    notif_sub = notif_parser.add_subparsers(dest="command", required=True)
    notif_list = notif_sub.add_parser("list", help="List notifications")
    notif_list.add_argument("--unread", action="store_true")
    notif_read = notif_sub.add_parser("read", help="Mark a notification as read")
    notif_read.add_argument("id")

    report_parser = subparsers.add_parser("report", help="Aggregated reports")
    report_parser.add_argument("--user", required=True, help="Owning user id")
    report_sub = report_parser.add_subparsers(dest="command", required=True)
    report_summary = report_sub.add_parser("summary", help="Income/expense summary")
    report_summary.add_argument("--start", type=_parse_date)
    report_summary.add_argument("--end", type=_parse_date)
    report_monthly = report_sub.add_parser("monthly", help="Month-by-month totals for a year")
    report_monthly.add_argument("--year", type=int)
    report_category = report_sub.add_parser("category", help="Totals per category")
    report_category.add_argument("--start", type=_parse_date)
    report_category.add_argument("--end", type=_parse_date)
    report_category.add_argument("--type", choices=["income", "expense"])
    report_cashflow = report_sub.add_parser("cashflow", help="Cash flow per period")
    report_cashflow.add_argument("--period", choices=["daily", "weekly", "monthly"], default="monthly")
    report_cashflow.add_argument("--start", type=_parse_date)
    report_cashflow.add_argument("--end", type=_parse_date)

    return parser


HANDLERS = {
    "user": handle_user,
    "budget": handle_budget,
    "transaction": handle_transaction,
    "notification": handle_notification,
    "report": handle_report,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_environment()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        services = Services(args.data_dir or configured_data_dir())
        HANDLERS[args.entity](args, services)
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except RecordNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except PersistenceError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
