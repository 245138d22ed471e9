"""Flask REST API exposing the finance tracker services."""

from __future__ import annotations

import atexit
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from finance_core.config import MailSettings, data_dir as configured_data_dir, load_environment
from finance_core.exceptions import PersistenceError, RecordNotFoundError, ValidationError
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
from finance_core.validators import validate_date


def create_app(
    data_dir: Optional[Path] = None,
    mail_settings: Optional[MailSettings] = None,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Flask:
    load_environment()
    app = Flask(__name__)

    env_name = os.getenv("FINANCE_TRACKER_ENV", "prod").lower()
    if env_name in {"dev", "development"}:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    else:
        allowed_origins = os.getenv("FINANCE_TRACKER_ALLOWED_ORIGINS")
        if allowed_origins:
            origins = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]
            CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=True)
        else:
            CORS(app)

    storage = JSONStorage(Path(data_dir or configured_data_dir()))
    user_service = UserService(storage)
    budget_service = BudgetService(storage)
    transaction_service = TransactionService(storage)
    notification_service = NotificationService(storage)
    reports = ReportService(transaction_service)

    if dispatcher is None:
        # Email goes out in the background so responses never wait on SMTP.
        mail_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="mail")
        atexit.register(mail_executor.shutdown, wait=False)
        dispatcher = NotificationDispatcher(
            user_service,
            notification_service,
            mail_settings or MailSettings.from_env(),
            executor=mail_executor,
        )
    monitor = BudgetMonitor(budget_service, transaction_service, dispatcher)

    def _success(payload: Any, status: int = 200):
        if status == 204:
            return ("", status)
        return jsonify(payload), status

    def _handle_error(exc: Exception, status: int, message: str):
        app.logger.error("%s: %s", message, exc)
        return jsonify({"error": message, "details": str(exc)}), status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return _handle_error(exc, 400, "Validation error")

    @app.errorhandler(RecordNotFoundError)
    def handle_not_found(exc: RecordNotFoundError):
        return _handle_error(exc, 404, "Record not found")

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _handle_error(exc, 500, "Persistence error")

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON body")
        return data

    def _optional_date_arg(name: str):
        raw = request.args.get(name)
        return validate_date(raw, name) if raw else None

    @app.before_request
    def resolve_user():
        g.user_id = None
        if request.method == "OPTIONS" or request.path == "/" or request.path.startswith("/users"):
            return None
        user_id = request.headers.get("X-User-Id")
        if not user_id:
            raise ValidationError("X-User-Id header is required")
        # Raises RecordNotFoundError for unknown users.
        g.user_id = user_service.get(user_id).id
        return None

    @app.get("/")
    def index():
        return _success({"message": "Welcome to the Finance Tracker API"})

    # Users ---------------------------------------------------------------
    @app.get("/users")
    def list_users():
        return _success({"items": [user.to_dict() for user in user_service.list()]})

    @app.post("/users")
    def create_user():
        user = user_service.add(_json_body())
        return _success(user.to_dict(), 201)

    @app.get("/users/<user_id>")
    def get_user(user_id: str):
        return _success(user_service.get(user_id).to_dict())

    # Budgets -------------------------------------------------------------
    @app.get("/budgets")
    def list_budgets():
        budgets = budget_service.list(g.user_id)
        return _success({"items": [budget.to_dict() for budget in budgets]})

    @app.post("/budgets")
    def create_budget():
        budget = budget_service.add(g.user_id, _json_body())
        return _success(budget.to_dict(), 201)

    @app.get("/budgets/<budget_id>")
    def get_budget(budget_id: str):
        return _success(budget_service.get(g.user_id, budget_id).to_dict())

    @app.put("/budgets/<budget_id>")
    def update_budget(budget_id: str):
        budget = budget_service.update(g.user_id, budget_id, _json_body())
        return _success(budget.to_dict())

    @app.delete("/budgets/<budget_id>")
    def delete_budget(budget_id: str):
        budget_service.delete(g.user_id, budget_id)
        return _success({}, 204)

    @app.get("/budgets/<budget_id>/progress")
    def budget_progress(budget_id: str):
        budget = budget_service.get(g.user_id, budget_id)
        progress = compute_progress(budget, transaction_service)
        return _success({"budget": budget.to_dict(), **progress.to_dict()})

    # Transactions --------------------------------------------------------
    @app.get("/transactions")
    def list_transactions():
        filters = {
            "type": request.args.get("type") or None,
            "category": request.args.get("category") or None,
            "start": _optional_date_arg("start"),
            "end": _optional_date_arg("end"),
        }
        applied = {k: v for k, v in filters.items() if v is not None}
        transactions = transaction_service.list(g.user_id, **applied)
        return _success({"items": [txn.to_dict() for txn in transactions]})

    @app.get("/transactions/summary")
    def transactions_summary():
        summary = reports.summary(
            g.user_id, _optional_date_arg("startDate"), _optional_date_arg("endDate")
        )
        return _success(summary)

    @app.post("/transactions")
    def create_transaction():
        transaction = transaction_service.add(g.user_id, _json_body())
        monitor.check_transaction(transaction)
        return _success(transaction.to_dict(), 201)

    @app.get("/transactions/<transaction_id>")
    def get_transaction(transaction_id: str):
        return _success(transaction_service.get(g.user_id, transaction_id).to_dict())

    @app.put("/transactions/<transaction_id>")
    def update_transaction(transaction_id: str):
        transaction = transaction_service.update(g.user_id, transaction_id, _json_body())
        monitor.check_transaction(transaction)
        return _success(transaction.to_dict())

    @app.delete("/transactions/<transaction_id>")
    def delete_transaction(transaction_id: str):
        transaction_service.delete(g.user_id, transaction_id)
        return _success({}, 204)

    # Reports -------------------------------------------------------------
    @app.get("/reports/monthly")
    def monthly_report():
        year = request.args.get("year")
        if year is not None and not year.isdigit():
            raise ValidationError("year must be a number")
        return _success(reports.monthly(g.user_id, int(year) if year else None))

    @app.get("/reports/category")
    def category_report():
        txn_type = request.args.get("type")
        # Unknown types fall back to both sections.
        if txn_type and txn_type.lower() not in {"income", "expense"}:
            txn_type = None
        return _success(
            reports.by_category(
                g.user_id,
                _optional_date_arg("startDate"),
                _optional_date_arg("endDate"),
                txn_type,
            )
        )

    @app.get("/reports/cashflow")
    def cash_flow_report():
        return _success(
            reports.cash_flow(
                g.user_id,
                request.args.get("period"),
                _optional_date_arg("startDate"),
                _optional_date_arg("endDate"),
            )
        )

    # Notifications -------------------------------------------------------
    @app.get("/notifications")
    def list_notifications():
        unread_only = request.args.get("unread", "").lower() == "true"
        notifications = notification_service.list(g.user_id, unread_only=unread_only)
        return _success({"items": [n.to_dict() for n in notifications]})

    @app.put("/notifications/<notification_id>/read")
    def mark_notification_read(notification_id: str):
        notification = notification_service.mark_read(g.user_id, notification_id)
        return _success(notification.to_dict())

    return app
