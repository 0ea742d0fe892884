"""Flask REST API exposing the ledger services."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from ledger_core.config import Settings
from ledger_core.context import open_ledger
from ledger_core.exceptions import (
    ConflictError,
    PartialApplicationWarning,
    RecordNotFoundError,
    StoreUnavailable,
    ValidationError,
)
from ledger_core.models import format_money
from ledger_core.periods import ALL_TIME
from ledger_core.services import Clock
from ledger_core.validators import validate_bool


def create_app(
    data_dir: Optional[Path] = None,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> Flask:
    app = Flask(__name__)
    settings = settings or Settings.from_env()
    app.logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    if settings.is_dev:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    elif settings.allowed_origins:
        CORS(app, resources={r"/*": {"origins": list(settings.allowed_origins)}}, supports_credentials=True)
    else:
        CORS(app)

    ledger = open_ledger(Path(data_dir or settings.data_dir), settings.roster, clock)

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

    @app.errorhandler(ConflictError)
    def handle_conflict(exc: ConflictError):
        return _handle_error(exc, 409, "Conflict")

    @app.errorhandler(StoreUnavailable)
    def handle_store_unavailable(exc: StoreUnavailable):
        return _handle_error(exc, 503, "Store unavailable")

    @app.errorhandler(PartialApplicationWarning)
    def handle_partial(exc: PartialApplicationWarning):
        app.logger.warning("Partial application: %s (cause: %s)", exc, exc.cause)
        payload = {
            "warning": "Partial application",
            "details": str(exc),
            "cause": str(exc.cause) if exc.cause else None,
            "record": exc.record.to_dict() if exc.record is not None else None,
        }
        return jsonify(payload), 207

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON body")
        return data

    def _clean_filters(raw: Dict[str, Optional[str]]) -> Dict[str, str]:
        return {k: v for k, v in raw.items() if v not in (None, "")}

    def _period(raw: Optional[str] = None):
        return ledger.aggregator.resolve(raw or request.args.get("period") or ALL_TIME)

    def _selected_owners(raw: Any) -> List[str]:
        if raw in (None, ""):
            return ledger.eligible_owners
        if isinstance(raw, str):
            return [name.strip() for name in raw.split(",") if name.strip()]
        if isinstance(raw, list) and all(isinstance(name, str) for name in raw):
            return raw
        raise ValidationError("owners must be a list of names")

    @app.get("/orders")
    def list_orders():
        filters = {
            "start": request.args.get("start"),
            "end": request.args.get("end"),
            "paid_only": request.args.get("paid_only"),
        }
        applied = _clean_filters(filters)
        if "paid_only" in applied:
            applied["paid_only"] = validate_bool(applied["paid_only"], "paid_only")
        orders = ledger.orders.list(**applied)
        return _success({"items": [order.to_dict() for order in orders]})

    @app.post("/orders")
    def create_order():
        order = ledger.orders.add(_json_body())
        return _success(order.to_dict(), 201)

    @app.post("/orders/<order_id>/paid")
    def mark_order_paid(order_id: str):
        return _success(ledger.orders.mark_paid(order_id).to_dict())

    @app.get("/salary-payments")
    def list_salary_payments():
        filters = {
            "start": request.args.get("start"),
            "end": request.args.get("end"),
            "employee_id": request.args.get("employee_id"),
        }
        payments = ledger.salaries.list(**_clean_filters(filters))
        return _success({"items": [payment.to_dict() for payment in payments]})

    @app.post("/salary-payments")
    def create_salary_payment():
        payment = ledger.salaries.add(_json_body())
        return _success(payment.to_dict(), 201)

    @app.post("/salary-payments/<payment_id>/paid")
    def mark_salary_paid(payment_id: str):
        return _success(ledger.salaries.mark_paid(payment_id).to_dict())

    @app.get("/expenses")
    def list_expenses():
        filters = {
            "expense_for": request.args.get("expense_for"),
            "status": request.args.get("status"),
            "category": request.args.get("category"),
            "start": request.args.get("start"),
            "end": request.args.get("end"),
        }
        applied = _clean_filters(filters)
        expenses = ledger.expenses.list(**applied)
        total = ledger.expenses.total(**applied)
        return _success({
            "items": [expense.to_dict() for expense in expenses],
            "total": format_money(total),
        })

    @app.post("/expenses")
    def create_expense():
        expense = ledger.expenses.add(_json_body())
        return _success(expense.to_dict(), 201)

    @app.get("/expenses/pending")
    def pending_expenses():
        totals = ledger.expenses.pending_by_owner()
        return _success({
            "owners": {name: format_money(amount) for name, amount in totals.items()},
            "total": format_money(sum(totals.values(), Decimal("0.00"))),
        })

    @app.get("/expenses/<expense_id>")
    def get_expense(expense_id: str):
        return _success(ledger.expenses.get(expense_id).to_dict())

    @app.delete("/expenses/<expense_id>")
    def delete_expense(expense_id: str):
        confirm = validate_bool(request.args.get("confirm", "false"), "confirm")
        ledger.expenses.delete(expense_id, confirm=confirm)
        return _success({}, 204)

    @app.post("/expenses/reimburse")
    def reimburse_expenses():
        payload = _json_body()
        expense_ids = payload.get("expense_ids")
        if not isinstance(expense_ids, list):
            raise ValidationError("expense_ids must be a list")
        result = ledger.expenses.reimburse_batch(expense_ids, payload.get("actor"))
        return _success(result.to_dict())

    @app.get("/summary")
    def summary():
        period = _period()
        totals = ledger.aggregator.aggregate_period(period)
        return _success({"period": period.to_dict(), **totals.to_dict()})

    @app.get("/bank-savings")
    def bank_savings_balance():
        period = _period()
        balance = ledger.bank_savings.balance_for(period)
        return _success({"period": period.to_dict(), "balance": str(balance)})

    @app.get("/bank-savings/history")
    def bank_savings_history():
        group = request.args.get("group")
        if group in (None, "", "all"):
            return _success({"items": [entry.to_dict() for entry in ledger.bank_savings.history()]})
        groups = ledger.bank_savings.grouped_history(group)
        return _success({
            "groups": [
                {
                    "key": item["key"],
                    "label": item["label"],
                    "total": str(item["total"]),
                    "items": [entry.to_dict() for entry in item["entries"]],
                }
                for item in groups
            ]
        })

    @app.post("/bank-savings/deposit")
    def bank_savings_deposit():
        payload = _json_body()
        period = _period(payload.get("period"))
        entry = ledger.bank_savings.deposit(payload.get("amount"), period, payload.get("actor"), payload.get("note"))
        return _success({"entry": entry.to_dict(), "balance": str(ledger.bank_savings.balance_for(period))}, 201)

    @app.post("/bank-savings/withdraw")
    def bank_savings_withdraw():
        payload = _json_body()
        period = _period(payload.get("period"))
        entry = ledger.bank_savings.withdraw(
            payload.get("amount"), period, payload.get("reason"), payload.get("actor")
        )
        return _success({"entry": entry.to_dict(), "balance": str(ledger.bank_savings.balance_for(period))}, 201)

    @app.get("/distribution")
    def distribution():
        period = _period()
        result = ledger.claims.summary(period, _selected_owners(request.args.get("owners")))
        return _success({"period_key": period.to_dict(), **result.to_dict()})

    @app.post("/distribution/claim")
    def claim_distribution():
        payload = _json_body()
        period = _period(payload.get("period"))
        owners = _selected_owners(payload.get("owners"))
        if validate_bool(payload.get("withdraw", False), "withdraw"):
            record, entry = ledger.claims.claim_and_withdraw(
                payload.get("owner"), period, owners, payload.get("actor"), payload.get("note")
            )
            return _success({
                "record": record.to_dict(),
                "withdrawal": entry.to_dict() if entry is not None else None,
            })
        record = ledger.claims.claim(payload.get("owner"), period, owners, payload.get("actor"))
        return _success({"record": record.to_dict(), "withdrawal": None})

    @app.get("/distribution/records")
    def distribution_records():
        period = _period() if request.args.get("period") else None
        records = ledger.claims.records(period)
        return _success({"items": [record.to_dict() for record in records]})

    @app.get("/distribution/statistics")
    def distribution_statistics():
        period = _period() if request.args.get("period") else None
        stats = ledger.claims.claim_statistics(period)
        return _success({
            key: (str(value) if not isinstance(value, int) else value) for key, value in stats.items()
        })

    return app
