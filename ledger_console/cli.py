"""Console interface for the operations ledger."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from ledger_core.config import Settings
from ledger_core.context import LedgerContext, open_ledger
from ledger_core.exceptions import (
    ConflictError,
    PartialApplicationWarning,
    RecordNotFoundError,
    StoreUnavailable,
    ValidationError,
)
from ledger_core.models import BankSavingsEntry, DistributionRecord, Expense, format_money
from ledger_core.periods import PERIOD_KINDS

EXIT_PARTIAL = 3


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
    if not amount.is_finite():
        raise argparse.ArgumentTypeError("Amount must be a finite number")
    if amount <= 0:
        raise argparse.ArgumentTypeError("Amount must be greater than zero")
    return value


def _format_expense(expense: Expense) -> str:
    line = (
        f"[{expense.id}] {expense.incurred_on.isoformat()} {format_money(expense.amount)} {expense.title}\n"
        f"  For: {expense.expense_for} | Category: {expense.category or '-'} | "
        f"Status: {expense.reimbursement_status}\n"
    )
    if expense.reimbursed_at:
        line += f"  Reimbursed {expense.reimbursed_at.date().isoformat()} by {expense.reimbursed_by}\n"
    return line


def _format_entry(entry: BankSavingsEntry) -> str:
    return (
        f"{entry.created_at.date().isoformat()} {entry.period_type:<8} "
        f"{entry.period_start.isoformat()}..{entry.period_end.isoformat()} "
        f"{format_money(entry.amount):>12}  {entry.notes or ''}"
    )


def _format_record(record: DistributionRecord) -> str:
    state = f"claimed {record.claimed_at.date().isoformat()}" if record.claimed_at else "unclaimed"
    return (
        f"[{record.id}] {record.owner_name} {record.period_type} "
        f"{record.period_start.isoformat()}..{record.period_end.isoformat()} "
        f"net {format_money(record.net_share)} ({state})"
    )


def _owners(args: argparse.Namespace, ledger: LedgerContext) -> List[str]:
    return args.owners if args.owners else ledger.eligible_owners


def handle_order(args: argparse.Namespace, ledger: LedgerContext) -> None:
    if args.command == "add":
        order = ledger.orders.add({"total": args.total, "is_paid": args.paid, "created_at": args.created_at})
        print(f"Order {order.id} recorded ({format_money(order.total)}, paid={order.is_paid}).")
    elif args.command == "paid":
        order = ledger.orders.mark_paid(args.id)
        print(f"Order {order.id} marked paid.")


def handle_salary(args: argparse.Namespace, ledger: LedgerContext) -> None:
    payment = ledger.salaries.add({
        "employee_id": args.employee_id,
        "amount": args.amount,
        "is_paid": args.paid,
        "date": args.date,
    })
    print(f"Salary payment {payment.id} recorded for {payment.employee_id}.")


def handle_expense(args: argparse.Namespace, ledger: LedgerContext) -> None:
    service = ledger.expenses
    if args.command == "add":
        expense = service.add({
            "title": args.title,
            "amount": args.amount,
            "expense_for": args.expense_for,
            "category": args.category,
            "incurred_on": args.incurred_on,
        })
        print("Expense added:\n" + _format_expense(expense))
    elif args.command == "list":
        filters = {
            "expense_for": args.expense_for,
            "status": args.status,
            "start": args.start,
            "end": args.end,
        }
        applied = {k: v for k, v in filters.items() if v is not None}
        expenses = service.list(**applied)
        if not expenses:
            print("No expenses found.")
            return
        total = service.total(**applied)
        print(f"Found {len(expenses)} expenses (total {total:.2f}):")
        for expense in expenses:
            print(_format_expense(expense))
    elif args.command == "pending":
        totals = service.pending_by_owner()
        for owner, amount in totals.items():
            print(f"{owner:<12} {format_money(amount):>12}")
    elif args.command == "reimburse":
        result = service.reimburse_batch(args.ids, args.actor)
        print(
            f"Reimbursed {len(result.reimbursed)} expense(s) for {result.owner} "
            f"totalling {format_money(result.total)}."
        )
        if result.skipped_ids:
            print(f"Already reimbursed: {', '.join(result.skipped_ids)}")
    elif args.command == "delete":
        service.delete(args.id, confirm=args.confirm)
        print(f"Expense {args.id} deleted.")


def handle_summary(args: argparse.Namespace, ledger: LedgerContext) -> None:
    period = ledger.aggregator.resolve(args.period)
    totals = ledger.aggregator.aggregate_period(period)
    print(f"Period: {period.label} ({period.start.isoformat()}..{period.end.isoformat()})")
    print(f"Revenue:          {format_money(totals.total_revenue):>12}")
    print(f"Business expense: {format_money(totals.business_expense):>12}")
    print(f"Payroll:          {format_money(totals.payroll_expense):>12}")
    print(f"Net income:       {format_money(totals.net_income):>12}")


def handle_savings(args: argparse.Namespace, ledger: LedgerContext) -> None:
    period = ledger.aggregator.resolve(args.period)
    if args.command == "deposit":
        ledger.bank_savings.deposit(args.amount, period, args.actor, args.note)
        print(f"Deposited {args.amount} for {period.label}.")
    elif args.command == "withdraw":
        ledger.bank_savings.withdraw(args.amount, period, args.reason, args.actor)
        print(f"Withdrew {args.amount} for {period.label}.")
    elif args.command == "history":
        for entry in ledger.bank_savings.history():
            print(_format_entry(entry))
        return
    print(f"Bank savings for {period.label}: {format_money(ledger.bank_savings.balance_for(period))}")


def handle_distribution(args: argparse.Namespace, ledger: LedgerContext) -> None:
    period = ledger.aggregator.resolve(args.period)
    owners = _owners(args, ledger)
    if args.command == "show":
        summary = ledger.claims.summary(period, owners)
        print(f"Period: {summary.period_label}")
        print(f"Net income:                 {format_money(summary.net_income):>12}")
        print(f"Bank savings:               {format_money(summary.bank_savings):>12}")
        print(f"Available for distribution: {format_money(summary.available_for_distribution):>12}")
        for share in summary.shares:
            flag = "disabled" if share.is_disabled else ("claimed" if share.is_claimed else "")
            print(
                f"  {share.name:<10} {share.percentage:6.2f}% share {format_money(share.share):>12} "
                f"personal {format_money(share.personal_expenses):>10} "
                f"net {format_money(share.net_share):>12} {flag}"
            )
    elif args.command == "claim":
        if args.withdraw:
            record, entry = ledger.claims.claim_and_withdraw(args.owner, period, owners, args.actor, args.note)
            print("Claimed: " + _format_record(record))
            if entry is not None:
                print(f"Withdrew {format_money(-entry.amount)} from bank savings.")
        else:
            record = ledger.claims.claim(args.owner, period, owners, args.actor)
            print("Claimed: " + _format_record(record))
    elif args.command == "records":
        for record in ledger.claims.records(period):
            print(_format_record(record))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Operations ledger CLI")
    parser.add_argument(
        "--data-dir",
        default=None,
        type=Path,
        help="Directory to store JSON data (default: $LEDGER_DATA_DIR or ./data)",
    )

    subparsers = parser.add_subparsers(dest="entity", required=True)
    periods = sorted(PERIOD_KINDS)

    order_parser = subparsers.add_parser("order", help="Record revenue")
    order_sub = order_parser.add_subparsers(dest="command", required=True)
    order_add = order_sub.add_parser("add", help="Record an order")
    order_add.add_argument("total", type=_parse_amount)
    order_add.add_argument("--paid", action="store_true")
    order_add.add_argument("--created-at", dest="created_at")
    order_paid = order_sub.add_parser("paid", help="Mark an order paid")
    order_paid.add_argument("id")

    salary_parser = subparsers.add_parser("salary", help="Record a salary payment")
    salary_parser.add_argument("employee_id")
    salary_parser.add_argument("amount", type=_parse_amount)
    salary_parser.add_argument("--date", type=_parse_date)
    salary_parser.add_argument("--paid", action="store_true")

    expense_parser = subparsers.add_parser("expense", help="Manage expenses")
    expense_sub = expense_parser.add_subparsers(dest="command", required=True)

    expense_add = expense_sub.add_parser("add", help="Add a new expense")
    expense_add.add_argument("title")
    expense_add.add_argument("amount", type=_parse_amount)
    expense_add.add_argument("--for", dest="expense_for", default="business")
    expense_add.add_argument("--category")
    expense_add.add_argument("--incurred-on", dest="incurred_on", type=_parse_date)

    expense_list = expense_sub.add_parser("list", help="List expenses")
    expense_list.add_argument("--for", dest="expense_for")
    expense_list.add_argument("--status")
    expense_list.add_argument("--start", type=_parse_date)
    expense_list.add_argument("--end", type=_parse_date)

    expense_sub.add_parser("pending", help="Show pending personal expenses per owner")

    expense_reimburse = expense_sub.add_parser("reimburse", help="Reimburse one owner's expenses")
    expense_reimburse.add_argument("ids", nargs="+")
    expense_reimburse.add_argument("--actor", required=True)

    expense_delete = expense_sub.add_parser("delete", help="Delete an expense")
    expense_delete.add_argument("id")
    expense_delete.add_argument("--confirm", action="store_true", help="Required for reimbursed expenses")

    summary_parser = subparsers.add_parser("summary", help="Revenue, expense and net income")
    summary_parser.add_argument("--period", choices=periods, default="monthly")

    savings_parser = subparsers.add_parser("savings", help="Bank savings reserve")
    savings_sub = savings_parser.add_subparsers(dest="command", required=True)
    savings_deposit = savings_sub.add_parser("deposit", help="Deposit into bank savings")
    savings_deposit.add_argument("amount", type=_parse_amount)
    savings_deposit.add_argument("--actor", required=True)
    savings_deposit.add_argument("--note")
    savings_withdraw = savings_sub.add_parser("withdraw", help="Withdraw from bank savings")
    savings_withdraw.add_argument("amount", type=_parse_amount)
    savings_withdraw.add_argument("--reason", required=True)
    savings_withdraw.add_argument("--actor", required=True)
    savings_balance = savings_sub.add_parser("balance", help="Show the bank savings balance")
    savings_history = savings_sub.add_parser("history", help="List every bank savings entry")
    for sub in (savings_deposit, savings_withdraw, savings_balance, savings_history):
        sub.add_argument("--period", choices=periods, default="all")

    dist_parser = subparsers.add_parser("distribution", help="Owner distribution and claims")
    dist_sub = dist_parser.add_subparsers(dest="command", required=True)
    dist_show = dist_sub.add_parser("show", help="Show each owner's share")
    dist_claim = dist_sub.add_parser("claim", help="Claim an owner's share")
    dist_claim.add_argument("owner")
    dist_claim.add_argument("--actor", required=True)
    dist_claim.add_argument("--withdraw", action="store_true", help="Also draw the share from bank savings")
    dist_claim.add_argument("--note")
    dist_records = dist_sub.add_parser("records", help="List distribution records")
    for sub in (dist_show, dist_claim, dist_records):
        sub.add_argument("--period", choices=periods, default="all")
        sub.add_argument("--owners", nargs="*", help="Owners sharing the distribution (default: all eligible)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handlers = {
        "order": handle_order,
        "salary": handle_salary,
        "expense": handle_expense,
        "summary": handle_summary,
        "savings": handle_savings,
        "distribution": handle_distribution,
    }
    try:
        ledger = open_ledger(args.data_dir or settings.data_dir, settings.roster)
        handlers[args.entity](args, ledger)
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except RecordNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ConflictError as exc:
        print(f"Conflict: {exc}", file=sys.stderr)
        return 1
    except PartialApplicationWarning as exc:
        print(f"WARNING: {exc}: {exc.cause}", file=sys.stderr)
        if exc.record is not None:
            print("Recorded: " + _format_record(exc.record), file=sys.stderr)
        return EXIT_PARTIAL
    except StoreUnavailable as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
