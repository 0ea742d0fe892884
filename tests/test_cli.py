import pytest

from ledger_console.cli import EXIT_PARTIAL, main


@pytest.fixture
def run(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("LEDGER_OWNERS", raising=False)
    monkeypatch.delenv("LEDGER_INELIGIBLE_OWNERS", raising=False)

    def _run(*argv):
        code = main(["--data-dir", str(tmp_path), *argv])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


def test_summary_and_distribution(run):
    assert run("order", "add", "9000", "--paid")[0] == 0
    assert run("salary", "emp-1", "1000", "--paid")[0] == 0
    assert run("expense", "add", "Soap", "400", "--for", "Karaya")[0] == 0

    code, out, _ = run("summary", "--period", "all")
    assert code == 0
    assert "9000.00" in out
    assert "8000.00" in out

    code, out, _ = run("distribution", "show")
    assert code == 0
    assert "Karaya" in out and "disabled" in out

    code, out, _ = run("distribution", "claim", "Karaya", "--actor", "admin")
    assert code == 0
    assert "Claimed" in out and "3600.00" in out


def test_validation_errors_exit_non_zero(run):
    code, _, err = run("savings", "withdraw", "10", "--reason", " ", "--actor", "admin")
    assert code == 1
    assert "Validation error" in err


@pytest.mark.parametrize("amount", ["NaN", "Infinity"])
def test_non_finite_amount_is_a_usage_error(run, amount, capsys):
    with pytest.raises(SystemExit) as excinfo:
        run("order", "add", amount)
    assert excinfo.value.code == 2
    assert "finite" in capsys.readouterr().err


def test_savings_round_trip(run):
    assert run("savings", "deposit", "300", "--actor", "admin")[0] == 0
    code, out, _ = run("savings", "withdraw", "100", "--reason", "correction", "--actor", "admin")
    assert code == 0
    assert "200.00" in out
    code, out, _ = run("savings", "history")
    assert "correction" in out


def test_reimbursed_delete_requires_confirm(run, tmp_path):
    from ledger_core.config import Settings
    from ledger_core.context import open_ledger

    ledger = open_ledger(tmp_path, Settings().roster)
    expense = ledger.expenses.add({"title": "Fuel", "amount": "50", "expense_for": "Richard"})

    assert run("expense", "reimburse", expense.id, "--actor", "admin")[0] == 0
    code, _, err = run("expense", "delete", expense.id)
    assert code == 1 and "confirmation" in err
    assert run("expense", "delete", expense.id, "--confirm")[0] == 0


def test_partial_application_has_its_own_exit_code(run, monkeypatch):
    from ledger_core.distribution import BankSavingsLedger
    from ledger_core.exceptions import StoreUnavailable

    run("order", "add", "1000", "--paid")

    def broken_withdraw(self, *args, **kwargs):
        raise StoreUnavailable("read-only")

    monkeypatch.setattr(BankSavingsLedger, "withdraw", broken_withdraw)
    code, _, err = run("distribution", "claim", "Richard", "--actor", "admin", "--withdraw")
    assert code == EXIT_PARTIAL
    assert "WARNING" in err and "read-only" in err
