from tillbook.services import reconciliation_service, shift_service

from conftest import CASHIER


def test_accounts_list(app, db_session):
    result = app.test_cli_runner().invoke(args=["accounts", "list"])
    assert result.exit_code == 0
    assert "1100" in result.output
    assert "Cash Over/Short" in result.output


def test_accounts_seed_is_idempotent(app, db_session):
    result = app.test_cli_runner().invoke(args=["accounts", "seed"])
    assert "PASS 0 account(s) created" in result.output


def test_shifts_list_shows_balance(app, db_session):
    shift_service.start_shift(CASHIER, 12345)
    result = app.test_cli_runner().invoke(args=["shifts", "list", "--status", "active"])
    assert result.exit_code == 0
    assert CASHIER in result.output
    assert "123.45" in result.output


def test_journals_retry_with_empty_queue(app, db_session):
    result = app.test_cli_runner().invoke(args=["journals", "retry"])
    assert "PASS posted=0 skipped=0 waiting=0 failed=0" in result.output


def test_journals_trial_balance(app, db_session):
    shift = shift_service.start_shift(CASHIER, 1000)
    reconciliation_service.reconcile(shift.id, 900)

    result = app.test_cli_runner().invoke(args=["journals", "trial-balance"])

    assert result.exit_code == 0
    assert "6900" in result.output
    assert "PASS trial balance Dr 1.00 Cr 1.00" in result.output
