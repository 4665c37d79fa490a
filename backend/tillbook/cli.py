# Overview: Flask CLI command groups for bootstrap, inspection, and journal maintenance.

# backend/tillbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds the chart of accounts.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Chart of accounts:
# - python -m flask accounts list [--all]
# - python -m flask accounts seed
#
# Journal posting:
# - python -m flask journals post-all [--source SALE|EXPENSE]
#   Post every record of the source that has no journal yet.
# - python -m flask journals retry
#   Re-run queued postings that are pending or failed.
# - python -m flask journals trial-balance [--as-of 2024-05-31]
#   Per-account debit/credit totals; FAIL when the book does not balance.
#
# Shift inspection:
# - python -m flask shifts list [--cashier-id c1] [--status active|ended] [--limit 20]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import JournalSource, ShiftStatus
from .services import account_service, journal_service, shift_service
from .services.balance_service import get_balance


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value) // 100:,}.{abs(value) % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and seed the default chart of accounts."""
    click.echo("START Initializing Tillbook...")
    db.create_all()
    created = account_service.seed_default_accounts()
    click.echo(f"PASS Chart of accounts ready ({created} account(s) created)")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('accounts')
def accounts_group():
    """Chart of accounts commands."""


@accounts_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def list_accounts_cli(include_inactive):
    """List accounts by code."""
    accounts = account_service.list_accounts(include_inactive=include_inactive)
    if not accounts:
        click.echo("No accounts found. Run 'python -m flask accounts seed'.")
        return

    click.echo(f"{'Code':<8} {'Type':<10} {'Active':<7} {'Name'}")
    click.echo("=" * 60)
    for account in accounts:
        click.echo(f"{account.code:<8} {account.type.value:<10} {'yes' if account.is_active else 'no':<7} {account.name}")


@accounts_group.command('seed')
@with_appcontext
def seed_accounts_cli():
    """Insert any missing default accounts."""
    created = account_service.seed_default_accounts()
    click.echo(f"PASS {created} account(s) created")


@click.group('journals')
def journals_group():
    """Journal posting commands."""


@journals_group.command('post-all')
@click.option('--source', type=click.Choice(['SALE', 'EXPENSE']), default='SALE', help='Records to post')
@with_appcontext
def post_all_cli(source):
    """Post every record of the source that has no journal yet."""
    summary = journal_service.post_all(JournalSource(source))
    click.echo(
        f"PASS posted={summary['posted']} skipped={summary['skipped']} "
        f"waiting={summary['waiting']} failed={summary['failed']}"
    )
    for error in summary["errors"]:
        click.echo(f"FAIL {source} {error['source_id']}: {error['error']}")


@journals_group.command('retry')
@with_appcontext
def retry_cli():
    """Re-run queued postings that are pending or failed."""
    summary = journal_service.retry_pending()
    click.echo(
        f"PASS posted={summary['posted']} skipped={summary['skipped']} "
        f"waiting={summary['waiting']} failed={summary['failed']}"
    )


@journals_group.command('trial-balance')
@click.option('--as-of', type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help='Include journals up to this date')
@with_appcontext
def trial_balance_cli(as_of):
    """Print per-account debit and credit totals."""
    report = journal_service.trial_balance(as_of.date() if as_of else None)
    for row in report["accounts"]:
        click.echo(
            f"{row['code']:<6} {row['name']:<28} "
            f"Dr {_cents(row['debit_cents']):>14}  Cr {_cents(row['credit_cents']):>14}"
        )
    totals = f"Dr {_cents(report['total_debit_cents'])} Cr {_cents(report['total_credit_cents'])}"
    if report["balanced"]:
        click.echo(f"PASS trial balance {totals}")
    else:
        click.echo(f"FAIL trial balance out of balance: {totals}")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--cashier-id', help='Filter by cashier')
@click.option('--status', type=click.Choice([s.value for s in ShiftStatus]), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(cashier_id, status, limit):
    """
    List shifts with their live balance.

    Example:
        flask shifts list
        flask shifts list --status active
    """
    shifts = shift_service.list_shifts(cashier_id=cashier_id, status=status, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<6} {'Cashier':<16} {'Status':<8} {'Started':<22} {'Float':>12} {'Balance':>14}")
    click.echo("=" * 90)
    for shift in shifts:
        balance = get_balance(shift.id)
        started = shift.start_time.strftime("%Y-%m-%d %H:%M:%S") if shift.start_time else ""
        click.echo(
            f"{shift.id:<6} {shift.cashier_id:<16} {shift.status.value:<8} {started:<22} "
            f"{_cents(shift.float_cents):>12} {_cents(balance.real_time_balance_cents):>14}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(journals_group)
    app.cli.add_command(shifts_group)
