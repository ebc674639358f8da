# Overview: Flask CLI command groups for supplier ledger repair and bootstrap.

# backend/supplier_credits/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Supplier ledger repair:
# - python -m flask credits recalculate --supplier-id 4
#   Rebuild running balances and the cached outstanding balance for one supplier.
# - python -m flask credits recalculate --all
#   Same, for every supplier.
# - python -m flask credits audit [--supplier-id 4] [--only-problems]
#   Read-only report of cached balance vs ledger drift.
# - python -m flask credits import-opening-balances [--dry-run]
#   Put balances carried over from an older system onto the ledger.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .amounts import format_amount
from .errors import LedgerError
from .extensions import db
from .services import supplier_credit_service


@click.group('credits')
def credits_group():
    """Supplier credit ledger maintenance commands."""


@credits_group.command('recalculate')
@click.option('--supplier-id', type=int, help='Supplier ID')
@click.option('--all', 'all_suppliers', is_flag=True, help='Recalculate every supplier')
@with_appcontext
def recalculate_cli(supplier_id, all_suppliers):
    """Rebuild running balances from the ledger."""
    if not supplier_id and not all_suppliers:
        raise click.UsageError('Pass --supplier-id or --all')

    try:
        if all_suppliers:
            results = supplier_credit_service.recalculate_all_balances()
        else:
            results = [supplier_credit_service.recalculate_balance(supplier_id)]
    except LedgerError as exc:
        raise click.ClickException(str(exc))

    for result in results:
        click.echo(
            f"Supplier {result['supplier_id']}: outstanding balance "
            f"{format_amount(result['outstanding_balance'])}"
        )
    click.echo(f"Recalculated {len(results)} supplier(s)")


@credits_group.command('audit')
@click.option('--supplier-id', type=int, multiple=True, help='Supplier ID (repeatable)')
@click.option('--only-problems', is_flag=True, help='Hide consistent suppliers')
@with_appcontext
def audit_cli(supplier_id, only_problems):
    """Report suppliers whose cached balance or running balances drifted."""
    reports = supplier_credit_service.audit_balances(list(supplier_id) or None)

    problems = 0
    for report in reports:
        if report.is_consistent:
            if not only_problems:
                click.echo(f"OK    {report.supplier_id:>5} {report.supplier_name}: {format_amount(report.ledger_sum)}")
            continue

        problems += 1
        click.echo(
            f"DRIFT {report.supplier_id:>5} {report.supplier_name}: "
            f"cached={format_amount(report.cached_balance)} "
            f"ledger={format_amount(report.ledger_sum)} "
            f"last_running={format_amount(report.last_running_balance)}"
        )
        if report.bad_running_balance_ids:
            click.echo(f"      wrong running balance on entries {report.bad_running_balance_ids}")
        if report.paid_amount_mismatch_ids:
            click.echo(f"      paid amount disagrees with allocations on entries {report.paid_amount_mismatch_ids}")

    click.echo(f"{len(reports)} supplier(s) checked, {problems} with problems")
    if problems:
        raise SystemExit(1)


@credits_group.command('import-opening-balances')
@click.option('--dry-run', is_flag=True, help='Show what would be created')
@with_appcontext
def import_opening_balances_cli(dry_run):
    """Create ledger debts for balances imported without ledger history."""
    results = supplier_credit_service.import_opening_balances(dry_run=dry_run)

    created = 0
    for row in results:
        if row['status'] == 'skipped':
            click.echo(f"Skipped: {row['name']} - {row['reason']}")
            continue
        created += 1
        verb = 'Would create' if dry_run else 'Created'
        click.echo(f"{verb}: {row['name']} - {format_amount(row['amount'])}")

    click.echo(f"{created} credit(s) {'to create' if dry_run else 'created'}, {len(results) - created} skipped")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm('This deletes ALL data. Continue?', abort=True)
    db.drop_all()
    db.create_all()
    click.echo('Database reset')


def register_commands(app):
    app.cli.add_command(credits_group)
    app.cli.add_command(system_group)
