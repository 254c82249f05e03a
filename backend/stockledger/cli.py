# Overview: Flask CLI commands for schema bootstrap, ledger verification and balance reminders.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db [--drop --yes]
#   Create all tables (optionally drop them first; deletes all data).
# - python -m flask ledger verify --tenant 1
#   Recompute every item quantity and counterparty balance from history and
#   report any drift from the stored values. Exit code 1 when drift is found.
#   Add --json for a machine-readable report.
# - python -m flask ledger remind --tenant 1
#   Emit a BalanceReminder for every customer with a positive balance.

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Customer, Tenant
from .services.coordinator import TransactionCoordinator
from .services.reconciliation import verify_tenant


@click.group('ledger')
def ledger_group():
    """Ledger maintenance commands."""
    pass


@ledger_group.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(drop, yes):
    """Create the schema."""
    if drop:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready")


@ledger_group.command('verify')
@click.option('--tenant', 'tenant_id', type=int, required=True, help='Tenant ID')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@with_appcontext
def verify(tenant_id, as_json):
    """Recompute quantities and balances from immutable history."""
    if db.session.get(Tenant, tenant_id) is None:
        raise click.ClickException(f"Tenant {tenant_id} not found")

    drifts = verify_tenant(tenant_id)
    if as_json:
        click.echo(json.dumps(
            {"tenant_id": tenant_id, "ok": not drifts, "drifts": [drift.to_dict() for drift in drifts]},
            indent=2,
        ))
        if drifts:
            raise SystemExit(1)
        return

    if not drifts:
        click.echo(f"PASS Tenant {tenant_id}: all quantities and balances match history")
        return

    for drift in drifts:
        click.echo(
            f"FAIL {drift.kind} {drift.subject_id}: stored={drift.stored} expected={drift.expected}"
        )
    click.echo(f"\n{len(drifts)} mismatch(es) found")
    raise SystemExit(1)


@ledger_group.command('remind')
@click.option('--tenant', 'tenant_id', type=int, required=True, help='Tenant ID')
@with_appcontext
def remind(tenant_id):
    """Emit BalanceReminder events for customers who owe money."""
    customer_ids = [
        row.id
        for row in db.session.query(Customer.id)
        .filter(Customer.tenant_id == tenant_id, Customer.balance > 0)
        .order_by(Customer.id)
    ]
    if not customer_ids:
        click.echo("No customers with an outstanding balance")
        return

    coordinator = TransactionCoordinator.from_app()
    sent = 0
    for customer_id in customer_ids:
        try:
            reminder = coordinator.request_balance_reminder(tenant_id, customer_id)
        except LedgerError as e:
            click.echo(f"FAIL Customer {customer_id}: {e.message}")
            continue
        sent += 1
        click.echo(f"PASS Customer {customer_id} ({reminder.customer_name}): balance {reminder.balance}")

    click.echo(f"\n{sent} reminder(s) emitted")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
