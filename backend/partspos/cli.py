# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/partspos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: cash balance row, exchange rate setting, walk-in customer, default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username admin --email admin@partspos.local --password "Password123" --role ADMIN
#
# Ledger maintenance:
# - python -m flask debts refresh-statuses
#   Re-derive ACTIVE/DUE_SOON/OVERDUE for every open credit entry.
# - python -m flask ledger verify
#   Compare the shop balance with the cash journal and customer balances with open entries.

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func

from .extensions import db
from .models import CreditEntry, Customer, User
from .models.auth import ROLE_ADMIN, ROLES
from .models.credit import CREDIT_STATUS_SETTLED
from .models.settings import SETTING_EXCHANGE_RATE
from .money import format_rate, to_rate
from .services import cash_service, customers_service, debt_service, settings_service
from .services.auth_service import PasswordValidationError, create_user
from .errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123', show_default=True, help='Password for the default admin')
@with_appcontext
def init_system(admin_password):
    """
    Initialize the shop: cash balance row, exchange rate, walk-in customer and default admin.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing PartsPOS...")

    cash_service.ensure_cash_balance()
    db.session.commit()
    click.echo(f"PASS Shop balance: {cash_service.get_cash_balance()} AFN cents")

    if settings_service.get_setting(SETTING_EXCHANGE_RATE) is None:
        rate = to_rate(current_app.config["DEFAULT_EXCHANGE_RATE"])
        settings_service.set_exchange_rate(rate)
        click.echo(f"PASS Exchange rate set to {format_rate(rate)} AFN/USD")
    else:
        click.echo(f"PASS Using existing exchange rate: {format_rate(settings_service.get_exchange_rate())}")

    walk_in = customers_service.get_or_create_walk_in()
    db.session.commit()
    click.echo(f"PASS Walk-in customer: {walk_in.display_id}")

    if db.session.query(User).filter_by(username="admin").first():
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email="admin@partspos.local",
                password=admin_password,
                role=ROLE_ADMIN,
                name="Administrator",
            )
            click.echo("PASS Created user: admin (admin@partspos.local) with role 'ADMIN'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {e.message}")

    click.echo("DONE PartsPOS initialized")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(ROLES), case_sensitive=False), prompt=True, help='Role')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, name):
    """
    Create a new staff user.

    Password must be 8+ chars with an uppercase letter, a lowercase letter and a digit.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role, name=name)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except LedgerError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        raise SystemExit(1)


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.username.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.username:<20} {u.role:<12} {status}")


@click.group('debts')
def debts_group():
    """Credit entry maintenance."""


@debts_group.command('refresh-statuses')
@with_appcontext
def refresh_statuses_cli():
    """Re-derive status for every open credit entry from its due date."""
    changed = debt_service.refresh_debt_statuses()
    click.echo(f"PASS Updated {changed} credit entr{'y' if changed == 1 else 'ies'}")


@click.group('ledger')
def ledger_group():
    """Ledger consistency checks."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger_cli():
    """
    Check two invariants:
    - shop balance equals the sum of the cash journal
    - each customer's cached balance equals the remaining sum of their open entries
    """
    ok = True
    cash = cash_service.verify_cash_ledger()
    if cash["consistent"]:
        click.echo(f"PASS Shop balance {cash['balance_afn_cents']} matches cash journal")
    else:
        ok = False
        click.echo(
            f"FAIL Shop balance {cash['balance_afn_cents']} != journal total {cash['journal_total_afn_cents']}"
        )

    remaining = dict(
        db.session.query(
            CreditEntry.customer_id,
            func.sum(CreditEntry.original_afn_cents - CreditEntry.paid_afn_cents - CreditEntry.credited_afn_cents),
        )
        .filter(CreditEntry.status != CREDIT_STATUS_SETTLED)
        .group_by(CreditEntry.customer_id)
        .all()
    )
    mismatches = 0
    for customer in db.session.query(Customer).order_by(Customer.id.asc()).all():
        expected = int(remaining.get(customer.id) or 0)
        if customer.outstanding_balance_afn_cents != expected:
            mismatches += 1
            click.echo(
                f"FAIL Customer {customer.display_id}: cached {customer.outstanding_balance_afn_cents} "
                f"!= open entries {expected}"
            )
    if mismatches:
        ok = False
    else:
        click.echo("PASS Customer balances match open credit entries")

    if not ok:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(debts_group)
    app.cli.add_command(ledger_group)
