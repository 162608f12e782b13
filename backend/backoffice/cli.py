# Overview: Flask CLI command group for ledger bootstrap and till inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask ledger seed
#   Idempotent: default measurement units (Unit, Kilogram, Litre) and tender types (Cash, Card, Transfer).
# - python -m flask ledger till-balance 1
#   Print the balance of till 1 (sum of its live movements).
# - python -m flask ledger deposit 1 50000 [--description "Opening float"]
#   Fund till 1 with 500.00.

import click
from flask.cli import with_appcontext

from .services import cash_ledger
from .services.catalog_service import seed_reference_data


def _format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) // 100}.{abs(cents) % 100:02d}"


@click.group('ledger')
def ledger_group():
    """Commerce ledger commands."""
    pass


@ledger_group.command('seed')
@with_appcontext
def seed_cli():
    """Create default measurement units and tender types."""
    created = seed_reference_data()
    click.echo(
        f"PASS Seeded {created['measurement_units']} measurement unit(s), "
        f"{created['tender_types']} tender type(s)"
    )


@ledger_group.command('till-balance')
@click.argument('till_id', type=int)
@with_appcontext
def till_balance_cli(till_id):
    """Print a till's current balance."""
    result = cash_ledger.get_till_balance(till_id)
    if not result.is_success:
        raise click.ClickException(f"{result.kind}: {result.error.message}")

    value = result.value
    click.echo(f"Till {value['till_id']} ({value['status']}): {_format_cents(value['balance_cents'])}")


@ledger_group.command('deposit')
@click.argument('till_id', type=int)
@click.argument('amount_cents', type=int)
@click.option('--description', default=None, help='Movement description')
@with_appcontext
def deposit_cli(till_id, amount_cents, description):
    """Deposit cash into a till."""
    result = cash_ledger.deposit_cash(till_id, amount_cents, description)
    if not result.is_success:
        raise click.ClickException(f"{result.kind}: {result.error.message}")

    click.echo(
        f"PASS Deposited {_format_cents(amount_cents)} into till {till_id}; "
        f"balance {_format_cents(result.value['balance_cents'])}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
