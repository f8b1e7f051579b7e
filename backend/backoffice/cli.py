# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: creates tables and the default Cash / Bank / Petty Cash accounts.
#
# Ledger maintenance:
# - python -m flask ledger rebuild-stock [--product-id 12]
#   Recompute cached product stock from the inventory log; prints corrected drift.
# - python -m flask ledger rebuild-ar
#   Recompute AR/AP received amounts, statuses and document paid flags from settlements.
# - python -m flask ledger check
#   Report invariant violations across all ledgers (exit code 1 if any).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import account_service, inventory_service, partner_account_service
from .services.integrity_service import check_ledgers


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and seed the default cash accounts."""
    click.echo("START Initializing back office ledgers...")
    db.create_all()
    created = account_service.seed_default_accounts()
    click.echo(f"PASS Default accounts created: {created}")
    click.echo("DONE System initialized")


@click.group('ledger')
def ledger_group():
    """Ledger rebuild and consistency commands."""


@ledger_group.command('rebuild-stock')
@click.option('--product-id', type=int, default=None, help='Only rebuild this product')
@with_appcontext
def rebuild_stock(product_id):
    """Recompute Product.stock from the inventory log."""
    drift = inventory_service.rebuild_stock(product_id)
    if not drift:
        click.echo("PASS Stock matches inventory log")
        return
    for pid, delta in sorted(drift.items()):
        click.echo(f"FIXED product {pid}: cached stock was off by {delta:+d}")
    click.echo(f"DONE Corrected {len(drift)} product(s)")


@ledger_group.command('rebuild-ar')
@with_appcontext
def rebuild_ar():
    """Recompute partner account balances and statuses from posted settlements."""
    result = partner_account_service.rebuild_partner_accounts()
    click.echo(
        f"DONE {result['accounts_fixed']} line(s) corrected, "
        f"{result['documents_refreshed']} document(s) refreshed"
    )


@ledger_group.command('check')
@with_appcontext
def check():
    """Report invariant violations."""
    problems = check_ledgers()
    if not problems:
        click.echo("PASS No invariant violations")
        return
    for p in problems:
        click.echo(f"FAIL [{p['check']}] {p['entity']} {p['id']}: {p['detail']}")
    raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
