# Overview: Flask CLI command group for stock bootstrap and ledger inspection.

# backend/stockpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stock <command> [options]
#
# - python -m flask stock init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask stock verify-ledger [--product-id 12]
#   Replay every stock line's movements and report lines whose quantity drifted.
# - python -m flask stock alerts [--status active]
#   List low-stock alerts.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.stock import ALERT_ACTIVE, ALERT_STATUSES
from .services import alert_service, ledger_service


@click.group('stock')
def stock_group():
    """Stock ledger bootstrap and inspection commands."""


@stock_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database initialized.")


@stock_group.command('verify-ledger')
@click.option('--product-id', type=int, default=None, help='Only verify this product\'s stock lines')
@with_appcontext
def verify_ledger(product_id):
    """
    Replay each stock line's ledger from zero and compare with its quantity.

    Exits with status 1 when any line is inconsistent.
    """
    results = ledger_service.verify_all_stock_lines(product_id=product_id)
    if not results:
        click.echo("PASS No stock lines to verify.")
        return

    broken = [r for r in results if not r["consistent"]]
    for r in broken:
        click.echo(
            f"FAIL product {r['product_id']} variant {r['variant_id']}: "
            f"quantity {r['quantity']} != replayed {r['replayed_quantity']} "
            f"(broken links: {r['broken_links'] or 'none'})"
        )

    if broken:
        click.echo(f"\nFAIL {len(broken)} of {len(results)} stock lines inconsistent.")
        sys.exit(1)

    click.echo(f"PASS {len(results)} stock lines consistent with their ledger.")


@stock_group.command('alerts')
@click.option('--status', type=click.Choice(ALERT_STATUSES), default=ALERT_ACTIVE, show_default=True)
@with_appcontext
def list_alerts(status):
    """List low-stock alerts."""
    alerts = alert_service.list_alerts(status)
    if not alerts:
        click.echo(f"No {status} alerts.")
        return

    click.echo(f"{'ID':<6} {'SKU':<20} {'Product':<30} {'Variant':<10} {'Stock':>6} {'Min':>6}  Created")
    click.echo("-" * 100)
    for alert in alerts:
        data = alert.to_dict()
        click.echo(
            f"{data['id']:<6} {(data['sku'] or ''):<20} {(data['product_name'] or '')[:30]:<30} "
            f"{str(data['variant_id'] or '-'):<10} {data['current_stock']:>6} {data['min_stock_level']:>6}  "
            f"{data['created_at']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
