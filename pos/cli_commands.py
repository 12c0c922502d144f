"""
Flask CLI commands for database setup and stock maintenance.

Commands:
- flask init-db: Create every table
- flask reconcile-stock: Compare product stock with the stock ledger
"""

import click
from pos.database import create_all, new_session
from pos.services.stock_ledger_service import reconcile_stock


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('reconcile-stock')
    @click.option('--user-id', type=int, required=True, help='Owner of the inventory to check')
    @click.option('--product-id', type=int, default=None, help='Check a single product')
    def reconcile_stock_command(user_id, product_id):
        """Report products whose stock does not match their latest ledger entry."""
        session = new_session()
        try:
            discrepancies = reconcile_stock(session, user_id, product_id)
        finally:
            session.close()

        if not discrepancies:
            click.echo(click.style('✅ Stock consistente con el historial de movimientos', fg='green'))
            return

        click.echo(click.style(f'⚠️  {len(discrepancies)} productos con diferencias:', fg='yellow', bold=True))
        for d in discrepancies:
            click.echo(
                f"   #{d['product_id']} {d['product_name']}: stock {d['stock']}, "
                f"historial {d['ledger_stock']} (diferencia {d['difference']:+d})"
            )
        raise SystemExit(1)
