"""
Flask CLI commands for catalog and pricing administration.

Commands:
- flask init-db: Create all tables
- flask add-metal-rate: Record a metal price per gram
- flask set-tax-override: Set or clear the tax rate override
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

import click

from jewelry.database import create_schema, get_session
from jewelry.services.rate_service import add_metal_rate
from jewelry.services.tax_service import set_tax_rate_override
from jewelry.utils.clock import system_clock


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_schema()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('add-metal-rate')
    @click.option('--metal', required=True, help='Metal name, e.g. gold')
    @click.option('--purity', required=True, help='Purity, e.g. 22k')
    @click.option('--price', required=True, help='Price per gram')
    @click.option('--effective-at', default=None, help='ISO timestamp (UTC); defaults to now')
    def add_metal_rate_command(metal, purity, price, effective_at):
        """Record a metal rate effective from the given instant."""
        try:
            price_per_gram = Decimal(price)
        except InvalidOperation:
            click.echo(click.style(f'Invalid price: {price}', fg='red'))
            return

        try:
            effective = datetime.fromisoformat(effective_at) if effective_at else system_clock.now()
        except ValueError:
            click.echo(click.style(f'Invalid timestamp: {effective_at}', fg='red'))
            return

        try:
            rate = add_metal_rate(get_session(), metal, purity, price_per_gram, effective)
        except ValueError as e:
            click.echo(click.style(str(e), fg='red'))
            return

        click.echo(click.style(
            f'Rate {rate.metal}/{rate.purity} = {rate.price_per_gram} from {rate.effective_at}', fg='green'
        ))

    @app.cli.command('set-tax-override')
    @click.argument('rate', required=False)
    @click.option('--clear', is_flag=True, help='Remove the override')
    def set_tax_override_command(rate, clear):
        """Set the tax rate override in percent, or clear it."""
        if clear:
            set_tax_rate_override(get_session(), None)
            click.echo(click.style('Tax override cleared.', fg='green'))
            return

        if rate is None:
            click.echo(click.style('Provide a RATE or --clear.', fg='red'))
            return

        try:
            value = set_tax_rate_override(get_session(), Decimal(rate))
        except (InvalidOperation, ValueError) as e:
            click.echo(click.style(f'Invalid rate {rate}: {e}', fg='red'))
            return

        click.echo(click.style(f'Tax override set to {value}%.', fg='green'))
