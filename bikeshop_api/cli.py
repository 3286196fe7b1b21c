# bikeshop_api/cli.py
"""Flask CLI commands for the scheduled jobs (``flask --app bikeshop_api.app ...``)."""

import click
from flask import current_app
from flask.cli import with_appcontext

from .services.expiration import run_expiration_sweep, refresh_overdue_invoices


def _report(result, label):
    current_app.logger.info(f"{label}: processed {result.processed}")
    click.echo(f"{label}: processed {result.processed}")
    for index, error in enumerate(result.errors, start=1):
        current_app.logger.error(f"{label} error {index}: {error}")
        click.echo(f"  {index}. {error}", err=True)


@click.command('expire-quotations')
@with_appcontext
def expire_quotations_command():
    """Expire draft and sent quotations past their validity date."""
    _report(run_expiration_sweep(), 'Expired quotations')


@click.command('refresh-overdue-invoices')
@with_appcontext
def refresh_overdue_invoices_command():
    """Mark unpaid invoices past their due date as overdue."""
    _report(refresh_overdue_invoices(), 'Overdue invoices')


def register_commands(app):
    app.cli.add_command(expire_quotations_command)
    app.cli.add_command(refresh_overdue_invoices_command)
