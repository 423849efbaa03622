import click
from flask import current_app

from orders_service.services.order_service import expire_unpaid_orders


def register_cli(app):
    @app.cli.command("expire-unpaid-orders")
    @click.option("--hours", type=int, default=None, help="Age limit, defaults to PAYMENT_EXPIRY_HOURS.")
    def expire_unpaid_orders_cmd(hours):
        """Cancel confirmed orders still waiting for payment."""
        hours = hours if hours is not None else current_app.config["PAYMENT_EXPIRY_HOURS"]
        count = expire_unpaid_orders(hours)
        click.echo(f"Cancelled {count} unpaid orders older than {hours}h")
