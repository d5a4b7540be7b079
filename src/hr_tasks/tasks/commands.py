from __future__ import annotations

import click
from flask import Flask

from ..common.datetime_utils import parse_iso_datetime
from ..container import Container


def _parse_now(value):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not an ISO-8601 datetime", param_hint="--now")


def register(app: Flask, container: Container) -> None:
    @app.cli.command("scan-overdue")
    @click.option("--now", "now_value", default=None, help="Evaluate as of this ISO-8601 time (default: current UTC time).")
    def scan_overdue(now_value) -> None:
        """Mark past-due open tasks overdue and notify their assignees."""
        result = container.overdue_scanner.scan_and_mark_overdue(_parse_now(now_value))
        click.echo(
            f"Overdue scan: updated={result.updated_count} already_overdue={result.already_overdue_count} "
            f"skipped={result.skipped_count} total={result.total_checked} notified={result.notifications_sent}"
        )

    @app.cli.command("generate-recurring")
    @click.option("--now", "now_value", default=None, help="Evaluate as of this ISO-8601 time (default: current UTC time).")
    def generate_recurring(now_value) -> None:
        """Create the tasks for recurring templates that are coming due."""
        result = container.recurring_generator.generate_due(_parse_now(now_value))
        click.echo(
            f"Recurring tasks: generated={result.generated_count} skipped={result.skipped_count} "
            f"total={result.total_checked}"
        )
