from __future__ import annotations

import click
from flask import Flask, current_app

from ..container import Container
from .bootstrap import apply_schema, default_schema_path, list_tables


def register(app: Flask, container: Container) -> None:
    @app.cli.command("init-db")
    def init_db() -> None:
        """Create the database and apply schema.sql (idempotent)."""
        db_config = dict(current_app.config["DB_CONFIG"])
        apply_schema(db_config, schema_path=default_schema_path())
        tables = list_tables(db_config)
        click.echo(
            "OK: Applied schema.sql -> "
            f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')} "
            f"(tables={len(tables)})"
        )
