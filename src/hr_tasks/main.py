from __future__ import annotations

import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .container import Container, build_container
from .database.bootstrap import apply_schema, default_schema_path, list_tables
from .database.commands import register as register_database
from .logging_setup import setup_logging
from .tasks.commands import register as register_tasks

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None, settings_module: Optional[str] = None) -> Flask:
    """Application factory.

    Only CLI commands are registered; the HTTP layer lives elsewhere. Passing
    a ready `container` skips database setup (used by tests).
    """
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = dict(getattr(settings, "DB_CONFIG"))
    app.config["DB_CONFIG"] = db_config
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["OVERDUE_SCAN_INTERVAL_MINUTES"] = int(getattr(settings, "OVERDUE_SCAN_INTERVAL_MINUTES", 30))

    setup_logging(level=getattr(settings, "LOG_LEVEL", "INFO"), log_dir=getattr(settings, "LOG_DIR", None))
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=default_schema_path())
            logger.info("schema ready (tables=%s)", len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            conflict_retries=int(getattr(settings, "TASK_CONFLICT_RETRIES", 1)),
            recurring_lead_hours=int(getattr(settings, "RECURRING_LEAD_HOURS", 24)),
        )

    app.extensions["hr_tasks"] = container

    register_database(app, container)
    register_tasks(app, container)

    return app
