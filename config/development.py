import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "hr_tasks"),
}

DEBUG = True

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
LOG_DIR = os.getenv("LOG_DIR", ".local/logs")

# Extra read-modify-write attempts after a version conflict.
TASK_CONFLICT_RETRIES = int(os.getenv("TASK_CONFLICT_RETRIES", "1"))

# Recurring children are generated this far ahead of their due time.
RECURRING_LEAD_HOURS = int(os.getenv("RECURRING_LEAD_HOURS", "24"))

# How often cron should run `flask scan-overdue` (informational).
OVERDUE_SCAN_INTERVAL_MINUTES = int(os.getenv("OVERDUE_SCAN_INTERVAL_MINUTES", "30"))
