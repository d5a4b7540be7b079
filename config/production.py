import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "hr_tasks"),
}

DEBUG = False

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "/var/log/hr_tasks")

TASK_CONFLICT_RETRIES = int(os.getenv("TASK_CONFLICT_RETRIES", "1"))
RECURRING_LEAD_HOURS = int(os.getenv("RECURRING_LEAD_HOURS", "24"))
OVERDUE_SCAN_INTERVAL_MINUTES = int(os.getenv("OVERDUE_SCAN_INTERVAL_MINUTES", "30"))
