"""Constants and defaults.

Note: Keep constants here to avoid magic strings spread across code.
"""

SYSTEM_ACTOR = "system"

DEFAULT_CONFLICT_RETRIES = 1

CREATED_REMARK = "created"
ASSIGNEES_ADDED_REMARK = "assignees added"
GENERATED_REMARK = "generated from recurring task"
OVERDUE_REMARK = "Automatically marked as overdue"
OVERDUE_REASON = "Automatic overdue detection"
