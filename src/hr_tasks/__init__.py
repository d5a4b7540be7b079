"""HR Tasks package.

This package is organized by feature modules (tasks, groups, notifications)
with a thin Flask CLI layer and service/repository layers underneath.
"""
