"""
Database queries for the reward engine.

Module organization:
- progress.py: Versioned user progress documents (JSONB)
"""

from src.db.queries.progress import (
    CREATE_USER_PROGRESS_TABLE,
    init_progress_schema,
    get_progress_row,
    insert_progress_row,
    update_progress_row,
    get_progress_version,
    delete_progress_row,
)

__all__ = [
    "CREATE_USER_PROGRESS_TABLE",
    "init_progress_schema",
    "get_progress_row",
    "insert_progress_row",
    "update_progress_row",
    "get_progress_version",
    "delete_progress_row",
]
