"""User progress database queries

One JSONB document per identity, guarded by an integer version column for
optimistic concurrency.
"""
import logging
from typing import Optional

from psycopg.types.json import Jsonb

from src.db.connection import Database, db as default_db

logger = logging.getLogger(__name__)


CREATE_USER_PROGRESS_TABLE = """
    CREATE TABLE IF NOT EXISTS user_progress (
        identity TEXT PRIMARY KEY,
        version INTEGER NOT NULL,
        data JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
"""


async def init_progress_schema(database: Database = default_db) -> None:
    """
    Create the user_progress table if needed

    Safe to call multiple times.
    """
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(CREATE_USER_PROGRESS_TABLE)
        await conn.commit()
    logger.info("user_progress schema ready")


async def get_progress_row(identity: str, database: Database = default_db) -> Optional[dict]:
    """
    Get the stored progress document

    Returns:
        {'identity': str, 'version': int, 'data': dict} or None
    """
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT identity, version, data
                FROM user_progress
                WHERE identity = %s
                """,
                (identity,)
            )
            row = await cur.fetchone()
            return dict(row) if row else None


async def insert_progress_row(identity: str, data: dict, database: Database = default_db) -> bool:
    """
    Insert a first version (version 1)

    Returns:
        False if a row for the identity already exists
    """
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO user_progress (identity, version, data)
                VALUES (%s, 1, %s)
                ON CONFLICT (identity) DO NOTHING
                """,
                (identity, Jsonb(data))
            )
            inserted = cur.rowcount == 1
        await conn.commit()
    return inserted


async def update_progress_row(
    identity: str,
    data: dict,
    expected_version: int,
    database: Database = default_db
) -> Optional[int]:
    """
    Compare-and-set update

    Returns:
        The new version, or None when the stored version differs from expected_version
    """
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE user_progress
                SET data = %s,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE identity = %s AND version = %s
                RETURNING version
                """,
                (Jsonb(data), identity, expected_version)
            )
            row = await cur.fetchone()
        await conn.commit()
    return row["version"] if row else None


async def get_progress_version(identity: str, database: Database = default_db) -> Optional[int]:
    """Current stored version, or None if there is no row"""
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT version FROM user_progress WHERE identity = %s",
                (identity,)
            )
            row = await cur.fetchone()
            return row["version"] if row else None


async def delete_progress_row(identity: str, database: Database = default_db) -> bool:
    """Delete a progress document (explicit reset)"""
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM user_progress WHERE identity = %s",
                (identity,)
            )
            deleted = cur.rowcount == 1
        await conn.commit()
    return deleted
