"""
Persistence Gateway for user progress records

Two interchangeable backends:
- InMemoryProgressStore: process-local dict, for tests and local development
- PostgresProgressStore: one JSONB document per identity (see queries/progress.py)

Both enforce optimistic concurrency: save() succeeds only when the stored
version equals the record's version, and returns the record with its new
version. Failures surface as PersistenceError / StaleRecordError; the
gateway never retries on its own.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from src.db.connection import Database, db as default_db
from src.db.queries import progress as progress_queries
from src.exceptions import AdStreakError, PersistenceError, StaleRecordError, wrap_external_exception
from src.models.progress import PROGRESS_SCHEMA_VERSION, UserProgress
from src.observability.metrics import gateway_errors_total, gateway_operation_duration_seconds

logger = logging.getLogger(__name__)


class ProgressGateway(Protocol):
    """Load/save of progress records keyed by identity"""

    async def load(self, identity: str) -> Optional[UserProgress]:
        ...

    async def save(self, record: UserProgress) -> UserProgress:
        ...

    async def delete(self, identity: str) -> bool:
        ...


def to_document(record: UserProgress) -> dict:
    """JSON-ready persisted layout (version lives outside the document)"""
    return record.model_dump(mode="json", exclude={"version"})


def from_document(document: dict, version: int) -> UserProgress:
    """
    Rebuild a record from its persisted layout

    Raises:
        PersistenceError: If the document is from an unknown schema or fails validation
    """
    schema_version = document.get("schema_version", PROGRESS_SCHEMA_VERSION)
    if schema_version != PROGRESS_SCHEMA_VERSION:
        raise PersistenceError(
            message=f"Unsupported progress schema version {schema_version}",
            user_id=document.get("identity"),
            operation="load_progress",
        )
    try:
        return UserProgress.model_validate({**document, "version": version})
    except PydanticValidationError as e:
        raise PersistenceError(
            message=f"Stored progress document is invalid: {e.error_count()} errors",
            user_id=document.get("identity"),
            operation="load_progress",
            cause=e,
        )


@contextmanager
def _observe(backend: str, operation: str, identity: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except AdStreakError as e:
        gateway_errors_total.labels(backend=backend, operation=operation, error_type=type(e).__name__).inc()
        raise
    except Exception as e:
        gateway_errors_total.labels(backend=backend, operation=operation, error_type=type(e).__name__).inc()
        raise wrap_external_exception(e, operation=f"{operation}_progress", user_id=identity)
    finally:
        gateway_operation_duration_seconds.labels(backend=backend, operation=operation).observe(
            time.perf_counter() - start
        )


class InMemoryProgressStore:
    """In-memory gateway (NOT durable; records vanish with the process)"""

    backend = "memory"

    def __init__(self):
        self._documents: dict[str, tuple[int, dict]] = {}
        self._lock = asyncio.Lock()

    async def load(self, identity: str) -> Optional[UserProgress]:
        with _observe(self.backend, "load", identity):
            stored = self._documents.get(identity)
            if stored is None:
                return None
            version, document = stored
            return from_document(document, version)

    async def save(self, record: UserProgress) -> UserProgress:
        with _observe(self.backend, "save", record.identity):
            async with self._lock:
                stored_version = self._documents.get(record.identity, (0, None))[0]
                if stored_version != record.version:
                    raise StaleRecordError(
                        expected_version=record.version,
                        actual_version=stored_version,
                        user_id=record.identity,
                        operation="save_progress",
                    )
                new_version = stored_version + 1
                self._documents[record.identity] = (new_version, to_document(record))

            logger.debug(f"Saved progress for {record.identity} (version {new_version})")
            return record.model_copy(update={"version": new_version})

    async def delete(self, identity: str) -> bool:
        with _observe(self.backend, "delete", identity):
            async with self._lock:
                return self._documents.pop(identity, None) is not None

    def clear(self) -> None:
        self._documents.clear()


class PostgresProgressStore:
    """PostgreSQL gateway backed by the user_progress table"""

    backend = "postgres"

    def __init__(self, database: Database = default_db):
        self.database = database

    async def init_schema(self) -> None:
        await progress_queries.init_progress_schema(self.database)

    async def load(self, identity: str) -> Optional[UserProgress]:
        with _observe(self.backend, "load", identity):
            row = await progress_queries.get_progress_row(identity, self.database)
            if row is None:
                return None
            return from_document(row["data"], row["version"])

    async def save(self, record: UserProgress) -> UserProgress:
        with _observe(self.backend, "save", record.identity):
            document = to_document(record)

            if record.version == 0:
                if await progress_queries.insert_progress_row(record.identity, document, self.database):
                    return record.model_copy(update={"version": 1})
            else:
                new_version = await progress_queries.update_progress_row(
                    record.identity, document, record.version, self.database
                )
                if new_version is not None:
                    return record.model_copy(update={"version": new_version})

            actual = await progress_queries.get_progress_version(record.identity, self.database)
            raise StaleRecordError(
                expected_version=record.version,
                actual_version=actual,
                user_id=record.identity,
                operation="save_progress",
            )

    async def delete(self, identity: str) -> bool:
        with _observe(self.backend, "delete", identity):
            return await progress_queries.delete_progress_row(identity, self.database)
