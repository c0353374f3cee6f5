import asyncio
import os
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from aiosqlite import Connection, Error as SqliteError, Row, connect as sqlite_connect
from pydantic import BaseModel

from campus_reminder.helpers.config_models.database import DatabaseModel
from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import start_as_current_span, suppress
from campus_reminder.models.readiness import ReadinessEnum
from campus_reminder.persistence.errors import NotInitializedError, StorageError
from campus_reminder.persistence.schema import (
    TABLES,
    create_indexes,
    ensure_schema,
)

RowDict = dict[str, Any]
Params = Sequence[Any]


class ExecuteResultModel(BaseModel):
    changes: int
    """Number of rows inserted, updated or deleted."""
    last_insert_id: int | None = None


class DatabaseInfoModel(BaseModel):
    counts: dict[str, int]
    tables: list[str]


class Transaction:
    """
    Statements run inside an open transaction.

    Obtained from `Database.transaction`, do not keep it after the block.
    """

    _db: Connection

    def __init__(self, db: Connection):
        self._db = db

    async def query(self, sql: str, params: Params = ()) -> list[RowDict]:
        return await _query(self._db, sql, params)

    async def query_one(self, sql: str, params: Params = ()) -> RowDict | None:
        return await _query_one(self._db, sql, params)

    async def execute(self, sql: str, params: Params = ()) -> ExecuteResultModel:
        return await _execute(self._db, sql, params)


class Database:
    """
    Single shared handle to the SQLite database.

    All reads and writes of the application funnel through one connection. The engine serializes them, so statements issued in sequence complete in order.

    Use `CONFIG.database.instance` for the process-wide instance, or build one per test with a `:memory:` path.
    """

    _config: DatabaseModel
    _db: Connection | None
    _lock: asyncio.Lock

    def __init__(self, config: DatabaseModel):
        logger.info("Using SQLite database at %s", config.path)
        self._config = config
        self._db = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._db is not None

    @start_as_current_span("database_initialize")
    async def initialize(self) -> None:
        """
        Open the database file and set up the schema.

        Creates the file and its folder if missing. Calling it again once initialized does nothing. Schema failures are raised, the database is then left closed.
        """
        async with self._lock:
            if self._db:
                return

            # Create folder if does not exist
            path = self._config.path
            if path != ":memory:":
                folder = os.path.dirname(path)
                if folder:
                    os.makedirs(name=folder, exist_ok=True)

            # Connect to DB, in autocommit mode as transactions are explicit
            try:
                db = await sqlite_connect(
                    database=path,
                    isolation_level=None,
                )
            except SqliteError as e:
                raise StorageError(f"Cannot open database at {path}") from e
            db.row_factory = Row

            # Set up the schema, abort on any failure
            try:
                await ensure_schema(db)
                await create_indexes(db)
            except StorageError:
                await db.close()
                raise

            self._db = db
            logger.info("Database initialized")

    async def close(self) -> None:
        """
        Close the handle.

        A later `initialize` reopens the database from scratch.
        """
        async with self._lock:
            if not self._db:
                return
            await self._db.close()
            self._db = None
            logger.info("Database closed")

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is initialized and can be queried.
        """
        try:
            await self.query_one("SELECT 1")
            return ReadinessEnum.OK
        except NotInitializedError:
            logger.warning("Database not initialized")
        except StorageError:
            logger.exception("Unknown error while checking SQLite readiness")
        return ReadinessEnum.FAIL

    async def query(self, sql: str, params: Params = ()) -> list[RowDict]:
        """
        Read all rows of a query.
        """
        db = self._connection()
        async with self._lock:
            return await _query(db, sql, params)

    async def query_one(self, sql: str, params: Params = ()) -> RowDict | None:
        """
        Read the first row of a query, `None` if there is none.
        """
        db = self._connection()
        async with self._lock:
            return await _query_one(db, sql, params)

    async def execute(self, sql: str, params: Params = ()) -> ExecuteResultModel:
        """
        Run a write statement.
        """
        db = self._connection()
        async with self._lock:
            return await _execute(db, sql, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Transaction, None]:
        """
        Run statements atomically.

        All statements issued through the yielded `Transaction` are committed together when the block exits. Any exception raised in the block rolls them all back, then propagates.

        Other coroutines using the database wait for the transaction to end. Do not use the `Database` itself inside the block, it would wait forever.
        """
        db = self._connection()
        async with self._lock:
            await _execute(db, "BEGIN")
            try:
                yield Transaction(db)
            # Cancellation included, a started write never lands partially
            except BaseException:
                logger.debug("Rolling back transaction")
                await _rollback(db)
                raise
            try:
                await _execute(db, "COMMIT")
            except StorageError:
                await _rollback(db)
                raise

    @start_as_current_span("database_clear_all_data")
    async def clear_all_data(self) -> None:
        """
        Delete every row of every table, keeping the schema.

        Meant for development and tests.
        """
        async with self.transaction() as tx:
            # Children first
            for table in reversed(TABLES):
                await tx.execute(f"DELETE FROM {table.name}")
        logger.warning("All data cleared from database")

    async def info(self) -> DatabaseInfoModel:
        """
        List the tables and their row count, for debugging.
        """
        rows = await self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        counts: dict[str, int] = {}
        for table in TABLES:
            row = await self.query_one(f"SELECT COUNT(*) AS count FROM {table.name}")
            counts[table.name] = int(row["count"]) if row else 0
        return DatabaseInfoModel(
            counts=counts,
            tables=[row["name"] for row in rows],
        )

    def _connection(self) -> Connection:
        if not self._db:
            raise NotInitializedError()
        return self._db


async def _query(db: Connection, sql: str, params: Params) -> list[RowDict]:
    try:
        # Fetch all rows to release the statement
        async with db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
    except SqliteError as e:
        raise StorageError("Query execution failed", sql=sql, params=params) from e
    return [dict(row) for row in rows]


async def _query_one(db: Connection, sql: str, params: Params) -> RowDict | None:
    try:
        # Closing the cursor releases the statement, even with rows left
        async with db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
    except SqliteError as e:
        raise StorageError("Query execution failed", sql=sql, params=params) from e
    return dict(row) if row else None


async def _execute(db: Connection, sql: str, params: Params = ()) -> ExecuteResultModel:
    try:
        async with db.execute(sql, params) as cursor:
            return ExecuteResultModel(
                changes=max(cursor.rowcount, 0),  # -1 for statements without row count
                last_insert_id=cursor.lastrowid,
            )
    except SqliteError as e:
        raise StorageError("Statement execution failed", sql=sql, params=params) from e


async def _rollback(db: Connection) -> None:
    """
    Roll back the current transaction, if any.

    A failure here is recorded on the span only, the error which triggered the rollback is the one to raise.
    """
    with suppress(StorageError):
        await _execute(db, "ROLLBACK")
