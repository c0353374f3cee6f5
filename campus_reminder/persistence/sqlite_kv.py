import hashlib
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from aiosqlite import Connection, Error as SqliteError, connect as sqlite_connect

from campus_reminder.helpers.config_models.session import SqliteModel
from campus_reminder.helpers.logging import logger
from campus_reminder.models.readiness import ReadinessEnum
from campus_reminder.persistence.ikvstore import IKeyValueStore


class SqliteKeyValueStore(IKeyValueStore):
    """
    A key-value store kept in its own SQLite file, survives restarts.

    A connection is opened per operation, the store is only read at startup and written on login and logout.
    """

    _config: SqliteModel
    _first_run_done: bool

    def __init__(self, config: SqliteModel):
        logger.info("Using SQLite session store at %s", config.path)
        self._config = config
        self._first_run_done = False

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite store.

        This checks if the file is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except SqliteError:
            logger.exception("Error requesting SQLite session store")
        return ReadinessEnum.FAIL

    async def get(self, key: str) -> str | None:
        """
        Get a value from the store.

        If the key does not exist, is expired or the store fails, return `None`.
        """
        sha_key = self._key_to_hash(key)
        try:
            async with self._use_db() as db:
                async with db.execute(
                    f"SELECT value, expires_at FROM {self._config.table} WHERE key = ?",
                    (sha_key,),
                ) as cursor:
                    row = await cursor.fetchone()
        except SqliteError:
            logger.exception("Error getting value")
            return None

        if not row:
            return None

        # Check TTL, delete if expired
        value, expires_at = row
        if datetime.fromisoformat(expires_at) < datetime.now(UTC):
            await self.delete(key)
            return None

        return value

    async def set(
        self,
        key: str,
        ttl_sec: int,
        value: str,
    ) -> bool:
        """
        Set a value in the store.

        Return `False` if the store fails.
        """
        sha_key = self._key_to_hash(key)
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl_sec)
        try:
            async with self._use_db() as db:
                await db.execute(
                    f"INSERT OR REPLACE INTO {self._config.table} (key, value, expires_at) VALUES (?, ?, ?)",
                    (
                        sha_key,  # key
                        value,  # value
                        expires_at.isoformat(),  # expires_at
                    ),
                )
                await db.commit()
        except SqliteError:
            logger.exception("Error setting value")
            return False
        return True

    async def delete(self, key: str) -> bool:
        """
        Delete a value from the store.

        Return `False` if the store fails.
        """
        sha_key = self._key_to_hash(key)
        try:
            async with self._use_db() as db:
                await db.execute(
                    f"DELETE FROM {self._config.table} WHERE key = ?",
                    (sha_key,),
                )
                await db.commit()
        except SqliteError:
            logger.exception("Error deleting value")
            return False
        return True

    async def _init_db(self, db: Connection) -> None:
        """
        Initialize the store table.
        """
        logger.info("First run, init session store")
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {self._config.table} (key TEXT PRIMARY KEY, value TEXT NOT NULL, expires_at TEXT NOT NULL)"
        )
        await db.commit()

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection, None]:
        """
        Generate the SQLite client and close it after use.
        """
        # Create folder if does not exist
        folder = os.path.dirname(self._config.path)
        if folder:
            os.makedirs(name=folder, exist_ok=True)

        async with sqlite_connect(database=self._config.path) as db:
            if not self._first_run_done:
                await self._init_db(db)
                self._first_run_done = True
            yield db

    @staticmethod
    def _key_to_hash(key: str) -> str:
        """
        Transform the key into a hash.

        SHA-256 lower the collision probability. Plus, it keeps the key size constant.
        """
        return hashlib.sha256(key.encode(), usedforsecurity=False).hexdigest()
