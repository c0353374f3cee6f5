from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from campus_reminder.persistence.ikvstore import IKeyValueStore


class ModeEnum(str, Enum):
    MEMORY = "memory"
    """Use memory store, lost on restart."""
    SQLITE = "sqlite"
    """Use SQLite file store, kept across restarts."""


class MemoryModel(BaseModel, frozen=True):
    max_size: int = Field(default=128, ge=10)

    @cached_property
    def instance(self) -> IKeyValueStore:
        from campus_reminder.persistence.memory import (
            MemoryKeyValueStore,
        )

        return MemoryKeyValueStore(self)


class SqliteModel(BaseModel, frozen=True):
    path: str = ".local/campus-reminder-session.sqlite"
    table: str = "session"

    @cached_property
    def instance(self) -> IKeyValueStore:
        from campus_reminder.persistence.sqlite_kv import (
            SqliteKeyValueStore,
        )

        return SqliteKeyValueStore(self)


class SessionModel(BaseModel):
    mode: ModeEnum = ModeEnum.SQLITE  # Validated first, other fields depend on it
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    sqlite: SqliteModel | None = SqliteModel()  # Object is fully defined by default
    ttl_sec: int = Field(default=60 * 60 * 24 * 30, ge=60)  # 30 days
    """Lifetime of the cached session artifacts."""

    @field_validator("sqlite")
    @classmethod
    def _validate_sqlite(
        cls,
        sqlite: SqliteModel | None,
        info: ValidationInfo,
    ) -> SqliteModel | None:
        if not sqlite and info.data.get("mode", None) == ModeEnum.SQLITE:
            raise ValueError("SQLite config required")
        return sqlite

    @field_validator("memory")
    @classmethod
    def _validate_memory(
        cls,
        memory: MemoryModel | None,
        info: ValidationInfo,
    ) -> MemoryModel | None:
        if not memory and info.data.get("mode", None) == ModeEnum.MEMORY:
            raise ValueError("Memory config required")
        return memory

    @cached_property
    def instance(self) -> IKeyValueStore:
        if self.mode == ModeEnum.MEMORY:
            assert self.memory
            return self.memory.instance

        assert self.sqlite
        return self.sqlite.instance
