from functools import cached_property
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from campus_reminder.persistence.database import Database


class DatabaseModel(BaseModel):
    path: str = ".local/campus-reminder.sqlite"
    """SQLite file path, or `:memory:` for a throwaway database."""

    @cached_property
    def instance(self) -> "Database":
        """
        Process-wide database gateway.

        Built lazily on first access, the underlying file is only opened by `Database.initialize`.
        """
        from campus_reminder.persistence.database import (
            Database,
        )

        return Database(self)
