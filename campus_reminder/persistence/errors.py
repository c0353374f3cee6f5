from collections.abc import Sequence
from typing import Any


class StorageError(Exception):
    """
    The storage engine failed.

    The original engine error is chained as `__cause__`. The failing statement and its parameters are attached for diagnostics. Parameters are left out of the message, they may hold credentials.
    """

    params: tuple[Any, ...]
    sql: str | None

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        params: Sequence[Any] = (),
    ):
        super().__init__(message)
        self.params = tuple(params)
        self.sql = sql

    def __str__(self) -> str:
        message = super().__str__()
        if not self.sql:
            return message
        return f"{message} (sql: {' '.join(self.sql.split())})"


class NotInitializedError(StorageError):
    """
    The database was used before `initialize` completed, or after `close`.
    """

    def __init__(self):
        super().__init__("Database not initialized, call initialize() first")
