from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from aiosqlite import IntegrityError
from pydantic import ValidationError

from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import SpanAttributeEnum
from campus_reminder.models.result import ErrorCodeEnum, ErrorModel, FailureModel, SuccessModel
from campus_reminder.models.storage import PatchModel, StorageModel
from campus_reminder.persistence.database import (
    Database,
    Params,
    RowDict,
    Transaction,
)
from campus_reminder.persistence.errors import NotInitializedError, StorageError

EntityT = TypeVar("EntityT", bound=StorageModel)
InputT = TypeVar("InputT", bound=StorageModel)


def utc_now() -> str:
    """
    Current time as stored in the database, ISO 8601 in UTC with microseconds.
    """
    return datetime.now(UTC).isoformat(timespec="microseconds")


def build_update(
    table: str,
    columns: Mapping[str, Any],
    updated_at: str,
) -> tuple[str, list[Any]]:
    """
    Build an `UPDATE` statement for one row, identified by its id.

    Column names come from a `PatchModel`, values are always bound as parameters. `updatedAt` is always set.
    """
    assignments = [f"{column} = ?" for column in columns]
    assignments.append("updatedAt = ?")
    return (
        f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
        [*columns.values(), updated_at],
    )


def is_constraint_violation(e: StorageError, kind: str) -> bool:
    """
    Check if a storage error comes from a constraint, e.g. `UNIQUE` or `FOREIGN KEY`.
    """
    cause = e.__cause__
    return isinstance(cause, IntegrityError) and kind in str(cause)


class IEntityService(ABC, Generic[EntityT]):
    """
    CRUD operations over one table.

    Expected conditions (not found, conflict, no updates, bad input) are returned as `FailureModel`. Storage errors are logged and returned as `FailureModel` too, callers never need to catch.
    """

    _db: Database
    _label: str
    """Entity name for user facing messages."""
    _table: str

    def __init__(self, db: Database):
        self._db = db

    @abstractmethod
    def _from_row(self, row: RowDict) -> EntityT:
        """
        Translate a stored row to its domain model.
        """
        pass

    async def get_by_id(self, entity_id: int) -> SuccessModel[EntityT] | FailureModel:
        SpanAttributeEnum.ENTITY_TABLE.attribute(self._table)
        SpanAttributeEnum.ENTITY_ID.attribute(entity_id)
        try:
            row = await self._db.query_one(
                f"SELECT * FROM {self._table} WHERE id = ?",
                (entity_id,),
            )
        except StorageError as e:
            return self._storage_failure(e, f"Failed to retrieve {self._label.lower()}.")
        if not row:
            return self._not_found()
        return SuccessModel(data=self._from_row(row))

    async def delete(self, entity_id: int) -> SuccessModel[bool] | FailureModel:
        """
        Delete a row.

        Data is `True` if a row was removed, `False` if there was none with this id.
        """
        SpanAttributeEnum.ENTITY_TABLE.attribute(self._table)
        SpanAttributeEnum.ENTITY_ID.attribute(entity_id)
        try:
            res = await self._db.execute(
                f"DELETE FROM {self._table} WHERE id = ?",
                (entity_id,),
            )
        except StorageError as e:
            return self._storage_failure(e, f"Failed to delete {self._label.lower()}.")
        logger.debug("Deleted %s %s: %s", self._table, entity_id, res.changes > 0)
        return SuccessModel(data=res.changes > 0)

    async def _list(
        self,
        sql: str,
        params: Params,
        message: str,
    ) -> SuccessModel[list[EntityT]] | FailureModel:
        try:
            rows = await self._db.query(sql, params)
        except StorageError as e:
            return self._storage_failure(e, message)
        return SuccessModel(data=[self._from_row(row) for row in rows])

    async def _update(
        self,
        entity_id: int,
        patch: PatchModel,
    ) -> SuccessModel[EntityT] | FailureModel:
        """
        Apply a patch to a row and return it as stored.

        An empty patch is a `NO_UPDATES` failure and leaves the row untouched.
        """
        SpanAttributeEnum.ENTITY_TABLE.attribute(self._table)
        SpanAttributeEnum.ENTITY_ID.attribute(entity_id)

        columns = patch.to_columns()
        if not columns:
            return FailureModel.of(
                code=ErrorCodeEnum.NO_UPDATES,
                message="No updates provided.",
            )

        sql, params = build_update(self._table, columns, utc_now())
        try:
            async with self._db.transaction() as tx:
                res = await tx.execute(sql, [*params, entity_id])
                if not res.changes:
                    return self._not_found()
                await self._after_update(tx, entity_id)
                row = await tx.query_one(
                    f"SELECT * FROM {self._table} WHERE id = ?",
                    (entity_id,),
                )
        except StorageError as e:
            return self._write_failure(e, f"Failed to update {self._label.lower()}.")
        if not row:
            return self._not_found()
        return SuccessModel(data=self._from_row(row))

    async def _after_update(self, tx: Transaction, entity_id: int) -> None:
        """
        Hook run in the update transaction, after the patch is applied.

        Override to maintain derived columns.
        """
        pass

    def _write_failure(self, e: StorageError, message: str) -> FailureModel:
        """
        Convert an error raised by a write.

        Override to map constraint violations to expected failures.
        """
        return self._storage_failure(e, message)

    def _validate(
        self,
        model: type[InputT],
        data: InputT | Mapping[str, Any],
    ) -> InputT | FailureModel:
        """
        Validate raw input, returning a `VALIDATION` failure listing every violated rule.
        """
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.debug("Invalid %s input: %s", self._table, e.errors())
            return FailureModel(error=ErrorModel.from_validation(e))

    def _not_found(self) -> FailureModel:
        return FailureModel.of(
            code=ErrorCodeEnum.NOT_FOUND,
            message=f"{self._label} not found.",
        )

    def _storage_failure(self, e: StorageError, message: str) -> FailureModel:
        """
        Log a storage error and convert it to a failure.

        The raw engine error goes to the logs and to `details`, never to `message`.
        """
        if isinstance(e, NotInitializedError):
            logger.error("Database used before initialization")
            return FailureModel.of(
                code=ErrorCodeEnum.NOT_INITIALIZED,
                details=str(e),
                message="The app is still starting, please try again.",
            )
        logger.exception("Storage error on %s", self._table)
        return FailureModel.of(
            code=ErrorCodeEnum.STORAGE,
            details=f"{e}: {e.__cause__}" if e.__cause__ else str(e),
            message=message,
        )
