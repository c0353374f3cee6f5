from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any

from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from campus_reminder.models.reminder import (
    PriorityEnum,
    ReminderCreateModel,
    ReminderModel,
    ReminderPatchModel,
    UserStatsModel,
)
from campus_reminder.models.result import ErrorCodeEnum, FailureModel, SuccessModel
from campus_reminder.persistence.database import RowDict
from campus_reminder.persistence.errors import StorageError
from campus_reminder.persistence.ientity import (
    IEntityService,
    is_constraint_violation,
    utc_now,
)

ReminderResult = SuccessModel[ReminderModel] | FailureModel
RemindersResult = SuccessModel[list[ReminderModel]] | FailureModel

WEEK_DAYS = 7


def _today(today: date | None) -> date:
    return today or datetime.now(UTC).date()


class ReminderService(IEntityService[ReminderModel]):
    """
    Reminders of a user.

    Due dates are stored as written, ISO 8601 date or date-time. Date filters compare the calendar day only, in UTC.
    """

    _label = "Reminder"
    _table = "reminders"

    def _from_row(self, row: RowDict) -> ReminderModel:
        # Stored as 0/1
        return ReminderModel.model_validate(
            {
                **row,
                "isCompleted": bool(row["isCompleted"]),
            }
        )

    def _write_failure(self, e: StorageError, message: str) -> FailureModel:
        if is_constraint_violation(e, "FOREIGN KEY"):
            return FailureModel.of(
                code=ErrorCodeEnum.NOT_FOUND,
                message="User not found.",
            )
        return self._storage_failure(e, message)

    @start_as_current_span("reminder_create")
    async def create(self, data: ReminderCreateModel | Mapping[str, Any]) -> ReminderResult:
        model = self._validate(ReminderCreateModel, data)
        if isinstance(model, FailureModel):
            return model
        SpanAttributeEnum.USER_ID.attribute(model.user_id)

        now = utc_now()
        try:
            async with self._db.transaction() as tx:
                res = await tx.execute(
                    """
                    INSERT INTO reminders (userId, title, description, dueDate, isCompleted, priority, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        model.user_id,
                        model.title,
                        model.description,
                        model.due_date,
                        model.priority.value,
                        now,
                        now,
                    ),
                )
                row = await tx.query_one(
                    "SELECT * FROM reminders WHERE id = ?",
                    (res.last_insert_id,),
                )
        except StorageError as e:
            return self._write_failure(e, "Failed to create reminder.")

        if not row:
            return FailureModel.of(
                code=ErrorCodeEnum.STORAGE,
                message="Failed to create reminder.",
            )
        reminder = self._from_row(row)
        logger.debug("Reminder %s created for user %s", reminder.id, reminder.user_id)
        return SuccessModel(data=reminder)

    @start_as_current_span("reminder_get_all_for_owner")
    async def get_all_for_owner(self, user_id: int) -> RemindersResult:
        """
        All reminders of a user, soonest due first.
        """
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? ORDER BY dueDate ASC, id ASC",
            (user_id,),
            "Failed to retrieve reminders.",
        )

    @start_as_current_span("reminder_get_pending")
    async def get_pending(self, user_id: int) -> RemindersResult:
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND isCompleted = 0 ORDER BY dueDate ASC, id ASC",
            (user_id,),
            "Failed to retrieve pending reminders.",
        )

    @start_as_current_span("reminder_get_completed")
    async def get_completed(self, user_id: int) -> RemindersResult:
        """
        Completed reminders, most recently updated first.
        """
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND isCompleted = 1 ORDER BY updatedAt DESC, id DESC",
            (user_id,),
            "Failed to retrieve completed reminders.",
        )

    @start_as_current_span("reminder_get_by_priority")
    async def get_by_priority(self, user_id: int, priority: PriorityEnum) -> RemindersResult:
        try:
            priority = PriorityEnum(priority)
        except ValueError:
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Priority must be low, medium or high.",
            )
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND priority = ? ORDER BY dueDate ASC, id ASC",
            (user_id, priority.value),
            "Failed to retrieve reminders.",
        )

    @start_as_current_span("reminder_get_overdue")
    async def get_overdue(self, user_id: int, today: date | None = None) -> RemindersResult:
        """
        Pending reminders due before today.
        """
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND isCompleted = 0 AND date(dueDate) < date(?) ORDER BY dueDate ASC, id ASC",
            (user_id, _today(today).isoformat()),
            "Failed to retrieve overdue reminders.",
        )

    @start_as_current_span("reminder_get_today")
    async def get_today(self, user_id: int, today: date | None = None) -> RemindersResult:
        """
        Reminders due today, completed or not.
        """
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND date(dueDate) = date(?) ORDER BY dueDate ASC, id ASC",
            (user_id, _today(today).isoformat()),
            "Failed to retrieve today's reminders.",
        )

    @start_as_current_span("reminder_get_weekly")
    async def get_weekly(self, user_id: int, today: date | None = None) -> RemindersResult:
        """
        Reminders due in the last 7 days or later.
        """
        since = _today(today) - timedelta(days=WEEK_DAYS)
        return await self._list(
            "SELECT * FROM reminders WHERE userId = ? AND date(dueDate) >= date(?) ORDER BY dueDate ASC, id ASC",
            (user_id, since.isoformat()),
            "Failed to retrieve weekly reminders.",
        )

    @start_as_current_span("reminder_update")
    async def update(
        self,
        reminder_id: int,
        patch: ReminderPatchModel | Mapping[str, Any],
    ) -> ReminderResult:
        model = self._validate(ReminderPatchModel, patch)
        if isinstance(model, FailureModel):
            return model
        return await self._update(reminder_id, model)

    async def mark_completed(self, reminder_id: int) -> ReminderResult:
        return await self.update(reminder_id, ReminderPatchModel(is_completed=True))

    async def mark_pending(self, reminder_id: int) -> ReminderResult:
        return await self.update(reminder_id, ReminderPatchModel(is_completed=False))

    @start_as_current_span("reminder_delete_for_owner")
    async def delete_for_owner(self, user_id: int) -> SuccessModel[int] | FailureModel:
        """
        Delete all reminders of a user.

        Data is the number of deleted reminders.
        """
        try:
            res = await self._db.execute(
                "DELETE FROM reminders WHERE userId = ?",
                (user_id,),
            )
        except StorageError as e:
            return self._storage_failure(e, "Failed to delete reminders.")
        logger.info("Deleted %s reminders of user %s", res.changes, user_id)
        return SuccessModel(data=res.changes)

    @start_as_current_span("reminder_get_stats")
    async def get_stats(
        self,
        user_id: int,
        today: date | None = None,
    ) -> SuccessModel[UserStatsModel] | FailureModel:
        """
        Reminder counters of a user, computed in a single query.
        """
        since = _today(today) - timedelta(days=WEEK_DAYS)
        try:
            row = await self._db.query_one(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN isCompleted = 1 THEN 1 ELSE 0 END), 0) AS completed,
                    COALESCE(SUM(CASE WHEN isCompleted = 0 THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(CASE WHEN date(dueDate) >= date(?) THEN 1 ELSE 0 END), 0) AS weekly
                FROM reminders
                WHERE userId = ?
                """,
                (since.isoformat(), user_id),
            )
        except StorageError as e:
            return self._storage_failure(e, "Failed to load statistics.")

        row = row or {}
        return SuccessModel(
            data=UserStatsModel(
                completed_reminders=row.get("completed", 0),
                pending_reminders=row.get("pending", 0),
                total_reminders=row.get("total", 0),
                weekly_reminders=row.get("weekly", 0),
            )
        )
