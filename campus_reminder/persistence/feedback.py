from collections.abc import Mapping
from typing import Any

from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from campus_reminder.models.feedback import (
    FeedbackCreateModel,
    FeedbackModel,
    FeedbackPatchModel,
    FeedbackStatsModel,
    FeedbackStatusEnum,
)
from campus_reminder.models.result import ErrorCodeEnum, FailureModel, SuccessModel
from campus_reminder.persistence.database import RowDict
from campus_reminder.persistence.errors import StorageError
from campus_reminder.persistence.ientity import (
    IEntityService,
    is_constraint_violation,
    utc_now,
)

FeedbackResult = SuccessModel[FeedbackModel] | FailureModel
FeedbacksResult = SuccessModel[list[FeedbackModel]] | FailureModel


class FeedbackService(IEntityService[FeedbackModel]):
    _label = "Feedback"
    _table = "feedback"

    def _from_row(self, row: RowDict) -> FeedbackModel:
        return FeedbackModel.model_validate(row)

    def _write_failure(self, e: StorageError, message: str) -> FailureModel:
        if is_constraint_violation(e, "FOREIGN KEY"):
            return FailureModel.of(
                code=ErrorCodeEnum.NOT_FOUND,
                message="User not found.",
            )
        return self._storage_failure(e, message)

    @start_as_current_span("feedback_create")
    async def create(self, data: FeedbackCreateModel | Mapping[str, Any]) -> FeedbackResult:
        """
        Submit a feedback, it starts as pending.
        """
        model = self._validate(FeedbackCreateModel, data)
        if isinstance(model, FailureModel):
            return model
        SpanAttributeEnum.USER_ID.attribute(model.user_id)

        now = utc_now()
        try:
            async with self._db.transaction() as tx:
                res = await tx.execute(
                    """
                    INSERT INTO feedback (userId, subject, message, status, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        model.user_id,
                        model.subject,
                        model.message,
                        FeedbackStatusEnum.PENDING.value,
                        now,
                        now,
                    ),
                )
                row = await tx.query_one(
                    "SELECT * FROM feedback WHERE id = ?",
                    (res.last_insert_id,),
                )
        except StorageError as e:
            return self._write_failure(e, "Failed to submit feedback.")

        if not row:
            return FailureModel.of(
                code=ErrorCodeEnum.STORAGE,
                message="Failed to submit feedback.",
            )
        feedback = self._from_row(row)
        logger.info("Feedback %s submitted by user %s", feedback.id, feedback.user_id)
        return SuccessModel(data=feedback)

    @start_as_current_span("feedback_get_all_for_owner")
    async def get_all_for_owner(self, user_id: int) -> FeedbacksResult:
        """
        Feedback of a user, newest first.
        """
        return await self._list(
            "SELECT * FROM feedback WHERE userId = ? ORDER BY createdAt DESC, id DESC",
            (user_id,),
            "Failed to retrieve feedback.",
        )

    @start_as_current_span("feedback_get_by_status")
    async def get_by_status(
        self,
        status: FeedbackStatusEnum,
        user_id: int | None = None,
    ) -> FeedbacksResult:
        """
        Feedback with a given status, newest first.

        If `user_id` is set, only the feedback of this user.
        """
        try:
            status = FeedbackStatusEnum(status)
        except ValueError:
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Status must be pending, reviewed or resolved.",
            )
        if user_id is None:
            return await self._list(
                "SELECT * FROM feedback WHERE status = ? ORDER BY createdAt DESC, id DESC",
                (status.value,),
                "Failed to retrieve feedback.",
            )
        return await self._list(
            "SELECT * FROM feedback WHERE status = ? AND userId = ? ORDER BY createdAt DESC, id DESC",
            (status.value, user_id),
            "Failed to retrieve feedback.",
        )

    @start_as_current_span("feedback_get_all")
    async def get_all(self) -> FeedbacksResult:
        """
        All feedback of all users, newest first.
        """
        return await self._list(
            "SELECT * FROM feedback ORDER BY createdAt DESC, id DESC",
            (),
            "Failed to retrieve feedback.",
        )

    @start_as_current_span("feedback_update")
    async def update(
        self,
        feedback_id: int,
        patch: FeedbackPatchModel | Mapping[str, Any],
    ) -> FeedbackResult:
        model = self._validate(FeedbackPatchModel, patch)
        if isinstance(model, FailureModel):
            return model
        return await self._update(feedback_id, model)

    async def mark_reviewed(self, feedback_id: int) -> FeedbackResult:
        return await self.update(feedback_id, FeedbackPatchModel(status=FeedbackStatusEnum.REVIEWED))

    async def mark_resolved(self, feedback_id: int) -> FeedbackResult:
        return await self.update(feedback_id, FeedbackPatchModel(status=FeedbackStatusEnum.RESOLVED))

    @start_as_current_span("feedback_delete_for_owner")
    async def delete_for_owner(self, user_id: int) -> SuccessModel[int] | FailureModel:
        """
        Delete all feedback of a user.

        Data is the number of deleted rows.
        """
        try:
            res = await self._db.execute(
                "DELETE FROM feedback WHERE userId = ?",
                (user_id,),
            )
        except StorageError as e:
            return self._storage_failure(e, "Failed to delete feedback.")
        return SuccessModel(data=res.changes)

    @start_as_current_span("feedback_get_stats")
    async def get_stats(self, user_id: int | None = None) -> SuccessModel[FeedbackStatsModel] | FailureModel:
        """
        Feedback counters per status, of all users or of one.
        """
        sql = "SELECT status, COUNT(*) AS count FROM feedback"
        params: tuple[Any, ...] = ()
        if user_id is not None:
            sql += " WHERE userId = ?"
            params = (user_id,)
        sql += " GROUP BY status"

        try:
            rows = await self._db.query(sql, params)
        except StorageError as e:
            return self._storage_failure(e, "Failed to load feedback statistics.")

        counts = {row["status"]: row["count"] for row in rows}
        return SuccessModel(
            data=FeedbackStatsModel(
                pending=counts.get(FeedbackStatusEnum.PENDING.value, 0),
                resolved=counts.get(FeedbackStatusEnum.RESOLVED.value, 0),
                reviewed=counts.get(FeedbackStatusEnum.REVIEWED.value, 0),
                total=sum(counts.values()),
            )
        )
