from collections.abc import Mapping
from typing import Any

from campus_reminder.helpers.credentials import (
    hash_password,
    profile_completion_score,
    validate_email,
    validate_password,
    verify_password,
)
from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from campus_reminder.models.result import ErrorCodeEnum, FailureModel, SuccessModel
from campus_reminder.models.user import UserCreateModel, UserModel, UserPatchModel
from campus_reminder.persistence.database import RowDict, Transaction
from campus_reminder.persistence.errors import StorageError
from campus_reminder.persistence.ientity import (
    IEntityService,
    is_constraint_violation,
    utc_now,
)

UserResult = SuccessModel[UserModel] | FailureModel


def _conflict() -> FailureModel:
    return FailureModel.of(
        code=ErrorCodeEnum.CONFLICT,
        message="An account with this email already exists.",
    )


class UserService(IEntityService[UserModel]):
    """
    User accounts.

    Passwords are only handled here, hashed before storage. The hash is never returned.
    """

    _label = "User"
    _table = "users"

    def _from_row(self, row: RowDict) -> UserModel:
        # Password hash is not part of the model, it is ignored
        return UserModel.model_validate(row)

    @start_as_current_span("user_create")
    async def create(self, data: UserCreateModel | Mapping[str, Any]) -> UserResult:
        """
        Create an account.

        Email is stored lowercased, it must not be taken by another account.
        """
        model = self._validate(UserCreateModel, data)
        if isinstance(model, FailureModel):
            return model

        now = utc_now()
        try:
            # Pre-check for a clear error, the unique index catches races
            if await self._db.query_one(
                "SELECT id FROM users WHERE email = ?",
                (model.email,),
            ):
                return _conflict()

            async with self._db.transaction() as tx:
                res = await tx.execute(
                    """
                    INSERT INTO users (email, passwordHash, firstName, lastName, phone, bio, university, major, year, profilePicture, profileCompletionScore, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        model.email,
                        hash_password(model.password),
                        model.first_name,
                        model.last_name,
                        model.phone,
                        model.bio,
                        model.university,
                        model.major,
                        model.year,
                        model.profile_picture,
                        profile_completion_score(model),
                        now,
                        now,
                    ),
                )
                row = await tx.query_one(
                    "SELECT * FROM users WHERE id = ?",
                    (res.last_insert_id,),
                )
        except StorageError as e:
            return self._write_failure(e, "Failed to create user account.")

        if not row:
            return FailureModel.of(
                code=ErrorCodeEnum.STORAGE,
                message="Failed to create user account.",
            )
        user = self._from_row(row)
        SpanAttributeEnum.USER_ID.attribute(user.id)
        logger.info("User %s created", user.id)
        return SuccessModel(data=user)

    @start_as_current_span("user_authenticate")
    async def authenticate(self, email: str, password: str) -> UserResult:
        """
        Check credentials and return the matching user.
        """
        email = email.strip().lower()
        if not validate_email(email):
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Please enter a valid email address.",
            )
        if not password:
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Password is required.",
            )

        try:
            row = await self._db.query_one(
                "SELECT * FROM users WHERE email = ?",
                (email,),
            )
        except StorageError as e:
            return self._storage_failure(e, "Login failed, please try again.")

        if not row:
            return FailureModel.of(
                code=ErrorCodeEnum.NOT_FOUND,
                message="User not found. Please check your email or sign up.",
            )
        if not verify_password(password, row["passwordHash"]):
            logger.info("Wrong password for user %s", row["id"])
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Invalid email or password.",
            )
        return SuccessModel(data=self._from_row(row))

    @start_as_current_span("user_get_by_email")
    async def get_by_email(self, email: str) -> UserResult:
        try:
            row = await self._db.query_one(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            )
        except StorageError as e:
            return self._storage_failure(e, "Failed to retrieve user.")
        if not row:
            return self._not_found()
        return SuccessModel(data=self._from_row(row))

    @start_as_current_span("user_get_all")
    async def get_all(self) -> SuccessModel[list[UserModel]] | FailureModel:
        """
        List all accounts, newest first.
        """
        return await self._list(
            "SELECT * FROM users ORDER BY createdAt DESC, id DESC",
            (),
            "Failed to retrieve users.",
        )

    @start_as_current_span("user_update")
    async def update(
        self,
        user_id: int,
        patch: UserPatchModel | Mapping[str, Any],
    ) -> UserResult:
        """
        Update a profile.

        The profile completion score is recomputed along.
        """
        model = self._validate(UserPatchModel, patch)
        if isinstance(model, FailureModel):
            return model

        if model.email:
            try:
                if await self._db.query_one(
                    "SELECT id FROM users WHERE email = ? AND id != ?",
                    (model.email, user_id),
                ):
                    return _conflict()
            except StorageError as e:
                return self._storage_failure(e, "Failed to update user.")

        return await self._update(user_id, model)

    def _write_failure(self, e: StorageError, message: str) -> FailureModel:
        # A concurrent write may have taken the email in between
        if is_constraint_violation(e, "UNIQUE"):
            return _conflict()
        return self._storage_failure(e, message)

    async def _after_update(self, tx: Transaction, entity_id: int) -> None:
        row = await tx.query_one(
            "SELECT * FROM users WHERE id = ?",
            (entity_id,),
        )
        if not row:
            return
        await tx.execute(
            "UPDATE users SET profileCompletionScore = ? WHERE id = ?",
            (profile_completion_score(self._from_row(row)), entity_id),
        )

    @start_as_current_span("user_change_password")
    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
    ) -> UserResult:
        """
        Replace the password, after checking the current one.
        """
        validation = validate_password(new_password)
        if not validation.is_valid:
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message=". ".join(validation.errors),
            )

        try:
            async with self._db.transaction() as tx:
                row = await tx.query_one(
                    "SELECT * FROM users WHERE id = ?",
                    (user_id,),
                )
                if not row:
                    return self._not_found()
                if not verify_password(current_password, row["passwordHash"]):
                    return FailureModel.of(
                        code=ErrorCodeEnum.VALIDATION,
                        message="Current password is incorrect.",
                    )
                await tx.execute(
                    "UPDATE users SET passwordHash = ?, updatedAt = ? WHERE id = ?",
                    (hash_password(new_password), utc_now(), user_id),
                )
                row = await tx.query_one(
                    "SELECT * FROM users WHERE id = ?",
                    (user_id,),
                )
        except StorageError as e:
            return self._storage_failure(e, "Failed to change password.")

        if not row:
            return self._not_found()
        logger.info("Password changed for user %s", user_id)
        return SuccessModel(data=self._from_row(row))

    @start_as_current_span("user_touch_last_login")
    async def touch_last_login(self, user_id: int) -> SuccessModel[bool] | FailureModel:
        """
        Record a login.

        Data is `False` if the user does not exist.
        """
        try:
            res = await self._db.execute(
                "UPDATE users SET lastLoginAt = ? WHERE id = ?",
                (utc_now(), user_id),
            )
        except StorageError as e:
            return self._storage_failure(e, "Failed to update last login.")
        return SuccessModel(data=res.changes > 0)
