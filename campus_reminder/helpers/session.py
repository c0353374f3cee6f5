"""
Authentication state of the app.

States move from `UNINITIALIZED` to `LOADING`, then to `AUTHENTICATED` or `ANONYMOUS`. `LOADING` is entered again on every login, registration, logout and status check.

The logged in user is cached in the key-value store, so the session survives restarts. A cached user is always checked against the database before being trusted.
"""

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from campus_reminder.helpers.config_models.session import SessionModel
from campus_reminder.helpers.logging import logger
from campus_reminder.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from campus_reminder.models.reminder import UserStatsModel
from campus_reminder.models.result import (
    ErrorCodeEnum,
    ErrorModel,
    FailureModel,
    SuccessModel,
)
from campus_reminder.models.session import AuthStateEnum, SessionStateModel
from campus_reminder.models.user import (
    LoginModel,
    PasswordChangeModel,
    RegisterModel,
    UserModel,
    UserPatchModel,
)
from campus_reminder.persistence.ikvstore import IKeyValueStore
from campus_reminder.persistence.reminders import ReminderService
from campus_reminder.persistence.users import UserResult, UserService

AUTH_TOKEN_KEY = "@auth_token"
IS_AUTHENTICATED_KEY = "@is_authenticated"
USER_DATA_KEY = "@user_data"


def _not_authenticated() -> FailureModel:
    return FailureModel.of(
        code=ErrorCodeEnum.VALIDATION,
        message="You must be logged in.",
    )


class SessionManager:
    _config: SessionModel
    _reminders: ReminderService
    _state: SessionStateModel
    _store: IKeyValueStore
    _users: UserService

    def __init__(
        self,
        users: UserService,
        reminders: ReminderService,
        store: IKeyValueStore,
        config: SessionModel,
    ):
        self._config = config
        self._reminders = reminders
        self._state = SessionStateModel()
        self._store = store
        self._users = users

    @property
    def state(self) -> SessionStateModel:
        """
        Current state, as a copy.
        """
        return self._state.model_copy()

    @start_as_current_span("session_login")
    async def login(self, credentials: LoginModel | Mapping[str, Any]) -> UserResult:
        """
        Log a user in.

        On failure, the session is anonymous and the error message is kept in the state.
        """
        self._loading()
        try:
            model = (
                credentials
                if isinstance(credentials, LoginModel)
                else LoginModel.model_validate(credentials)
            )
        except ValidationError as e:
            return self._fail(FailureModel(error=ErrorModel.from_validation(e)))

        res = await self._users.authenticate(model.email, model.password)
        if isinstance(res, FailureModel):
            logger.info("Login failed: %s", res.error.code.value)
            return self._fail(res)
        return await self._start(res.data)

    @start_as_current_span("session_register")
    async def register(self, data: RegisterModel | Mapping[str, Any]) -> UserResult:
        """
        Create an account and log it in.

        Password confirmation is checked before any storage access.
        """
        self._loading()
        try:
            model = (
                data
                if isinstance(data, RegisterModel)
                else RegisterModel.model_validate(data)
            )
        except ValidationError as e:
            return self._fail(FailureModel(error=ErrorModel.from_validation(e)))

        if model.password != model.confirm_password:
            return self._fail(
                FailureModel.of(
                    code=ErrorCodeEnum.VALIDATION,
                    message="Passwords do not match.",
                )
            )

        res = await self._users.create(model.to_create())
        if isinstance(res, FailureModel):
            logger.info("Registration failed: %s", res.error.code.value)
            return self._fail(res)
        return await self._start(res.data)

    @start_as_current_span("session_logout")
    async def logout(self) -> None:
        """
        Log the user out.

        The session becomes anonymous even if clearing the cache fails, a stale authenticated state is worse than a lost cache.
        """
        self._loading()
        try:
            if not await self._clear_cache():
                logger.warning("Session cache not fully cleared on logout")
        finally:
            self._transition(
                AuthStateEnum.ANONYMOUS,
                error=None,
                stats=None,
                user=None,
            )
            SpanAttributeEnum.USER_ID.clear()

    @start_as_current_span("session_check_auth_status")
    async def check_auth_status(self) -> SessionStateModel:
        """
        Restore the session at startup.

        The cached user must still exist in the database, otherwise the session is anonymous and the cache cleared.
        """
        self._loading()
        user = self._state.user or await self._load_cached_user()
        if not user:
            self._transition(AuthStateEnum.ANONYMOUS, stats=None, user=None)
            return self.state

        res = await self._users.get_by_id(user.id)
        if isinstance(res, FailureModel):
            if res.error.code == ErrorCodeEnum.NOT_FOUND:
                logger.warning("Cached user %s does not exist anymore", user.id)
            else:
                logger.error("Cannot verify cached user: %s", res.error.message)
            await self._clear_cache()
            self._transition(AuthStateEnum.ANONYMOUS, stats=None, user=None)
            SpanAttributeEnum.USER_ID.clear()
            return self.state

        await self._cache_user(res.data)
        SpanAttributeEnum.USER_ID.attribute(res.data.id)
        self._transition(AuthStateEnum.AUTHENTICATED, error=None, user=res.data)
        await self.refresh_stats()
        return self.state

    @start_as_current_span("session_update_profile")
    async def update_profile(self, patch: UserPatchModel | Mapping[str, Any]) -> UserResult:
        """
        Update the profile of the logged in user, keeping the cache in sync.
        """
        user = self._state.user
        if not self._state.is_authenticated or not user:
            return _not_authenticated()

        res = await self._users.update(user.id, patch)
        if isinstance(res, FailureModel):
            self._state.error = res.error.message
            return res

        await self._cache_user(res.data)
        self._state.error = None
        self._state.user = res.data
        return res

    @start_as_current_span("session_change_password")
    async def change_password(self, data: PasswordChangeModel | Mapping[str, Any]) -> UserResult:
        user = self._state.user
        if not self._state.is_authenticated or not user:
            return _not_authenticated()

        try:
            model = (
                data
                if isinstance(data, PasswordChangeModel)
                else PasswordChangeModel.model_validate(data)
            )
        except ValidationError as e:
            return FailureModel(error=ErrorModel.from_validation(e))

        if model.new_password != model.confirm_password:
            return FailureModel.of(
                code=ErrorCodeEnum.VALIDATION,
                message="Passwords do not match.",
            )

        res = await self._users.change_password(
            current_password=model.current_password,
            new_password=model.new_password,
            user_id=user.id,
        )
        if isinstance(res, FailureModel):
            return res

        await self._cache_user(res.data)
        self._state.user = res.data
        return res

    async def refresh_stats(self) -> UserStatsModel | None:
        """
        Recompute the reminder counters of the logged in user.

        Best effort, a failure is logged and never changes the authentication state.
        """
        user = self._state.user
        if not self._state.is_authenticated or not user:
            return None

        res = await self._reminders.get_stats(user.id)
        if isinstance(res, FailureModel):
            logger.warning("Cannot refresh stats: %s", res.error.message)
            return self._state.stats

        self._state.stats = res.data
        return res.data

    async def get_user_stats(self) -> SuccessModel[UserStatsModel] | FailureModel:
        user = self._state.user
        if not self._state.is_authenticated or not user:
            return _not_authenticated()

        res = await self._reminders.get_stats(user.id)
        if isinstance(res, SuccessModel):
            self._state.stats = res.data
        return res

    def clear_error(self) -> None:
        self._state.error = None

    async def _start(self, user: UserModel) -> SuccessModel[UserModel]:
        """
        Open an authenticated session for a verified user.
        """
        SpanAttributeEnum.USER_ID.attribute(user.id)

        res = await self._users.touch_last_login(user.id)
        if isinstance(res, FailureModel):
            logger.warning("Cannot record last login: %s", res.error.message)

        # Reload to include the login time
        fresh = await self._users.get_by_id(user.id)
        if isinstance(fresh, SuccessModel):
            user = fresh.data

        token = f"token_{user.id}_{uuid4().hex}"
        if not await self._store.set(
            key=AUTH_TOKEN_KEY,
            ttl_sec=self._config.ttl_sec,
            value=token,
        ):
            logger.warning("Session token not cached, session will not survive a restart")
        await self._store.set(
            key=IS_AUTHENTICATED_KEY,
            ttl_sec=self._config.ttl_sec,
            value="true",
        )
        await self._cache_user(user)

        self._transition(AuthStateEnum.AUTHENTICATED, error=None, user=user)
        logger.info("User %s logged in", user.id)
        await self.refresh_stats()
        return SuccessModel(data=user)

    async def _load_cached_user(self) -> UserModel | None:
        if await self._store.get(IS_AUTHENTICATED_KEY) != "true":
            return None
        raw = await self._store.get(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return UserModel.model_validate_json(raw)
        except ValidationError:
            logger.warning("Cached user is corrupted, ignoring it", exc_info=True)
            return None

    async def _cache_user(self, user: UserModel) -> None:
        if not await self._store.set(
            key=USER_DATA_KEY,
            ttl_sec=self._config.ttl_sec,
            value=user.model_dump_json(by_alias=True),
        ):
            logger.warning("User %s not cached", user.id)

    async def _clear_cache(self) -> bool:
        """
        Remove all session artifacts.

        Return `False` if any of them could not be removed.
        """
        cleared = True
        for key in (AUTH_TOKEN_KEY, IS_AUTHENTICATED_KEY, USER_DATA_KEY):
            cleared = await self._store.delete(key) and cleared
        return cleared

    def _fail(self, failure: FailureModel) -> FailureModel:
        self._transition(
            AuthStateEnum.ANONYMOUS,
            error=failure.error.message,
            stats=None,
            user=None,
        )
        return failure

    def _loading(self) -> None:
        self._transition(AuthStateEnum.LOADING)

    def _transition(self, state: AuthStateEnum, **changes: Any) -> None:
        logger.debug("Session %s -> %s", self._state.state.value, state.value)
        SpanAttributeEnum.AUTH_STATE.attribute(state.value)
        self._state = self._state.model_copy(update={"state": state, **changes})
