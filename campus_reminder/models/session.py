from enum import Enum

from pydantic import BaseModel

from campus_reminder.models.reminder import UserStatsModel
from campus_reminder.models.user import UserModel


class AuthStateEnum(str, Enum):
    ANONYMOUS = "anonymous"
    """No user is logged in."""
    AUTHENTICATED = "authenticated"
    """A user is logged in and backed by a stored account."""
    LOADING = "loading"
    """A login, registration, logout or refresh is in flight."""
    UNINITIALIZED = "uninitialized"
    """The session status was never checked."""


class SessionStateModel(BaseModel):
    """
    Snapshot of the session, as displayed by the UI.
    """

    error: str | None = None
    state: AuthStateEnum = AuthStateEnum.UNINITIALIZED
    stats: UserStatsModel | None = None
    user: UserModel | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthStateEnum.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.state == AuthStateEnum.LOADING
