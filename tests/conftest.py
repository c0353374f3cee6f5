import random
import string
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from campus_reminder.helpers.config_models.database import DatabaseModel
from campus_reminder.helpers.config_models.session import (
    MemoryModel,
    ModeEnum as SessionModeEnum,
    SessionModel,
)
from campus_reminder.helpers.session import SessionManager
from campus_reminder.models.user import UserModel
from campus_reminder.persistence.database import Database
from campus_reminder.persistence.feedback import FeedbackService
from campus_reminder.persistence.memory import MemoryKeyValueStore
from campus_reminder.persistence.reminders import ReminderService
from campus_reminder.persistence.users import UserService

PASSWORD = "Abcd1234"


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.ascii_lowercase) for _ in range(20))
    return text


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """
    Isolated in-memory database, initialized.
    """
    db = Database(DatabaseModel(path=":memory:"))
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def users(database: Database) -> UserService:
    return UserService(database)


@pytest.fixture
def reminders(database: Database) -> ReminderService:
    return ReminderService(database)


@pytest.fixture
def feedback(database: Database) -> FeedbackService:
    return FeedbackService(database)


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore(MemoryModel())


@pytest.fixture
def session(
    users: UserService,
    reminders: ReminderService,
    store: MemoryKeyValueStore,
) -> SessionManager:
    return SessionManager(
        config=SessionModel(mode=SessionModeEnum.MEMORY),
        reminders=reminders,
        store=store,
        users=users,
    )


@pytest_asyncio.fixture
async def user(users: UserService, random_text: str) -> UserModel:
    res = await users.create(
        {
            "email": f"{random_text}@campus.edu",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "password": PASSWORD,
        }
    )
    assert res.success
    return res.data
