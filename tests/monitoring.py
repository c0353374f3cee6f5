import pytest
from pytest_assume.plugin import assume
from structlog.contextvars import clear_contextvars, get_contextvars

from campus_reminder.helpers.monitoring import SpanAttributeEnum
from campus_reminder.models.user import UserModel
from campus_reminder.persistence.reminders import ReminderService
from campus_reminder.persistence.users import UserService


@pytest.mark.asyncio
async def test_entity_attributes_not_logged(
    users: UserService,
    reminders: ReminderService,
    user: UserModel,
) -> None:
    """
    Row identifiers stay on the spans and never end up in later log lines.
    """
    clear_contextvars()

    assert (await users.get_by_id(user.id)).success
    assert not (await reminders.update(1000, {"title": "Ghost"})).success
    assert (await users.delete(1000)).success

    context = get_contextvars()
    assume(SpanAttributeEnum.ENTITY_ID.value not in context)
    assume(SpanAttributeEnum.ENTITY_TABLE.value not in context)


def test_session_attributes_logged() -> None:
    clear_contextvars()

    SpanAttributeEnum.USER_ID.attribute(42)
    assume(get_contextvars().get(SpanAttributeEnum.USER_ID.value) == 42)

    SpanAttributeEnum.USER_ID.clear()
    assume(SpanAttributeEnum.USER_ID.value not in get_contextvars())


@pytest.mark.parametrize(
    "attribute, expected",
    [
        pytest.param(SpanAttributeEnum.AUTH_STATE, True, id="auth_state"),
        pytest.param(SpanAttributeEnum.ENTITY_ID, False, id="entity_id"),
        pytest.param(SpanAttributeEnum.ENTITY_TABLE, False, id="entity_table"),
        pytest.param(SpanAttributeEnum.USER_ID, True, id="user_id"),
    ],
)
def test_is_session(attribute: SpanAttributeEnum, expected: bool) -> None:
    assume(attribute.is_session is expected)
