import pytest
from pytest_assume.plugin import assume

from campus_reminder.models.feedback import FeedbackStatusEnum
from campus_reminder.models.result import ErrorCodeEnum
from campus_reminder.models.user import UserModel
from campus_reminder.persistence.feedback import FeedbackService
from campus_reminder.persistence.users import UserService
from tests.conftest import PASSWORD


async def _create(feedback: FeedbackService, user: UserModel, subject: str = "Hello") -> int:
    res = await feedback.create(
        {
            "message": "The app is great",
            "subject": subject,
            "user_id": user.id,
        }
    )
    assert res.success
    return res.data.id


@pytest.mark.asyncio
async def test_create(feedback: FeedbackService, user: UserModel) -> None:
    res = await feedback.create(
        {
            "message": "  The app is great  ",
            "subject": "Hello",
            "user_id": user.id,
        }
    )

    assert res.success
    assume(res.data.status == FeedbackStatusEnum.PENDING)
    assume(res.data.message == "The app is great")
    assume(res.data.user_id == user.id)

    stored = await feedback.get_by_id(res.data.id)
    assert stored.success
    assume(stored.data == res.data)


@pytest.mark.asyncio
async def test_create_validation(feedback: FeedbackService, user: UserModel) -> None:
    """
    Both subject and message are required, both are reported.
    """
    res = await feedback.create({"message": "", "subject": " ", "user_id": user.id})

    assert not res.success
    assume(res.error.code == ErrorCodeEnum.VALIDATION)
    assume("Subject is required" in res.error.message)
    assume("Message is required" in res.error.message)


@pytest.mark.asyncio
async def test_create_unknown_owner(feedback: FeedbackService) -> None:
    res = await feedback.create(
        {"message": "Hi", "subject": "Hello", "user_id": 1000}
    )

    assert not res.success
    assume(res.error.code == ErrorCodeEnum.NOT_FOUND)


@pytest.mark.asyncio
async def test_status_lifecycle(feedback: FeedbackService, user: UserModel) -> None:
    """
    Status moves forward, but any status can be set directly.

    Steps:
    1. Create a feedback, pending
    2. Mark it reviewed, then resolved
    3. Set it back to pending
    """
    feedback_id = await _create(feedback, user)

    reviewed = await feedback.mark_reviewed(feedback_id)
    assert reviewed.success
    assume(reviewed.data.status == FeedbackStatusEnum.REVIEWED)

    resolved = await feedback.mark_resolved(feedback_id)
    assert resolved.success
    assume(resolved.data.status == FeedbackStatusEnum.RESOLVED)

    reopened = await feedback.update(feedback_id, {"status": "pending"})
    assert reopened.success
    assume(reopened.data.status == FeedbackStatusEnum.PENDING)

    invalid = await feedback.update(feedback_id, {"status": "archived"})
    assert not invalid.success
    assume(invalid.error.code == ErrorCodeEnum.VALIDATION)

    empty = await feedback.update(feedback_id, {})
    assert not empty.success
    assume(empty.error.code == ErrorCodeEnum.NO_UPDATES)


@pytest.mark.asyncio
async def test_filters_and_stats(
    feedback: FeedbackService,
    users: UserService,
    user: UserModel,
) -> None:
    other = await users.create(
        {
            "email": "other@campus.edu",
            "first_name": "Alan",
            "last_name": "Turing",
            "password": PASSWORD,
        }
    )
    assert other.success

    first_id = await _create(feedback, user, subject="First")
    second_id = await _create(feedback, user, subject="Second")
    other_id = await _create(feedback, other.data, subject="Other")
    assert (await feedback.mark_resolved(first_id)).success

    owned = await feedback.get_all_for_owner(user.id)
    assert owned.success
    assume([f.id for f in owned.data] == [second_id, first_id])  # Newest first

    everything = await feedback.get_all()
    assert everything.success
    assume({f.id for f in everything.data} == {first_id, second_id, other_id})

    pending = await feedback.get_by_status(FeedbackStatusEnum.PENDING)
    assert pending.success
    assume({f.id for f in pending.data} == {second_id, other_id})

    own_pending = await feedback.get_by_status(FeedbackStatusEnum.PENDING, user_id=user.id)
    assert own_pending.success
    assume([f.id for f in own_pending.data] == [second_id])

    stats = await feedback.get_stats()
    assert stats.success
    assume(stats.data.total == 3)
    assume(stats.data.pending == 2)
    assume(stats.data.resolved == 1)
    assume(stats.data.reviewed == 0)

    own_stats = await feedback.get_stats(user_id=other.data.id)
    assert own_stats.success
    assume(own_stats.data.total == 1)


@pytest.mark.asyncio
async def test_delete(feedback: FeedbackService, user: UserModel) -> None:
    first_id = await _create(feedback, user)
    await _create(feedback, user)

    res = await feedback.delete(first_id)
    assert res.success
    assume(res.data is True)

    missing = await feedback.get_by_id(first_id)
    assert not missing.success
    assume(missing.error.code == ErrorCodeEnum.NOT_FOUND)

    owned = await feedback.delete_for_owner(user.id)
    assert owned.success
    assume(owned.data == 1)
