import asyncio

import pytest
from pytest_assume.plugin import assume

from campus_reminder.helpers.config_models.database import DatabaseModel
from campus_reminder.models.readiness import ReadinessEnum
from campus_reminder.models.user import UserModel
from campus_reminder.persistence.database import Database
from campus_reminder.persistence.errors import NotInitializedError, StorageError
from campus_reminder.persistence.users import UserService


@pytest.mark.asyncio
async def test_not_initialized() -> None:
    """
    Using the database before initialization raises, readiness reports it.
    """
    db = Database(DatabaseModel(path=":memory:"))

    assume(not db.is_initialized)
    with pytest.raises(NotInitializedError):
        await db.query("SELECT 1")
    with pytest.raises(NotInitializedError):
        await db.execute("SELECT 1")
    assume(await db.readiness() == ReadinessEnum.FAIL)


@pytest.mark.asyncio
async def test_not_initialized_as_failure() -> None:
    """
    Services report an uninitialized database as a failure, never raise.
    """
    users = UserService(Database(DatabaseModel(path=":memory:")))

    res = await users.get_by_id(1)

    assert not res.success
    assume(res.error.code == "not_initialized")


@pytest.mark.asyncio
async def test_lifecycle() -> None:
    db = Database(DatabaseModel(path=":memory:"))

    await db.initialize()
    await db.initialize()  # Idempotent
    assume(db.is_initialized)
    assume(await db.readiness() == ReadinessEnum.OK)

    await db.close()
    assume(not db.is_initialized)
    with pytest.raises(NotInitializedError):
        await db.query_one("SELECT 1")

    # Reopens from scratch
    await db.initialize()
    assume(await db.readiness() == ReadinessEnum.OK)
    await db.close()


@pytest.mark.asyncio
async def test_storage_error(database: Database) -> None:
    """
    Engine errors are wrapped, with the statement attached.
    """
    with pytest.raises(StorageError) as exc_info:
        await database.query("SELECT * FROM nope WHERE id = ?", (1,))

    assume(exc_info.value.sql == "SELECT * FROM nope WHERE id = ?")
    assume(exc_info.value.params == (1,))
    assume(exc_info.value.__cause__ is not None)


@pytest.mark.asyncio
async def test_transaction_commit(database: Database) -> None:
    async with database.transaction() as tx:
        res = await tx.execute(
            "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
            ("commit@campus.edu", "salt:digest", "Ada", "Lovelace"),
        )
        assume(res.changes == 1)
        assume(res.last_insert_id)

    row = await database.query_one(
        "SELECT email FROM users WHERE email = ?",
        ("commit@campus.edu",),
    )
    assume(row == {"email": "commit@campus.edu"})


@pytest.mark.asyncio
async def test_transaction_rollback(database: Database) -> None:
    """
    A failing transaction leaves no rows behind.

    Steps:
    1. Insert a row in a transaction
    2. Fail on the next statement
    3. Check the first row is not stored
    """
    with pytest.raises(StorageError):
        async with database.transaction() as tx:
            await tx.execute(
                "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
                ("rollback@campus.edu", "salt:digest", "Ada", "Lovelace"),
            )
            # Unique constraint violation
            await tx.execute(
                "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
                ("ROLLBACK@campus.edu", "salt:digest", "Ada", "Lovelace"),
            )

    row = await database.query_one("SELECT COUNT(*) AS count FROM users")
    assert row
    assume(row["count"] == 0)

    # Database still usable
    assume(await database.readiness() == ReadinessEnum.OK)


@pytest.mark.asyncio
async def test_transaction_rollback_on_any_error(database: Database) -> None:
    with pytest.raises(RuntimeError):
        async with database.transaction() as tx:
            await tx.execute(
                "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
                ("runtime@campus.edu", "salt:digest", "Ada", "Lovelace"),
            )
            raise RuntimeError("Abort")

    assume(
        await database.query_one(
            "SELECT id FROM users WHERE email = ?",
            ("runtime@campus.edu",),
        )
        is None
    )


@pytest.mark.asyncio
async def test_transaction_rollback_failure(database: Database) -> None:
    """
    A failing rollback never hides the error raised in the block.

    Steps:
    1. End the transaction from inside the block, so the rollback has nothing to undo
    2. Raise an error in the block
    3. Check the error propagates and the database stays usable
    """
    with pytest.raises(RuntimeError, match="Abort"):
        async with database.transaction() as tx:
            await tx.execute("ROLLBACK")
            raise RuntimeError("Abort")

    assume(await database.readiness() == ReadinessEnum.OK)
    async with database.transaction() as tx:
        await tx.execute(
            "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
            ("after@campus.edu", "salt:digest", "Ada", "Lovelace"),
        )
    assume(
        await database.query_one(
            "SELECT id FROM users WHERE email = ?",
            ("after@campus.edu",),
        )
        is not None
    )


@pytest.mark.asyncio
async def test_sequential_order(database: Database) -> None:
    """
    Statements issued together complete in issue order.
    """
    emails = [f"user{i}@campus.edu" for i in range(20)]
    await asyncio.gather(
        *[
            database.execute(
                "INSERT INTO users (email, passwordHash, firstName, lastName) VALUES (?, ?, ?, ?)",
                (email, "salt:digest", "Ada", "Lovelace"),
            )
            for email in emails
        ]
    )

    rows = await database.query("SELECT email FROM users ORDER BY id ASC")
    assume([row["email"] for row in rows] == emails)


@pytest.mark.asyncio
async def test_clear_all_data(database: Database, user: UserModel) -> None:
    await database.execute(
        "INSERT INTO reminders (userId, title, dueDate) VALUES (?, ?, ?)",
        (user.id, "Exam", "2099-01-01"),
    )

    info = await database.info()
    assume(info.counts["users"] == 1)
    assume(info.counts["reminders"] == 1)
    assume(set(info.tables) >= {"users", "reminders", "feedback"})

    await database.clear_all_data()

    info = await database.info()
    assume(all(count == 0 for count in info.counts.values()))
