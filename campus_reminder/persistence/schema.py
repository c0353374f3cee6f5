"""
Table definitions and schema repair.

Repair is destructive: a table missing any expected column is dropped and created again, its rows are lost. A table referencing a rebuilt one is rebuilt too, its rows would point to nothing.
"""

from aiosqlite import Connection, Error as SqliteError
from pydantic import BaseModel

from campus_reminder.helpers.logging import logger
from campus_reminder.persistence.errors import StorageError


class TableSchema(BaseModel, frozen=True):
    columns: tuple[str, ...]
    """Expected columns, selected by the canary query."""
    ddl: str
    name: str
    references: tuple[str, ...] = ()
    """Parent tables, through foreign keys."""

    @property
    def canary(self) -> str:
        return f"SELECT {', '.join(self.columns)} FROM {self.name} LIMIT 1"


USERS = TableSchema(
    name="users",
    columns=(
        "id",
        "email",
        "passwordHash",
        "firstName",
        "lastName",
        "phone",
        "bio",
        "university",
        "major",
        "year",
        "profilePicture",
        "profileCompletionScore",
        "lastLoginAt",
        "createdAt",
        "updatedAt",
    ),
    ddl="""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL COLLATE NOCASE,
            passwordHash TEXT NOT NULL,
            firstName TEXT NOT NULL,
            lastName TEXT NOT NULL,
            phone TEXT,
            bio TEXT,
            university TEXT,
            major TEXT,
            year TEXT,
            profilePicture TEXT,
            profileCompletionScore INTEGER NOT NULL DEFAULT 0,
            lastLoginAt TEXT,
            createdAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """,
)

REMINDERS = TableSchema(
    name="reminders",
    references=("users",),
    columns=(
        "id",
        "userId",
        "title",
        "description",
        "dueDate",
        "isCompleted",
        "priority",
        "createdAt",
        "updatedAt",
    ),
    ddl="""
        CREATE TABLE reminders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            userId INTEGER NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            dueDate TEXT NOT NULL,
            isCompleted INTEGER NOT NULL DEFAULT 0,
            priority TEXT NOT NULL DEFAULT 'medium',
            createdAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (userId) REFERENCES users (id) ON DELETE CASCADE
        )
    """,
)

FEEDBACK = TableSchema(
    name="feedback",
    references=("users",),
    columns=(
        "id",
        "userId",
        "subject",
        "message",
        "status",
        "createdAt",
        "updatedAt",
    ),
    ddl="""
        CREATE TABLE feedback (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            userId INTEGER NOT NULL,
            subject TEXT NOT NULL,
            message TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            createdAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (userId) REFERENCES users (id) ON DELETE CASCADE
        )
    """,
)

# Parents first, children reference them
TABLES: tuple[TableSchema, ...] = (USERS, REMINDERS, FEEDBACK)

INDEXES: dict[str, str] = {
    "idx_users_email": "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users (email)",
    "idx_reminders_userId": "CREATE INDEX IF NOT EXISTS idx_reminders_userId ON reminders (userId)",
    "idx_reminders_dueDate": "CREATE INDEX IF NOT EXISTS idx_reminders_dueDate ON reminders (dueDate)",
    "idx_feedback_userId": "CREATE INDEX IF NOT EXISTS idx_feedback_userId ON feedback (userId)",
    "idx_feedback_status": "CREATE INDEX IF NOT EXISTS idx_feedback_status ON feedback (status)",
}


async def enable_foreign_keys(db: Connection) -> None:
    """
    Enforce foreign keys on the connection.

    SQLite disables them by default, for each connection. Without them, deleting a user leaves its reminders and feedback behind.
    """
    await _ddl(db, "PRAGMA foreign_keys = ON")


async def ensure_schema(db: Connection) -> None:
    """
    Make sure every table has the expected columns, repair them otherwise.

    Each table is probed with a canary query selecting all its expected columns. If the query fails, the table is missing or stale. Tables to rebuild are dropped children first, so foreign keys of the old tables never block, then created parents first.
    """
    await enable_foreign_keys(db)
    rebuilt: list[TableSchema] = []
    for table in TABLES:
        if any(parent.name in table.references for parent in rebuilt):
            logger.warning("Table %s references a rebuilt table, recreating it", table.name)
        elif not await _is_up_to_date(db, table):
            logger.warning("Table %s is missing or stale, recreating it", table.name)
        else:
            logger.debug("Table %s is up to date", table.name)
            continue
        rebuilt.append(table)

    for table in reversed(rebuilt):
        await _ddl(db, f"DROP TABLE IF EXISTS {table.name}")
    for table in rebuilt:
        await _ddl(db, table.ddl)
        logger.info("Table %s created", table.name)


async def create_indexes(db: Connection) -> None:
    for name, sql in INDEXES.items():
        await _ddl(db, sql)
        logger.debug("Index %s ready", name)


async def _is_up_to_date(db: Connection, table: TableSchema) -> bool:
    try:
        # Fetch results to release the statement, a pending read would lock the table
        async with db.execute(table.canary) as cursor:
            await cursor.fetchall()
    except SqliteError as e:
        logger.debug("Canary query failed on %s: %s", table.name, e)
        return False
    return True


async def _ddl(db: Connection, sql: str) -> None:
    """
    Run a schema statement.

    There is no degraded mode, any failure is raised as a `StorageError`.
    """
    try:
        await db.execute(sql)
    except SqliteError as e:
        logger.exception("Schema statement failed")
        raise StorageError("Database schema setup failed", sql=sql) from e
