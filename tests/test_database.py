import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from eventdesk.core.database import (
    MIGRATIONS_DIR,
    Database,
    from_db_datetime,
    split_sql_statements,
    to_db_datetime,
)


def test_split_ignores_comments_and_quoted_semicolons():
    script = """
    -- tickets; first
    CREATE TABLE a (id INT);
    /* block; comment */
    INSERT INTO a VALUES ('x;y'), ('it''s; fine');
    UPDATE a SET id = 2
    """

    assert split_sql_statements(script) == [
        "CREATE TABLE a (id INT)",
        "INSERT INTO a VALUES ('x;y'), ('it''s; fine')",
        "UPDATE a SET id = 2",
    ]


def test_split_keeps_arithmetic_and_paths():
    assert split_sql_statements("SELECT 4 - 2, 8 / 4;;") == ["SELECT 4 - 2, 8 / 4"]


@pytest.mark.parametrize("path", sorted(MIGRATIONS_DIR.glob("*.sql")), ids=lambda path: path.name)
def test_every_migration_has_statements(path):
    assert split_sql_statements(path.read_text(encoding="utf-8"))


def test_datetimes_are_stored_as_naive_utc():
    local = datetime(2026, 5, 4, 6, 30, tzinfo=timezone(timedelta(hours=-3)))

    assert to_db_datetime(local) == "2026-05-04 09:30:00"
    assert to_db_datetime(None) is None


@pytest.mark.parametrize(
    "value",
    ["2026-05-04 09:30:00", "2026-05-04T09:30:00", "2026-05-04T09:30:00+00:00", datetime(2026, 5, 4, 9, 30)],
)
def test_stored_datetimes_read_back_as_aware_utc(value):
    assert from_db_datetime(value) == datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "yesterday"])
def test_unreadable_datetimes_are_none(value):
    assert from_db_datetime(value) is None


@pytest.fixture
def anyio_backend():
    return "asyncio"


@asynccontextmanager
async def _sqlite(tmp_path):
    database = Database()
    database._settings = database._settings.model_copy(update={"sqlite_path": tmp_path / "tx.db"})
    database._use_sqlite = True
    await database.connect()
    await database.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
    try:
        yield database
    finally:
        await database.disconnect()


@pytest.mark.anyio
async def test_transaction_commits_all_statements(tmp_path):
    async with _sqlite(tmp_path) as database:
        async with database.transaction():
            await database.execute("INSERT INTO notes (body) VALUES (%s)", ("first",))
            async with database.transaction():
                await database.execute("INSERT INTO notes (body) VALUES (%s)", ("second",))

        rows = await database.fetch_all("SELECT body FROM notes ORDER BY id")
        assert [row["body"] for row in rows] == ["first", "second"]


@pytest.mark.anyio
async def test_transaction_rolls_back_on_error(tmp_path):
    async with _sqlite(tmp_path) as database:
        with pytest.raises(sqlite3.OperationalError):
            async with database.transaction():
                await database.execute("INSERT INTO notes (body) VALUES (%s)", ("kept?",))
                await database.execute("UPDATE notes SET missing_column = 1")

        assert await database.fetch_all("SELECT body FROM notes") == []
        assert await database.execute("INSERT INTO notes (body) VALUES (%s)", ("after",)) == 1
        assert len(await database.fetch_all("SELECT body FROM notes")) == 1
