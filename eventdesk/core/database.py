from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager, nullcontext
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiomysql
import aiosqlite
from loguru import logger

from .config import get_settings

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
MIGRATIONS_DIR = _PROJECT_ROOT / "migrations"

_DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_PLACEHOLDER = re.compile(r"%s")
_SQL_TOKEN = re.compile(
    r"""'(?:[^']|'')*'|"[^"]*"|--[^\n]*|/\*.*?\*/|;|[^'";\-/]+|.""",
    re.DOTALL,
)


def split_sql_statements(script: str) -> list[str]:
    """Split a migration script on ``;``, ignoring comments and quoted literals."""

    statements: list[str] = []
    current: list[str] = []
    for match in _SQL_TOKEN.finditer(script):
        token = match.group(0)
        if token.startswith("--") or token.startswith("/*"):
            continue
        if token == ";":
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
            continue
        current.append(token)
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


def to_db_datetime(value: datetime | None) -> str | None:
    """Render a datetime as a naive UTC string both MySQL and SQLite compare correctly."""

    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(_DB_DATETIME_FORMAT)


def from_db_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text, _DB_DATETIME_FORMAT)
            except ValueError:
                return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Database:
    """Async access to MySQL (aiomysql pool) or SQLite (one aiosqlite connection).

    Queries are written once with ``%s`` placeholders. SQLite is selected
    whenever the MySQL host, user or database name is not configured.
    """

    def __init__(self) -> None:
        self._settings = get_settings()
        self._pool: aiomysql.Pool | None = None
        self._sqlite_conn: aiosqlite.Connection | None = None
        settings = self._settings
        self._use_sqlite = not (settings.database_host and settings.database_user and settings.database_name)
        self._sqlite_write_lock = asyncio.Lock()
        self._transaction_conn: ContextVar[Any] = ContextVar(f"eventdesk_transaction_{id(self)}", default=None)

    def is_sqlite(self) -> bool:
        return self._use_sqlite

    def is_connected(self) -> bool:
        return self._pool is not None or self._sqlite_conn is not None

    def _sqlite_path(self) -> Path:
        if self._settings.sqlite_path:
            return self._settings.sqlite_path.expanduser()
        return _PROJECT_ROOT / "eventdesk.db"

    async def connect(self) -> None:
        if self.is_connected():
            return
        if self._use_sqlite:
            path = self._sqlite_path()
            logger.info("Connecting to SQLite database at {path}", path=str(path))
            conn = await aiosqlite.connect(str(path))
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.commit()
            self._sqlite_conn = conn
            return
        logger.info("Connecting to MySQL at {host}", host=self._settings.database_host)
        self._pool = await aiomysql.create_pool(
            host=self._settings.database_host,
            user=self._settings.database_user,
            password=self._settings.database_password or "",
            db=self._settings.database_name,
            autocommit=True,
            minsize=1,
            maxsize=10,
            pool_recycle=600,
            init_command="SET time_zone = '+00:00'",
        )

    async def disconnect(self) -> None:
        if self._sqlite_conn is not None:
            await self._sqlite_conn.close()
            self._sqlite_conn = None
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None
        logger.info("Database disconnected")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Yield a pooled MySQL connection or the shared SQLite connection."""
        if self._use_sqlite:
            if self._sqlite_conn is None:
                raise RuntimeError("SQLite database not initialised")
            yield self._sqlite_conn
            return
        if self._pool is None:
            raise RuntimeError("Database pool not initialised")
        async with self._pool.acquire() as conn:
            yield conn

    async def _sqlite_run(self, conn: Any, sql: str, params: tuple | None, mode: str, *, commit: bool) -> Any:
        cursor = await conn.execute(_PLACEHOLDER.sub("?", sql), params or ())
        if mode == "write":
            if commit:
                await conn.commit()
            return max(cursor.rowcount or 0, 0)
        if mode == "one":
            row = await cursor.fetchone()
            return dict(row) if row else None
        return [dict(row) for row in await cursor.fetchall()]

    async def _mysql_run(self, conn: Any, sql: str, params: tuple | None, mode: str) -> Any:
        async with conn.cursor(aiomysql.DictCursor) as cursor:
            affected = await cursor.execute(sql, params)
            if mode == "write":
                return int(affected or 0)
            if mode == "one":
                return await cursor.fetchone()
            return list(await cursor.fetchall())

    async def _run(self, sql: str, params: tuple | None, mode: str) -> Any:
        current = self._transaction_conn.get()
        if current is not None:
            if self._use_sqlite:
                return await self._sqlite_run(current, sql, params, mode, commit=False)
            return await self._mysql_run(current, sql, params, mode)
        if self._use_sqlite:
            if mode == "write":
                # Wait for an open transaction on the shared connection to finish.
                async with self._sqlite_write_lock:
                    async with self.acquire() as conn:
                        return await self._sqlite_run(conn, sql, params, mode, commit=True)
            async with self.acquire() as conn:
                return await self._sqlite_run(conn, sql, params, mode, commit=True)
        async with self.acquire() as conn:
            return await self._mysql_run(conn, sql, params, mode)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed statements on one connection and commit them together.

        Any exception rolls every statement back. A nested block joins the
        outer transaction.
        """
        if self._transaction_conn.get() is not None:
            yield
            return
        guard = self._sqlite_write_lock if self._use_sqlite else nullcontext()
        async with guard:
            async with self.acquire() as conn:
                if not self._use_sqlite:
                    await conn.begin()
                token = self._transaction_conn.set(conn)
                try:
                    yield
                except BaseException:
                    await conn.rollback()
                    raise
                else:
                    await conn.commit()
                finally:
                    self._transaction_conn.reset(token)

    async def execute(self, sql: str, params: tuple | None = None) -> int:
        """Run a write statement and return the number of affected rows."""
        return await self._run(sql, params, "write")

    async def fetch_one(self, sql: str, params: tuple | None = None) -> dict[str, Any] | None:
        return await self._run(sql, params, "one")

    async def fetch_all(self, sql: str, params: tuple | None = None) -> list[dict[str, Any]]:
        return await self._run(sql, params, "all")

    async def applied_migrations(self) -> set[str]:
        """Names of the migrations recorded in the tracking table.

        Raises the driver error unchanged when the tracking table is absent so
        callers can tell "no marker" apart from "nothing applied".
        """
        rows = await self.fetch_all("SELECT name FROM migrations")
        return {Path(str(row["name"])).stem for row in rows}

    async def _ensure_migrations_table(self) -> None:
        await self.execute("CREATE TABLE IF NOT EXISTS migrations (name VARCHAR(255) PRIMARY KEY)")

    async def _apply_migration_file(self, path: Path) -> None:
        for statement in split_sql_statements(path.read_text(encoding="utf-8")):
            await self.execute(statement)
        await self.execute("INSERT INTO migrations (name) VALUES (%s)", (path.name,))

    @asynccontextmanager
    async def _migration_lock(self) -> AsyncIterator[None]:
        # SQLite runs single-process; MySQL deployments may start several workers.
        if self._use_sqlite:
            yield
            return
        lock_name = f"{self._settings.database_name}_migration_lock"
        timeout = self._settings.migration_lock_timeout
        async with self.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT GET_LOCK(%s, %s)", (lock_name, timeout))
                result = await cursor.fetchone()
            if not result or result[0] != 1:
                logger.error("Unable to obtain migration lock {lock} within {timeout}s", lock=lock_name, timeout=timeout)
                raise RuntimeError("Could not obtain database migration lock")
            try:
                yield
            finally:
                async with conn.cursor() as cursor:
                    await cursor.execute("SELECT RELEASE_LOCK(%s)", (lock_name,))

    async def run_migrations(self, migrations_dir: Path | None = None) -> list[str]:
        """Apply every pending ``migrations/*.sql`` file in name order.

        Returns the names applied by this call.
        """
        await self.connect()
        directory = migrations_dir or MIGRATIONS_DIR
        if not directory.exists():
            logger.warning("No migrations directory found at {path}", path=str(directory))
            return []

        applied_now: list[str] = []
        async with self._migration_lock():
            await self._ensure_migrations_table()
            done = {str(row["name"]) for row in await self.fetch_all("SELECT name FROM migrations")}
            for path in sorted(directory.glob("*.sql")):
                if path.name in done:
                    continue
                await self._apply_migration_file(path)
                applied_now.append(path.name)
                logger.info("Applied migration {name}", name=path.name)
        return applied_now


db = Database()
