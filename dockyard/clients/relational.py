"""Relational façade over PostgreSQL for the ``users`` schema."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from dockyard.constants import DEFAULT_OPERATION_TIMEOUT_SECONDS
from dockyard.exceptions import NotFoundError, UniqueConstraintError
from dockyard.harness.spec import Endpoint

logger = logging.getLogger(__name__)

T = TypeVar("T")

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


@dataclass(frozen=True)
class User:
    """One row of a users table."""

    id: int
    name: str
    email: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> User:
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            created_at=row.get("created_at"),
        )


def table_identifier(name: str) -> sql.Identifier:
    """Validate a table name and quote it as an SQL identifier.

    Raises
    ------
    ValueError
        If ``name`` is not a plain identifier of at most 63 characters.
    """
    if not isinstance(name, str) or not TABLE_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return sql.Identifier(name)


class RelationalClient:
    """Blocking PostgreSQL client for a fixed users schema.

    The connection runs in autocommit mode; :meth:`execute_in_transaction`
    opens an explicit transaction around a unit of work, and every client
    call made inside it joins that transaction.

    Parameters
    ----------
    dsn : str | None
        ``postgresql://`` connection URL. Ignored when ``connection`` is given.
    timeout : float
        Connect timeout and server-side statement timeout in seconds.
    connection : psycopg.Connection | None
        Pre-built connection, mainly for tests.
    """

    def __init__(
        self,
        dsn: str | None = None,
        timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS,
        connection: psycopg.Connection | None = None,
    ) -> None:
        if connection is None:
            if dsn is None:
                raise ValueError("Either dsn or connection is required")
            connection = psycopg.connect(
                dsn,
                autocommit=True,
                row_factory=dict_row,
                connect_timeout=max(1, int(timeout)),
                options=f"-c statement_timeout={int(timeout * 1000)}",
            )
        self._conn = connection
        self.timeout = timeout

    @classmethod
    def from_endpoint(
        cls, endpoint: Endpoint, timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS
    ) -> RelationalClient:
        """Connect to the PostgreSQL service behind a resolved endpoint."""
        endpoint.ensure_valid()
        return cls(dsn=endpoint.url, timeout=timeout)

    def ping(self) -> bool:
        with self._conn.cursor() as cur:
            cur.execute("SELECT 1 AS ok")
            row = cur.fetchone()
        return row is not None and row["ok"] == 1

    def create_table(self, table: str) -> None:
        """Create the users table if it does not exist."""
        query = sql.SQL(
            "CREATE TABLE IF NOT EXISTS {} ("
            "id SERIAL PRIMARY KEY, "
            "name VARCHAR(100) NOT NULL, "
            "email VARCHAR(100) UNIQUE NOT NULL, "
            "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        ).format(table_identifier(table))
        self._execute(query)
        logger.debug("Ensured table %s", table)

    def drop_table(self, table: str) -> None:
        self._execute(sql.SQL("DROP TABLE IF EXISTS {}").format(table_identifier(table)))

    def table_exists(self, table: str) -> bool:
        """Return whether ``table`` exists in the current schema.

        The name is matched exactly, so mixed-case names created through a
        quoted identifier are found.
        """
        table_identifier(table)
        with self._conn.cursor() as cur:
            cur.execute(
                "SELECT EXISTS ("
                "SELECT 1 FROM information_schema.tables "
                "WHERE table_schema = current_schema() AND table_name = %s"
                ") AS present",
                (table,),
            )
            row = cur.fetchone()
        return bool(row and row["present"])

    def insert_user(self, table: str, name: str, email: str) -> int:
        """Insert a user and return its generated id.

        Raises
        ------
        UniqueConstraintError
            If ``email`` is already taken.
        """
        query = sql.SQL("INSERT INTO {} (name, email) VALUES (%s, %s) RETURNING id").format(
            table_identifier(table)
        )
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, (name, email))
                row = cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise UniqueConstraintError(f"Email already exists in {table}: {email}") from e
        return row["id"]

    def get_user(self, table: str, user_id: int) -> User | None:
        query = sql.SQL("SELECT id, name, email, created_at FROM {} WHERE id = %s").format(
            table_identifier(table)
        )
        with self._conn.cursor() as cur:
            cur.execute(query, (user_id,))
            row = cur.fetchone()
        return User.from_row(row) if row else None

    def get_all_users(self, table: str) -> list[User]:
        query = sql.SQL("SELECT id, name, email, created_at FROM {} ORDER BY id").format(
            table_identifier(table)
        )
        return self._fetch_users(query)

    def update_user(self, table: str, user_id: int, name: str, email: str) -> None:
        """Replace name and email of a user.

        Raises
        ------
        NotFoundError
            If no user has ``user_id``.
        UniqueConstraintError
            If ``email`` belongs to another user.
        """
        query = sql.SQL("UPDATE {} SET name = %s, email = %s WHERE id = %s").format(
            table_identifier(table)
        )
        try:
            rowcount = self._execute(query, (name, email, user_id))
        except psycopg.errors.UniqueViolation as e:
            raise UniqueConstraintError(f"Email already exists in {table}: {email}") from e
        if rowcount == 0:
            raise NotFoundError(f"User {user_id} not found in {table}")

    def delete_user(self, table: str, user_id: int) -> None:
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(table_identifier(table))
        if self._execute(query, (user_id,)) == 0:
            raise NotFoundError(f"User {user_id} not found in {table}")

    def get_users_by_name_pattern(self, table: str, pattern: str) -> list[User]:
        """Return users whose name matches a SQL ``LIKE`` pattern, by id."""
        query = sql.SQL(
            "SELECT id, name, email, created_at FROM {} WHERE name LIKE %s ORDER BY id"
        ).format(table_identifier(table))
        return self._fetch_users(query, (pattern,))

    def count_users(self, table: str) -> int:
        query = sql.SQL("SELECT COUNT(*) AS total FROM {}").format(table_identifier(table))
        with self._conn.cursor() as cur:
            cur.execute(query)
            row = cur.fetchone()
        return int(row["total"])

    def execute_in_transaction(self, work: Callable[[RelationalClient], T]) -> T:
        """Run ``work(self)`` atomically.

        Commits when ``work`` returns and rolls back when it raises anything,
        including ``KeyboardInterrupt``; the original exception propagates.

        Parameters
        ----------
        work : Callable[[RelationalClient], T]
            Unit of work; every call it makes on the client joins the
            transaction.

        Returns
        -------
        T
            Whatever ``work`` returned.
        """
        try:
            with self._conn.transaction():
                return work(self)
        except BaseException as e:
            logger.debug("Transaction rolled back: %s", e)
            raise

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()
            logger.debug("Closed relational client")

    def _execute(self, query: sql.Composable, params: tuple[Any, ...] | None = None) -> int:
        with self._conn.cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def _fetch_users(
        self, query: sql.Composable, params: tuple[Any, ...] | None = None
    ) -> list[User]:
        with self._conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [User.from_row(row) for row in rows]
