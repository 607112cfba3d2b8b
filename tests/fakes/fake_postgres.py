"""Minimal psycopg connection double for relational façade tests."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class FakeCursor:
    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection
        self.rowcount = -1
        self._rows: list[dict[str, Any]] = []

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        self.connection.executed.append((query, params))
        if self.connection.errors:
            error = self.connection.errors.pop(0)
            if error is not None:
                raise error
        result = self.connection.results.pop(0) if self.connection.results else {}
        self._rows = list(result.get("rows", []))
        self.rowcount = result.get("rowcount", len(self._rows))

    def fetchone(self) -> dict[str, Any] | None:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> list[dict[str, Any]]:
        return list(self._rows)


class FakeConnection:
    """Records statements and transaction outcomes.

    ``results`` holds one entry per ``execute`` call: ``{"rows": [...],
    "rowcount": n}``. ``errors`` holds one entry per call as well, ``None``
    meaning success.
    """

    def __init__(self) -> None:
        self.executed: list[tuple[Any, Any]] = []
        self.results: list[dict[str, Any]] = []
        self.errors: list[Exception | None] = []
        self.transactions: list[str] = []
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
        except BaseException:
            self.transactions.append("rollback")
            raise
        self.transactions.append("commit")

    def close(self) -> None:
        self.closed = True
