"""
In-memory stand-in for the async Supabase client used by the tests.

Implements the subset of the PostgREST query builder the repositories use
(select/insert/update/delete, eq/neq/in_/gte/gt/lt/lte/is_ filters, order,
limit, rpc). Every `execute()` yields to the event loop once, so concurrent
operations interleave between queries the way they would against a server.

Failures are injected per (table, operation) with `fail` (before or after the
query takes effect), and arbitrary callbacks can run right before a query is
applied with `before`.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from postgrest.exceptions import APIError

Row = Dict[str, Any]

UNIQUE_CONSTRAINTS: Dict[str, Tuple[str, ...]] = {
    "notifications": ("user_id", "dedup_key"),
}


@dataclass
class Response:
    data: Any
    count: Optional[int] = None


@dataclass
class _FailureRule:
    table: str
    operation: str
    error: BaseException
    remaining: int
    after_apply: bool = False


def _norm(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


class _Query:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._operation = "select"
        self._columns = "*"
        self._payload: Any = None
        self._filters: List[Callable[[Row], bool]] = []
        self._order: List[Tuple[str, bool]] = []
        self._limit: Optional[int] = None

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None) -> "_Query":
        self._operation = "select"
        self._columns = columns
        return self

    def insert(self, payload: Any) -> "_Query":
        self._operation = "insert"
        self._payload = payload
        return self

    def update(self, payload: Row) -> "_Query":
        self._operation = "update"
        self._payload = payload
        return self

    def delete(self) -> "_Query":
        self._operation = "delete"
        return self

    # Filters

    def eq(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: _norm(row.get(column)) == _norm(value))
        return self

    def neq(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: _norm(row.get(column)) != _norm(value))
        return self

    def in_(self, column: str, values: Sequence[Any]) -> "_Query":
        allowed = {_norm(value) for value in values}
        self._filters.append(lambda row: _norm(row.get(column)) in allowed)
        return self

    def gte(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: row.get(column) is not None and str(row[column]) >= str(value))
        return self

    def gt(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: row.get(column) is not None and str(row[column]) > str(value))
        return self

    def lt(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: row.get(column) is not None and str(row[column]) < str(value))
        return self

    def lte(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: row.get(column) is not None and str(row[column]) <= str(value))
        return self

    def is_(self, column: str, value: str) -> "_Query":
        if value != "null":
            raise ValueError("only is_(column, 'null') is supported")
        self._filters.append(lambda row: row.get(column) is None)
        return self

    def order(self, column: str, desc: bool = False) -> "_Query":
        self._order.append((column, desc))
        return self

    def limit(self, size: int) -> "_Query":
        self._limit = size
        return self

    async def execute(self) -> Response:
        await asyncio.sleep(0)
        self._db.calls.append((self._table, self._operation))
        self._db._run_hooks(self._table, self._operation)
        self._db._maybe_fail(self._table, self._operation)
        data = self._apply()
        self._db._maybe_fail(self._table, self._operation, after_apply=True)
        return Response(data=data)

    # Evaluation

    def _matching(self) -> List[Row]:
        rows = self._db.tables.setdefault(self._table, [])
        return [row for row in rows if all(check(row) for check in self._filters)]

    def _apply(self) -> List[Row]:
        if self._operation == "insert":
            return self._db._insert(self._table, self._payload)

        if self._operation == "update":
            matched = self._matching()
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return [copy.deepcopy(row) for row in matched]

        if self._operation == "delete":
            matched = self._matching()
            ids = {id(row) for row in matched}
            self._db.tables[self._table] = [row for row in self._db.tables[self._table] if id(row) not in ids]
            return [copy.deepcopy(row) for row in matched]

        columns = [column.strip() for column in self._columns.split(",")]
        missing = self._db.missing_columns.get(self._table, set())
        for column in columns:
            if column in missing:
                raise APIError(
                    {"message": f"column {self._table}.{column} does not exist", "code": "42703"}
                )

        rows = self._matching()
        for column, desc in reversed(self._order):
            rows = sorted(rows, key=lambda row: (row.get(column) is None, _norm(row.get(column))), reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        if columns == ["*"]:
            return [copy.deepcopy(row) for row in rows]
        return [{column: copy.deepcopy(row.get(column)) for column in columns} for row in rows]


class _RpcCall:
    def __init__(self, db: "FakeSupabase", name: str, params: Row):
        self._db = db
        self._name = name
        self._params = params

    async def execute(self) -> Response:
        await asyncio.sleep(0)
        self._db.calls.append(("rpc", self._name))
        self._db.rpc_calls.append((self._name, dict(self._params)))
        self._db._run_hooks("rpc", self._name)
        self._db._maybe_fail("rpc", self._name)
        handler = self._db.rpc_handlers.get(self._name)
        if handler is None:
            raise APIError(
                {"message": f"Could not find the function public.{self._name}", "code": "PGRST202"}
            )
        return Response(data=handler(self._db, self._params))


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Row]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.rpc_calls: List[Tuple[str, Row]] = []
        self.rpc_handlers: Dict[str, Callable[["FakeSupabase", Row], Any]] = {}
        self.missing_columns: Dict[str, set] = {}
        self._failures: List[_FailureRule] = []
        self._hooks: List[Tuple[str, str, Callable[[], None]]] = []

    # Client surface

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def rpc(self, name: str, params: Optional[Row] = None) -> _RpcCall:
        return _RpcCall(self, name, params or {})

    # Test controls

    def seed(self, table: str, *rows: Row) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(row) for row in rows)

    def rows(self, table: str) -> List[Row]:
        return [copy.deepcopy(row) for row in self.tables.get(table, [])]

    def count_calls(self, table: str, operation: str) -> int:
        return sum(1 for call in self.calls if call == (table, operation))

    def fail(
        self, table: str, operation: str, error: BaseException, times: int = 1, after_apply: bool = False
    ) -> None:
        """
        Make the next `times` matching queries raise `error` (rpc: table="rpc", operation=name).

        With after_apply the query takes effect first, as when only the response is lost.
        """
        self._failures.append(_FailureRule(table, operation, error, times, after_apply))

    def before(self, table: str, operation: str, callback: Callable[[], None]) -> None:
        """Run `callback` once, right before the next matching query is applied."""
        self._hooks.append((table, operation, callback))

    def _maybe_fail(self, table: str, operation: str, after_apply: bool = False) -> None:
        for rule in self._failures:
            if (
                rule.table == table
                and rule.operation == operation
                and rule.after_apply == after_apply
                and rule.remaining > 0
            ):
                rule.remaining -= 1
                raise rule.error

    def _run_hooks(self, table: str, operation: str) -> None:
        for hook in list(self._hooks):
            if hook[0] == table and hook[1] == operation:
                self._hooks.remove(hook)
                hook[2]()

    def _insert(self, table: str, payload: Any) -> List[Row]:
        incoming = [copy.deepcopy(row) for row in (payload if isinstance(payload, list) else [payload])]
        existing = self.tables.setdefault(table, [])

        unique = UNIQUE_CONSTRAINTS.get(table)
        if unique is not None:
            seen = {tuple(row.get(column) for column in unique) for row in existing}
            for row in incoming:
                key = tuple(row.get(column) for column in unique)
                if None in key:
                    continue
                if key in seen:
                    raise APIError(
                        {"message": "duplicate key value violates unique constraint", "code": "23505"}
                    )
                seen.add(key)

        existing.extend(incoming)
        return [copy.deepcopy(row) for row in incoming]


async def no_sleep(_: float) -> None:
    return None


__all__ = ["FakeSupabase", "Response", "no_sleep"]
