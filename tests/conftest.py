import logging
import re
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import pytest

from bulksql.connections.base import BaseConnection


class FakeSession:
    """In-memory stand-in for SqlServerSession."""

    def __init__(self, server: "FakeSqlServer"):
        self.server = server
        self.closed = False

    def _check_fail(self, text: str) -> None:
        for marker, exc in self.server.fail_on.items():
            if marker in text:
                raise exc

    def scalar(self, sql: str, timeout: Optional[int] = None) -> Any:
        self.server.statements.append(sql)
        self._check_fail(sql)
        match = re.fullmatch(r"SELECT OBJECT_ID\('(.+)'\)", sql)
        if match:
            name = match.group(1)
            return self.server.object_ids.get(name)
        raise AssertionError(f"Unexpected scalar statement: {sql}")

    def _run_part(self, part: str) -> int:
        create = re.fullmatch(r"CREATE TABLE (\S+) \( (.*) \)", part)
        if create:
            name, cols = create.groups()
            if name in self.server.tables:
                raise RuntimeError(f"There is already an object named '{name}'")
            self.server.create_table(name, [c.split(" ")[0] for c in cols.split(", ")])
            return 0
        drop = re.fullmatch(r"DROP TABLE (\S+)", part)
        if drop:
            name = drop.group(1)
            if name not in self.server.tables:
                raise RuntimeError(f"Cannot drop the table '{name}'")
            del self.server.tables[name]
            del self.server.object_ids[name]
            return 0
        truncate = re.fullmatch(r"TRUNCATE TABLE (\S+)", part)
        if truncate:
            self.server.tables[truncate.group(1)].clear()
            return 0
        for marker, handler in self.server.handlers.items():
            if marker in part:
                return handler(self.server, part)
        return 0

    def execute(self, sql: str, timeout: Optional[int] = None) -> int:
        self.server.statements.append(sql)
        self.server.timeouts.append(timeout)
        self._check_fail(sql)
        results = [self._run_part(part) for part in sql.split("; ")]
        return results[0]

    def query(self, sql: str, timeout: Optional[int] = None) -> pd.DataFrame:
        self.server.statements.append(sql)
        self.server.timeouts.append(timeout)
        self._check_fail(sql)
        first, *rest = sql.split("; ")
        result = self._run_part(first)
        for part in rest:
            self._run_part(part)
        return result

    def bulk_insert(self, table, columns, rows, batch_size, timeout=None) -> int:
        self.server.bulk_calls.append(
            {"table": table, "columns": list(columns), "rows": len(rows), "batch_size": batch_size, "timeout": timeout}
        )
        self._check_fail(f"bulk_insert {table}")
        if table not in self.server.tables:
            raise RuntimeError(f"Invalid object name '{table}'")
        for row in rows:
            self.server.tables[table].append(dict(zip(columns, row)))
        return len(rows)

    def close(self) -> None:
        self.closed = True
        self.server.sessions_closed += 1


class FakeSqlServer(BaseConnection):
    """
    Connection double with table state.

    ``handlers`` maps a substring of a caller statement to a function
    ``(server, sql) -> rowcount | DataFrame``. ``fail_on`` maps a substring
    to an exception raised when a statement containing it runs.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.object_ids: Dict[str, int] = {}
        self.statements: List[str] = []
        self.timeouts: List[Optional[int]] = []
        self.bulk_calls: List[Dict[str, Any]] = []
        self.handlers: Dict[str, Callable] = {}
        self.fail_on: Dict[str, Exception] = {}
        self.sessions_opened = 0
        self.sessions_closed = 0
        self._next_id = 1000

    def create_table(self, name: str, columns: Optional[List[str]] = None) -> None:
        self.tables[name] = []
        self.object_ids[name] = self._next_id
        self._next_id += 1

    def validate(self) -> None:
        pass

    def open_session(self) -> FakeSession:
        self.sessions_opened += 1
        return FakeSession(self)


@pytest.fixture
def fake_server():
    return FakeSqlServer()


@pytest.fixture(autouse=True)
def configure_logging():
    """Configure logging to avoid Rich Text object issues in tests."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if hasattr(handler, "__class__") and "Rich" in handler.__class__.__name__:
            root.removeHandler(handler)
    logging.basicConfig(level=logging.WARNING, format="%(message)s", force=True)
    yield
    logging.basicConfig(level=logging.INFO, force=True)


@pytest.fixture(autouse=True)
def reset_logging_context():
    import bulksql.utils.logging_context as mod

    mod._global_context = None
    yield
    mod._global_context = None
