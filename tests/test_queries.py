import copy
import dataclasses
from dataclasses import dataclass, field

import pytest

from sqlmigrate.queries import Queries, VersioningRow


@dataclass
class _State:
    schema: bool = False
    table: bool = False
    rows: dict = field(default_factory=dict)
    executed: list = field(default_factory=list)


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.result = []
        self.closed = False

    def execute(self, sql, params=None):
        self.result = self.conn.handle(sql, params)

    def fetchone(self):
        return self.result[0] if self.result else None

    def fetchall(self):
        return list(self.result)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, state=None):
        self.committed = state if state is not None else _State()
        self.pending = copy.deepcopy(self.committed)
        self.cursors = []
        self.statements = []

    def cursor(self):
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self):
        self.committed = copy.deepcopy(self.pending)

    def rollback(self):
        self.pending = copy.deepcopy(self.committed)

    def handle(self, sql, params):
        self.statements.append((sql, params))
        s = self.pending
        if "CREATE SCHEMA" in sql:
            s.schema = True
            return []
        if "CREATE TABLE" in sql and "smoothbrain_sqlmigrate.versioning" in sql:
            s.table = True
            return []
        if "information_schema" in sql:
            return [(s.table,)]
        if "COALESCE(MAX(id), -1)" in sql:
            return [(max(s.rows, default=-1),)]
        if "LIMIT" in sql:
            return [(any(not ok for ok in s.rows.values()),)]
        if "WHERE ok=false" in sql:
            return [(i,) for i in sorted(s.rows) if not s.rows[i]]
        if "INSERT INTO smoothbrain_sqlmigrate.versioning" in sql:
            row_id, ok = params
            s.rows[row_id] = ok
            return []
        if "SELECT id, ok" in sql:
            return sorted(s.rows.items())
        s.executed.append(sql.strip())
        return []


class EmptyConnection:
    def cursor(self):
        return self

    def execute(self, sql, params=None):
        pass

    def fetchone(self):
        return None

    def close(self):
        pass


def test_create_schema_issues_statement_and_closes_cursor():
    conn = FakeConnection()
    Queries(conn).create_schema()
    assert conn.statements[0][0] == "CREATE SCHEMA IF NOT EXISTS smoothbrain_sqlmigrate"
    assert conn.pending.schema is True
    assert all(cursor.closed for cursor in conn.cursors)


def test_versioning_exists_after_create():
    conn = FakeConnection()
    queries = Queries(conn)
    assert queries.versioning_exists() is False
    queries.create_versioning()
    assert queries.versioning_exists() is True


def test_max_id_empty_is_minus_one():
    conn = FakeConnection(_State(table=True))
    assert Queries(conn).max_id() == -1


def test_max_id_follows_recorded_rows():
    conn = FakeConnection(_State(table=True))
    queries = Queries(conn)
    queries.set_status(5, False)
    queries.set_status(2, True)
    assert queries.max_id() == 5


def test_set_status_passes_parameters():
    conn = FakeConnection(_State(table=True))
    Queries(conn).set_status(3, True)
    sql, params = conn.statements[-1]
    assert params == (3, True)
    assert "ON CONFLICT(id)" in sql


def test_set_status_and_status_round_trip():
    conn = FakeConnection(_State(table=True))
    queries = Queries(conn)
    queries.set_status(2, True)
    queries.set_status(0, False)
    assert queries.status() == [VersioningRow(0, False), VersioningRow(2, True)]


def test_set_status_overwrites_existing_row():
    conn = FakeConnection(_State(table=True))
    queries = Queries(conn)
    queries.set_status(1, False)
    queries.set_status(1, True)
    assert queries.status() == [VersioningRow(1, True)]


def test_need_to_be_run_lists_failed_ids_in_order():
    conn = FakeConnection(_State(table=True, rows={4: False, 0: True, 1: False}))
    assert Queries(conn).need_to_be_run() == [1, 4]


def test_need_update():
    conn = FakeConnection(_State(table=True, rows={0: True}))
    queries = Queries(conn)
    assert queries.need_update() is False
    queries.set_status(1, False)
    assert queries.need_update() is True


def test_with_tx_uses_other_connection():
    first = FakeConnection(_State(table=True))
    second = FakeConnection(_State(table=True))
    Queries(first).with_tx(second).set_status(0, True)
    assert second.pending.rows == {0: True}
    assert first.pending.rows == {}


def test_missing_row_raises_lookup_error():
    with pytest.raises(LookupError):
        Queries(EmptyConnection()).max_id()


def test_versioning_row_is_frozen():
    row = VersioningRow(1, True)
    with pytest.raises(dataclasses.FrozenInstanceError):
        row.ok = False
    assert row.ok is True
    assert row == VersioningRow(1, True)