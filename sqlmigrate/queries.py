"""Typed access to the table that records which migrations have run."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from typing import Any

_CREATE_SCHEMA = "CREATE SCHEMA IF NOT EXISTS smoothbrain_sqlmigrate"

_CREATE_VERSIONING = """CREATE TABLE IF NOT EXISTS smoothbrain_sqlmigrate.versioning (
\tid INT NOT NULL UNIQUE,
\tok BOOLEAN NOT NULL
)"""

_MAX_ID = "SELECT COALESCE(MAX(id), -1) FROM smoothbrain_sqlmigrate.versioning"

_NEED_TO_BE_RUN = (
    "SELECT id FROM smoothbrain_sqlmigrate.versioning WHERE ok=false ORDER BY id ASC"
)

_NEED_UPDATE = """SELECT EXISTS (
\tSELECT 1
\tFROM   smoothbrain_sqlmigrate.versioning
\tWHERE  ok = false
\tLIMIT  1
)"""

_SET_STATUS = """INSERT INTO smoothbrain_sqlmigrate.versioning (
\tid, ok
) VALUES (%s, %s) ON CONFLICT(id) DO UPDATE SET ok=EXCLUDED.ok"""

_STATUS = "SELECT id, ok FROM smoothbrain_sqlmigrate.versioning ORDER BY id ASC"

_VERSIONING_EXISTS = """SELECT EXISTS (
   SELECT FROM information_schema.tables
   WHERE  table_schema = 'smoothbrain_sqlmigrate'
   AND    table_name   = 'versioning'
)"""


@dataclass(frozen=True)
class VersioningRow:
    """One row of the versioning table: a migration id and whether it ran."""

    id: int
    ok: bool


class Queries:
    """Runs the bookkeeping queries against a DB-API connection."""

    def __init__(self, db: Any) -> None:
        self._db = db

    def with_tx(self, tx: Any) -> Queries:
        """Return a copy of these queries bound to ``tx``."""
        return Queries(tx)

    def _execute(self, sql: str, params: tuple | None = None) -> None:
        with closing(self._db.cursor()) as cursor:
            if params is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, params)

    def _fetch_one(self, sql: str) -> tuple:
        with closing(self._db.cursor()) as cursor:
            cursor.execute(sql)
            row = cursor.fetchone()
        if row is None:
            raise LookupError("query returned no rows")
        return tuple(row)

    def _fetch_all(self, sql: str) -> list[tuple]:
        with closing(self._db.cursor()) as cursor:
            cursor.execute(sql)
            return [tuple(row) for row in cursor.fetchall()]

    def create_schema(self) -> None:
        self._execute(_CREATE_SCHEMA)

    def create_versioning(self) -> None:
        self._execute(_CREATE_VERSIONING)

    def max_id(self) -> int:
        """Largest recorded migration id, or -1 when none is recorded."""
        return int(self._fetch_one(_MAX_ID)[0])

    def need_to_be_run(self) -> list[int]:
        """Ids recorded as not yet run successfully, in increasing order."""
        return [int(row[0]) for row in self._fetch_all(_NEED_TO_BE_RUN)]

    def need_update(self) -> bool:
        return bool(self._fetch_one(_NEED_UPDATE)[0])

    def set_status(self, migration_id: int, ok: bool) -> None:
        self._execute(_SET_STATUS, (migration_id, ok))

    def status(self) -> list[VersioningRow]:
        return [
            VersioningRow(int(row_id), bool(ok))
            for row_id, ok in self._fetch_all(_STATUS)
        ]

    def versioning_exists(self) -> bool:
        return bool(self._fetch_one(_VERSIONING_EXISTS)[0])