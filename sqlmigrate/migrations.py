"""Load numbered SQL migration files and apply them inside one transaction."""

from __future__ import annotations

import re
from contextlib import closing
from operator import attrgetter
from pathlib import PurePosixPath
from typing import Any, Callable, Mapping

from .queries import Queries, VersioningRow

PostMigrationOp = Callable[[Any], None]

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class MigrationError(Exception):
    """Base class for migration errors."""


class MalformedMigrationFileError(MigrationError):
    """A migration file name is not an integer followed by ``.sql``."""


class MigrationSequenceError(MigrationError):
    """Migration ids do not run from 0 without gaps."""


class MissingSqlMigrationError(MigrationError):
    """A post-migration operation has no matching SQL file."""


class UnknownMigrationError(MigrationError):
    """The database asks for a migration that was not loaded."""


def _resolve(files: Any, directory: str) -> Any:
    node = files
    for part in PurePosixPath(directory).parts:
        node = node.joinpath(part)
    return node


def _execute(connection: Any, sql: str) -> None:
    with closing(connection.cursor()) as cursor:
        cursor.execute(sql)


class Migrations:
    """A set of SQL migrations plus optional operations run after them."""

    def __init__(self) -> None:
        self.sql_migrations: dict[int, str] = {}
        self.post_ops: dict[int, PostMigrationOp] = {}
        self.files: Any = None
        self.directory = ""
        self.max_migration_id = 0

    def load(
        self,
        files: Any,
        directory: str,
        post_ops: Mapping[int, PostMigrationOp],
    ) -> None:
        """Read ``<n>.sql`` names from ``directory`` of the traversable ``files``.

        Ids must run from 0 with no gaps, and every post operation must have
        an SQL file with the same id.
        """
        self.sql_migrations = {}
        self.post_ops = dict(post_ops)
        self.files = files
        self.directory = directory
        self.max_migration_id = 0

        for entry in _resolve(files, directory).iterdir():
            name = entry.name
            if not name.endswith(".sql"):
                continue
            stem = name[:-4]
            if not _INTEGER.fullmatch(stem):
                raise MalformedMigrationFileError(
                    f"Malformed migration file: {name!r} is not an integer"
                )
            migration_id = int(stem)
            if not _INT64_MIN <= migration_id <= _INT64_MAX:
                raise MalformedMigrationFileError(
                    f"Malformed migration file: {name!r} is out of range"
                )
            self.sql_migrations[migration_id] = name
            self.max_migration_id = max(self.max_migration_id, migration_id)

        for expected, migration_id in enumerate(sorted(self.sql_migrations)):
            if expected != migration_id:
                raise MigrationSequenceError(
                    f"Missing {expected} migration. "
                    "Migrations must be sequential with no gaps."
                )

        for migration_id in sorted(self.post_ops):
            if migration_id not in self.sql_migrations:
                raise MissingSqlMigrationError(f"Missing ID: {migration_id}")

    def status(self, connection: Any) -> list[VersioningRow]:
        """Status of every migration, including those not yet recorded."""
        queries = Queries(connection)
        if not queries.versioning_exists():
            return []

        rows = queries.status()
        max_in_db = queries.max_id()
        rows.extend(
            VersioningRow(migration_id, False)
            for migration_id in range(max_in_db + 1, self.max_migration_id + 1)
        )
        rows.sort(key=attrgetter("id"))
        return rows

    def run(self, connection: Any) -> None:
        """Run every failed or new migration in increasing order.

        Everything happens in one transaction: on any error it is rolled
        back and the error propagates.
        """
        queries = Queries(connection)
        try:
            queries.create_schema()
            queries.create_versioning()

            pending = queries.need_to_be_run()
            max_in_db = queries.max_id()
            pending.extend(range(max_in_db + 1, self.max_migration_id + 1))
            pending.sort()

            for migration_id in pending:
                name = self.sql_migrations.get(migration_id)
                if name is None:
                    raise UnknownMigrationError(f"Migration ID: {migration_id}")
                source = _resolve(self.files, self.directory).joinpath(name)
                _execute(connection, source.read_text(encoding="utf-8"))
                op = self.post_ops.get(migration_id)
                if op is not None:
                    op(connection)
                queries.set_status(migration_id, True)
        except BaseException:
            connection.rollback()
            raise
        connection.commit()


_default = Migrations()


def load(files: Any, directory: str, post_ops: Mapping[int, PostMigrationOp]) -> None:
    """Load migrations into the package-wide migration set."""
    _default.load(files, directory, post_ops)


def status(connection: Any) -> list[VersioningRow]:
    """Status of the package-wide migration set."""
    return _default.status(connection)


def run(connection: Any) -> None:
    """Run the package-wide migration set."""
    _default.run(connection)