# sqlmigrate

A small library for running SQL migrations against a PostgreSQL database.

Migrations are plain `.sql` files named by number: `0.sql`, `1.sql`, `2.sql`
and so on. The numbers must start at zero and run without gaps. Each file can
have a Python function attached that runs straight after its SQL, inside the
same transaction.

The applied state lives in the table `smoothbrain_sqlmigrate.versioning`, one
row per migration holding its id and whether it completed.

## The connection

Every call that touches the database takes a DB-API 2.0 style connection to
PostgreSQL: an object with `cursor()`, `commit()` and `rollback()`, whose
cursors accept `execute(sql)` and `execute(sql, params)` with `%s`
placeholders and offer `fetchone()`, `fetchall()` and `close()`. The package
does not ship a database driver; bring your own.

## Loading migrations

```python
from pathlib import Path

from sqlmigrate.migrations import Migrations

def backfill_users(connection):
    ...  # Python work that belongs to migration 2

migrations = Migrations()
migrations.load(Path("."), "migrations", {2: backfill_users})
```

The first argument is any traversable object with `joinpath`, `iterdir`,
`name` and `read_text`, such as a `pathlib.Path` or the result of
`importlib.resources.files(...)` for migrations shipped inside a package. The
directory is a `/`-separated path below it.

`load` reads the names of every file ending in `.sql` in that directory.
Files with other extensions are ignored. The SQL text itself is read later,
when `run` needs it. Loading fails with:

- `MalformedMigrationFileError` when a `.sql` file name is not an integer
  (optionally signed) that fits in 64 bits,
- `MigrationSequenceError` when the numbers do not start at 0 or have a gap,
- `MissingSqlMigrationError` when a post-migration hook names a migration that
  has no `.sql` file.

All of these derive from `MigrationError`. After a successful load,
`sql_migrations` maps each id to its file name and `max_migration_id` holds
the highest id.

## Running migrations

```python
migrations.run(connection)
```

`run` creates the schema and versioning table if needed, then applies, in
increasing order, every migration recorded as not yet completed plus every
migration newer than the highest id in the table. For each one its SQL file
is executed, then its hook, if it has one, is called with the connection,
and then the migration is recorded as done.

All of this happens in the connection's current transaction. If any step
raises, `connection.rollback()` is called and the exception propagates;
otherwise `connection.commit()` is called at the end. A migration id that the
database asks for but that was not loaded raises `UnknownMigrationError`.

## Checking status

```python
for row in migrations.status(connection):
    print(row.id, row.ok)
```

`status` returns one `VersioningRow` per migration, sorted by id. Migrations
that have been loaded but are newer than anything in the database appear with
`ok` set to `False`. If the versioning table does not exist yet, the result is
an empty list.

## Module-level helpers

For applications with a single set of migrations, `sqlmigrate.migrations`
also offers `load`, `run` and `status` functions that act on one shared
`Migrations` instance:

```python
from sqlmigrate import migrations

migrations.load(files, "migrations", {})
migrations.run(connection)
rows = migrations.status(connection)
```

## Lower-level queries

`sqlmigrate.queries.Queries` wraps a connection and exposes the individual
statements used above:

- `create_schema()` and `create_versioning()` create the schema and table if
  they are missing,
- `max_id()` returns the highest recorded id, or `-1` when there is none,
- `need_to_be_run()` returns the ids recorded as not completed, in increasing
  order,
- `need_update()` tells whether any such id exists,
- `set_status(migration_id, ok)` inserts or updates one row,
- `status()` returns every row as a `VersioningRow`,
- `versioning_exists()` tells whether the versioning table exists.

`with_tx(tx)` returns a new `Queries` bound to another connection or
transaction object.

## What it does not do

There is no command-line tool: migrations are loaded and run from your own
code. There are no down migrations or rollbacks to an earlier version, and
no database driver or connection handling is included.