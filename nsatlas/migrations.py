"""Schema versioning for sqlite3 databases based on ``PRAGMA user_version``."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterator, Mapping

Step = Callable[[sqlite3.Connection], None]


class MigrationError(Exception):
    """Raised when a database cannot be migrated to the requested version."""


@dataclass(frozen=True)
class Migration:
    """A reversible schema change."""

    name: str
    up: Step
    down: Step


class MigratingDB:
    """A sqlite3 database whose schema is upgraded by numbered migrations.

    Subclasses set ``migrations`` to a mapping of version (starting at 1) to
    :class:`Migration`.
    """

    migrations: ClassVar[Mapping[int, Migration]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        for version in cls.migrations:
            if version <= 0:
                raise ValueError(f"add migration: version must be positive, got {version}")

    def __init__(self, connection):
        connection.isolation_level = None
        self._conn = connection

    def close(self):
        """Close the underlying connection."""
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def version(self):
        """Return ``(current, required)`` schema versions."""
        try:
            current = self._user_version()
        except sqlite3.Error as exc:
            raise MigrationError(f"get version: {exc}") from exc
        required = max(self.migrations, default=0)
        return current, required

    def migrate_up(self, to):
        """Apply every migration above the current version up to ``to``."""
        self._check_target(to)
        with self._transaction():
            current = self._user_version()
            if to < current:
                raise MigrationError(
                    f"target version {to} is less than current version {current}"
                )
            self._check_known(current, to)
            for version in sorted(v for v in self.migrations if current < v <= to):
                self._apply(version, self.migrations[version].up)
            self._set_user_version(to)

    def migrate_down(self, to):
        """Revert every migration above ``to``. This will probably discard data."""
        self._check_target(to)
        with self._transaction():
            current = self._user_version()
            if current < to:
                raise MigrationError(
                    f"current version {current} is less than target version {to}"
                )
            self._check_known(current, to)
            for version in sorted(
                (v for v in self.migrations if to < v <= current), reverse=True
            ):
                self._apply(version, self.migrations[version].down)
            self._set_user_version(to)

    @staticmethod
    def _check_target(to):
        if isinstance(to, bool) or not isinstance(to, int) or to < 0:
            raise ValueError(f"invalid target version {to!r}")

    def _check_known(self, current, to):
        if current != 0 and current not in self.migrations:
            raise MigrationError(f"unsupported db version {current}")
        if to != 0 and to not in self.migrations:
            raise MigrationError(f"unknown db version {to}")

    def _apply(self, version, step):
        try:
            step(self._conn)
        except Exception as exc:
            raise MigrationError(f"migrate {version}: {exc}") from exc

    def _user_version(self):
        return int(self._conn.execute("PRAGMA user_version").fetchone()[0])

    def _set_user_version(self, version):
        try:
            self._conn.execute(f"PRAGMA user_version = {int(version)}")
        except sqlite3.Error as exc:
            raise MigrationError(f"update version: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise MigrationError(f"begin transaction: {exc}") from exc
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise MigrationError(f"commit transaction: {exc}") from exc