import sqlite3

import pytest

from nsatlas.atlasdb import AtlasDB
from nsatlas.migrations import MigratingDB, Migration, MigrationError
from nsatlas.pdatadb import PdataDB


def _create(name):
    def step(conn):
        conn.execute(f"CREATE TABLE {name} (x INTEGER)")

    return step


def _drop(name):
    def step(conn):
        conn.execute(f"DROP TABLE {name}")

    return step


def _fail(conn):
    raise RuntimeError("boom")


def _open(path, steps):
    class _DB(MigratingDB):
        migrations = steps

    return _DB(sqlite3.connect(path))


def _tables(db_path):
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        ).fetchall()
    finally:
        conn.close()
    return [r[0] for r in rows]


@pytest.mark.parametrize(
    "cls,name", [(AtlasDB, "atlas.db"), (PdataDB, "pdata.db")]
)
def test_migrations_cycle(tmp_path, cls, name):
    with cls(tmp_path / name) as db:
        current, _ = db.version()
        assert current == 0
        for to in sorted(cls.migrations):
            db.migrate_up(to)
            assert db.version()[0] == to
            db.migrate_down(0)
            assert db.version()[0] == 0
            db.migrate_up(to)
            assert db.version()[0] == to
            db.migrate_down(0)
            assert db.version()[0] == 0


def test_version_reports_required(tmp_path):
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(tmp_path / "demo.db", steps) as db:
        assert db.version() == (0, 2)


def test_migrate_up_applies_in_order(tmp_path):
    path = tmp_path / "demo.db"
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(path, steps) as db:
        db.migrate_up(1)
        assert _tables(path) == ["t1"]
        db.migrate_up(2)
        assert _tables(path) == ["t1", "t2"]
        assert db.version() == (2, 2)


def test_migrate_down_reverts(tmp_path):
    path = tmp_path / "demo.db"
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(path, steps) as db:
        db.migrate_up(2)
        db.migrate_down(1)
        assert _tables(path) == ["t1"]
        assert db.version()[0] == 1
        db.migrate_down(0)
        assert _tables(path) == []


def test_migrate_up_below_current_fails(tmp_path):
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(tmp_path / "demo.db", steps) as db:
        db.migrate_up(2)
        with pytest.raises(MigrationError, match="less than current version 2"):
            db.migrate_up(1)


def test_migrate_down_above_current_fails(tmp_path):
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(tmp_path / "demo.db", steps) as db:
        db.migrate_up(1)
        with pytest.raises(MigrationError, match="current version 1 is less than"):
            db.migrate_down(2)


def test_unknown_target_version(tmp_path):
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(tmp_path / "demo.db", steps) as db:
        with pytest.raises(MigrationError, match="unknown db version"):
            db.migrate_up(5)
        assert db.version()[0] == 0


def test_unsupported_current_version(tmp_path):
    path = tmp_path / "demo.db"
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(path, steps) as db:
        raw = sqlite3.connect(path)
        raw.execute("PRAGMA user_version = 9")
        raw.close()
        with pytest.raises(MigrationError, match="unsupported db version 9"):
            db.migrate_down(0)


def test_failed_migration_rolls_back(tmp_path):
    path = tmp_path / "broken.db"
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _fail, _fail),
    }
    with _open(path, steps) as db:
        with pytest.raises(MigrationError, match="migrate 2: boom"):
            db.migrate_up(2)
        assert db.version()[0] == 0
    assert _tables(path) == []


def test_negative_target_rejected(tmp_path):
    steps = {
        1: Migration("001", _create("t1"), _drop("t1")),
        2: Migration("002", _create("t2"), _drop("t2")),
    }
    with _open(tmp_path / "demo.db", steps) as db:
        with pytest.raises(ValueError):
            db.migrate_up(-1)


def test_zero_version_rejected():
    with pytest.raises(ValueError, match="must be positive"):

        class _Bad(MigratingDB):
            migrations = {0: Migration("000", _fail, _fail)}