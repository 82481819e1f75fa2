# nsatlas

Storage and server-probing pieces for a Titanfall 2 (Northstar) master server.

- `nsatlas.atlasdb.AtlasDB` stores player accounts (`nsatlas.atlasdb.Account`) in SQLite.
- `nsatlas.pdatadb.PdataDB` stores player data blobs in SQLite. It gzip-compresses a
  blob when that makes it smaller, and checks it against a SHA-256 hash on read.
- `nsatlas.migrations` holds the schema versioning that both databases share
  (`MigratingDB`, `Migration`, `MigrationError`).
- `nsatlas.a2s` sends an encrypted connect challenge to a game server over UDP
  to check that the server is reachable.

## Installation

```
pip install .
```

## Databases

Both database classes work as context managers. Before you use a database,
migrate it to the version the code requires:

```python
from nsatlas.atlasdb import Account, AtlasDB

with AtlasDB("atlas.db") as db:
    current, required = db.version()
    db.migrate_up(required)

    db.save_account(Account(uid=1000000001, username="pilot"))
    print(db.get_uids_by_username("PILOT"))   # [1000000001]; usernames match without regard to case
    print(db.get_account(1000000001))         # an Account, or None if the uid is unknown
```

`save_account` inserts the account or replaces an existing one with the same uid.

```python
from nsatlas.pdatadb import PdataDB

with PdataDB("pdata.db") as db:
    db.migrate_up(db.version()[1])
    stored_size = db.set_pdata(1000000001, b"...pdata bytes...")
    digest = db.get_pdata_hash(1000000001)            # 32-byte SHA-256, or None
    data, exists = db.get_pdata_cached(1000000001, None)
```

`set_pdata` returns the number of bytes it stored, after any compression.
If you pass `get_pdata_cached` the hash you already hold and it still matches,
you get back `(None, True)` and no data is read. For an unknown uid it returns
`(None, False)`. Corrupt stored data raises `nsatlas.pdatadb.PdataError`.

`migrate_down(0)` undoes every migration and deletes the data. A migration that
cannot be carried out raises `nsatlas.migrations.MigrationError`.

## Probing servers

```
r2-a2s-probe [options] ip:port...
```

Write IPv6 addresses in brackets, for example `[::1]:37015`.

Options:

- `-t`, `--timeout` sets how long to wait for a response, as a duration such as
  `3s`, `250ms` or `1m30s`. The default is `3s`.
- `-c`, `--connections` sets how many servers are probed at once. The default is 1.
- `-s`, `--silent` leaves out the result for each server.
- `-h`, `--help` shows the help text.

The command prints `ok` or the error for each server on standard error. It exits
with status 1 if any probe failed, and with status 2 for a bad address or option.

You can also probe from Python:

```python
from nsatlas.a2s import ProbeError, probe

try:
    probe(("127.0.0.1", 37015), 3.0)
except ProbeError as exc:
    print("unreachable:", exc)
```

A probe that gets no answer in time raises `ProbeTimeoutError`, a subclass of
`ProbeError`.

## What this package does not do

It provides storage and a probe only. It has no master server to run, no HTTP
API for game servers or clients, no parser for the contents of pdata blobs, no
tool to import accounts from another database, and no login to an external
account service.