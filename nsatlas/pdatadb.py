"""sqlite3 storage for player data blobs."""

from __future__ import annotations

import gzip
import hashlib
import os
import sqlite3
import zlib

from .migrations import MigratingDB, Migration

_STRICT = " STRICT" if sqlite3.sqlite_version_info >= (3, 37, 0) else ""
_HASH_SIZE = hashlib.sha256().digest_size
_ZERO_HASH = bytes(_HASH_SIZE)


class PdataError(Exception):
    """Raised when stored pdata is corrupt or cannot be decoded."""


def _up_001(conn):
    try:
        conn.execute(
            "CREATE TABLE pdata (\n"
            "    uid        INTEGER PRIMARY KEY NOT NULL,\n"
            "    pdata_comp TEXT NOT NULL COLLATE NOCASE,\n"
            "    pdata_hash TEXT NOT NULL,\n"
            "    pdata      BLOB NOT NULL\n"
            f"){_STRICT};"
        )
    except sqlite3.Error as exc:
        raise RuntimeError(f"create pdata table: {exc}") from exc
    try:
        conn.execute("CREATE INDEX pdata_hash_idx ON pdata(pdata_hash, uid)")
    except sqlite3.Error as exc:
        raise RuntimeError(f"create pdata index: {exc}") from exc


def _down_001(conn):
    try:
        conn.execute("DROP INDEX pdata_hash_idx")
    except sqlite3.Error as exc:
        raise RuntimeError(f"drop pdata index: {exc}") from exc
    try:
        conn.execute("DROP TABLE pdata")
    except sqlite3.Error as exc:
        raise RuntimeError(f"drop pdata table: {exc}") from exc


def _parse_hash(text):
    try:
        digest = bytes.fromhex(text)
    except (TypeError, ValueError):
        raise PdataError("invalid pdata hash") from None
    if len(digest) != _HASH_SIZE:
        raise PdataError("invalid pdata hash")
    return digest


class PdataDB(MigratingDB):
    """Player data storage in a sqlite3 database."""

    migrations = {1: Migration("001", _up_001, _down_001)}

    def __init__(self, path):
        conn = sqlite3.connect(
            os.fspath(path), timeout=4.0, isolation_level=None, check_same_thread=False
        )
        # a larger page size and WAL make writes and queries much faster
        conn.execute("PRAGMA page_size = 8192")
        conn.execute("PRAGMA journal_mode = WAL")
        super().__init__(conn)

    def get_pdata_hash(self, uid):
        """Return the SHA-256 of the stored pdata, or None if there is none."""
        row = self._conn.execute(
            "SELECT pdata_hash FROM pdata WHERE uid = ?", (uid,)
        ).fetchone()
        if row is None:
            return None
        return _parse_hash(row[0])

    def get_pdata_cached(self, uid, sha):
        """Return ``(pdata, exists)`` for ``uid``.

        If ``sha`` is given, non-zero and equal to the stored hash, the data is
        not loaded and ``(None, True)`` is returned.
        """
        if sha is not None and bytes(sha) != _ZERO_HASH:
            stored = self.get_pdata_hash(uid)
            if stored is None:
                return None, False
            if stored == bytes(sha):
                return None, True

        row = self._conn.execute(
            "SELECT pdata_comp, pdata_hash, pdata FROM pdata WHERE uid = ?", (uid,)
        ).fetchone()
        if row is None:
            return None, False
        comp, hash_text, data = row
        data = bytes(data)

        if comp == "gzip":
            try:
                data = gzip.decompress(data)
            except (OSError, EOFError, zlib.error) as exc:
                raise PdataError(f"decompress gzip: {exc}") from exc
        elif comp != "":
            raise PdataError(f"unsupported compression method {comp!r}")

        if hashlib.sha256(data).digest() != _parse_hash(hash_text):
            raise PdataError("pdata checksum mismatch")
        return data, True

    def set_pdata(self, uid, buf):
        """Store pdata for ``uid`` and return the number of bytes stored."""
        buf = bytes(buf)
        pdata_hash = hashlib.sha256(buf).hexdigest()

        compressed = gzip.compress(buf, mtime=0)
        comp = ""
        if len(compressed) < len(buf):
            comp = "gzip"
            buf = compressed

        self._conn.execute(
            "INSERT OR REPLACE INTO pdata (uid, pdata_comp, pdata_hash, pdata) "
            "VALUES (:uid, :pdata_comp, :pdata_hash, :pdata)",
            {"uid": uid, "pdata_comp": comp, "pdata_hash": pdata_hash, "pdata": buf},
        )
        return len(buf)