"""sqlite3 storage for accounts."""

from __future__ import annotations

import ipaddress
import math
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .migrations import MigratingDB, Migration

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_STRICT = " STRICT" if sqlite3.sqlite_version_info >= (3, 37, 0) else ""


def _up_001(conn):
    try:
        conn.execute(
            "CREATE TABLE accounts (\n"
            "    uid         TEXT PRIMARY KEY NOT NULL,\n"
            "    username    TEXT NOT NULL DEFAULT '' COLLATE NOCASE,\n"
            "    auth_ip     TEXT,\n"
            "    auth_token  TEXT,\n"
            "    auth_expiry INTEGER,\n"
            "    last_server TEXT\n"
            f"){_STRICT};"
        )
    except sqlite3.Error as exc:
        raise RuntimeError(f"create accounts table: {exc}") from exc
    try:
        conn.execute("CREATE INDEX accounts_username_idx ON accounts(username, uid)")
    except sqlite3.Error as exc:
        raise RuntimeError(f"create accounts index: {exc}") from exc


def _down_001(conn):
    try:
        conn.execute("DROP INDEX accounts_username_idx")
    except sqlite3.Error as exc:
        raise RuntimeError(f"drop accounts_username_idx index: {exc}") from exc
    try:
        conn.execute("DROP TABLE accounts")
    except sqlite3.Error as exc:
        raise RuntimeError(f"drop accounts table: {exc}") from exc


@dataclass
class Account:
    """A player account."""

    uid: int
    username: str = ""
    auth_ip: Optional[IPAddress] = None
    auth_token: str = ""
    auth_token_expiry: Optional[datetime] = None
    last_server_id: str = ""


class AtlasDB(MigratingDB):
    """Account storage in a sqlite3 database."""

    migrations = {1: Migration("001", _up_001, _down_001)}

    def __init__(self, path):
        conn = sqlite3.connect(
            os.fspath(path), timeout=4.0, isolation_level=None, check_same_thread=False
        )
        # WAL and a larger cache make writes and queries much faster
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA cache_size = -32000")
        super().__init__(conn)

    def get_uids_by_username(self, username):
        """Return the uids of accounts with the username (case-insensitive)."""
        if not username:
            return []
        rows = self._conn.execute(
            "SELECT uid FROM accounts WHERE username = ?", (username,)
        ).fetchall()
        return [int(uid) for (uid,) in rows]

    def get_account(self, uid):
        """Return the account for ``uid``, or None if there is none."""
        row = self._conn.execute(
            "SELECT uid, username, auth_ip, auth_token, auth_expiry, last_server "
            "FROM accounts WHERE uid = ?",
            (str(uid),),
        ).fetchone()
        if row is None:
            return None
        stored_uid, username, auth_ip, auth_token, auth_expiry, last_server = row

        expiry = None
        if auth_expiry:
            expiry = datetime.fromtimestamp(int(auth_expiry), tz=timezone.utc)

        address = None
        if auth_ip:
            try:
                address = ipaddress.ip_address(auth_ip)
            except ValueError as exc:
                raise ValueError(f"parse auth_ip: {exc}") from exc

        return Account(
            uid=int(stored_uid),
            username=username or "",
            auth_ip=address,
            auth_token=auth_token or "",
            auth_token_expiry=expiry,
            last_server_id=last_server or "",
        )

    def save_account(self, account):
        """Insert or replace an account."""
        expiry = 0
        if account.auth_token_expiry is not None:
            expiry = math.floor(account.auth_token_expiry.timestamp())
        address = account.auth_ip.exploded if account.auth_ip is not None else ""
        self._conn.execute(
            "INSERT OR REPLACE INTO "
            "accounts (uid, username, auth_ip, auth_token, auth_expiry, last_server) "
            "VALUES (:uid, :username, :auth_ip, :auth_token, :auth_expiry, :last_server)",
            {
                "uid": str(account.uid),
                "username": account.username,
                "auth_ip": address,
                "auth_token": account.auth_token,
                "auth_expiry": expiry,
                "last_server": account.last_server_id,
            },
        )