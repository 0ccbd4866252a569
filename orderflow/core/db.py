"""Database utility helpers."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


@contextmanager
def sqlite_connection(path: Path, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection with row factory enabled.

    With ``immediate=True`` the write lock is taken up front (``BEGIN IMMEDIATE``) so a
    read-modify-write inside the block cannot interleave with another writer.
    """

    conn = sqlite3.connect(path, timeout=10.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:  # noqa: BLE001
        conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()
