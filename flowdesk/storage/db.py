"""SQLite-backed, path-addressed JSON tree.

Values are stored flattened: every non-dict value lives in its own row keyed
by its full slash-separated path, and dicts exist only implicitly through the
paths of their leaves. ``get`` on an inner path reassembles the subtree.

Invariant: a leaf row never coexists with rows beneath it. ``set`` and
``update`` clear both the target subtree and any leaf rows on ancestor paths
before writing.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS nodes (
    path TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Create or open a SQLite database with the flowdesk schema."""
    # Shared by the web server's thread pool; Store serializes access.
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")

    conn.executescript(SCHEMA_SQL)
    conn.commit()

    return conn


def _normalize(path: str) -> str:
    return "/".join(part for part in path.split("/") if part)


def _join(path: str, key: str) -> str:
    return f"{path}/{key}" if path else key


def _flatten(path: str, value: Any, out: list[tuple[str, str]]) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            key = str(key)
            if not key or "/" in key:
                raise ValueError(f"Invalid key {key!r} under {path!r}")
            if child is None:
                continue
            _flatten(_join(path, key), child, out)
    else:
        out.append((path, json.dumps(value)))


class Store:
    """get / set / update / push_key over a single shared key-value tree.

    Each primitive is atomic on its own. Sequences of calls are not:
    concurrent writers to the same path are last-writer-wins.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def get(self, path: str) -> Any:
        """Return the value or subtree at ``path``, or None if nothing is stored there."""
        path = _normalize(path)
        with self._lock:
            if path:
                prefix = path + "/"
                rows = self._conn.execute(
                    "SELECT path, value FROM nodes WHERE path = ? OR substr(path, 1, ?) = ?",
                    (path, len(prefix), prefix),
                ).fetchall()
            else:
                prefix = ""
                rows = self._conn.execute("SELECT path, value FROM nodes").fetchall()

        tree: dict = {}
        for row in rows:
            if row["path"] == path:
                return json.loads(row["value"])
            parts = row["path"][len(prefix):].split("/")
            node = tree
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = json.loads(row["value"])
        return tree or None

    def set(self, path: str, value: Any) -> None:
        """Replace whatever is at ``path``. Setting None deletes it."""
        path = _normalize(path)
        rows: list[tuple[str, str]] = []
        if value is not None:
            _flatten(path, value, rows)
        with self._lock:
            self._delete_subtree(path)
            if rows:
                self._delete_ancestor_leaves(path)
                self._conn.executemany("INSERT INTO nodes (path, value) VALUES (?, ?)", rows)
            self._conn.commit()

    def update(self, path: str, partial: dict) -> None:
        """Shallow-merge ``partial`` into ``path``; a None value deletes that key."""
        path = _normalize(path)
        writes: list[tuple[str, list[tuple[str, str]]]] = []
        for key, value in partial.items():
            key = str(key)
            if not key or "/" in key:
                raise ValueError(f"Invalid key {key!r} under {path!r}")
            rows: list[tuple[str, str]] = []
            if value is not None:
                _flatten(_join(path, key), value, rows)
            writes.append((_join(path, key), rows))

        with self._lock:
            for child_path, rows in writes:
                self._delete_subtree(child_path)
                if rows:
                    self._delete_ancestor_leaves(child_path)
                    self._conn.executemany(
                        "INSERT INTO nodes (path, value) VALUES (?, ?)", rows
                    )
            self._conn.commit()

    def delete(self, path: str) -> None:
        self.set(path, None)

    def push_key(self, path: str) -> str:
        """Allocate a child key not yet used under ``path``, without writing anything."""
        path = _normalize(path)
        with self._lock:
            while True:
                key = uuid.uuid4().hex
                child = _join(path, key)
                prefix = child + "/"
                taken = self._conn.execute(
                    "SELECT 1 FROM nodes WHERE path = ? OR substr(path, 1, ?) = ? LIMIT 1",
                    (child, len(prefix), prefix),
                ).fetchone()
                if taken is None:
                    return key

    def _delete_subtree(self, path: str) -> None:
        if not path:
            self._conn.execute("DELETE FROM nodes")
            return
        prefix = path + "/"
        self._conn.execute(
            "DELETE FROM nodes WHERE path = ? OR substr(path, 1, ?) = ?",
            (path, len(prefix), prefix),
        )

    def _delete_ancestor_leaves(self, path: str) -> None:
        parts = path.split("/")
        ancestors = ["/".join(parts[:i]) for i in range(1, len(parts))]
        if ancestors:
            self._conn.executemany(
                "DELETE FROM nodes WHERE path = ?", [(a,) for a in ancestors]
            )
