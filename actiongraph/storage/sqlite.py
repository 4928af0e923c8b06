"""
SQLite storage backend for the action graph.

This module provides a persistent ActionStore using SQLite, suitable for
single-node deployments and development.

Schema Design:
    - actions: One typed row per action, including collaborator-owned
      derived columns (the embedding is stored as JSON text)
    - edges: Composite key (src, dst, kind), kind CHECK-constrained,
      foreign keys with ON DELETE CASCADE, and a partial unique index
      on dst for family edges backing the single-parent rule

Thread Safety:
    SQLite in WAL mode supports concurrent reads with a single writer.
    Each thread gets its own connection; writes are serialized with a
    process-level lock and BEGIN IMMEDIATE so that other processes see
    the database as locked for the whole transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from actiongraph.core.errors import (
    DuplicateEdgeError,
    DuplicateParentError,
    NotFoundError,
    VersionConflictError,
)
from actiongraph.core.models import (
    Action,
    ActionCreate,
    ActionEdge,
    ActionUpdate,
    EdgeKind,
    parse_derived,
    parse_edge_kind,
    utcnow,
)
from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)

_ACTION_COLUMNS = (
    "id, title, description, vision, done, version, created_at, updated_at, "
    "embedding_vector, node_summary, subtree_summary, "
    "family_context_summary, family_vision_summary"
)


def _timestamp(value: datetime) -> str:
    # Fixed width, so text order matches time order
    return value.isoformat(timespec="microseconds")


class SQLiteActionStore(ActionStore):
    """
    SQLite-based action store.

    Usage:
        ```python
        with SQLiteActionStore("./actions.db") as store:
            action = store.create(ActionCreate(title="Ship it"))
            store.get(action.id)
        ```

    The handle is explicitly constructed and explicitly closed; nothing
    is cached at module level.
    """

    def __init__(self, db_path: str | Path, timeout: float = 30.0):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a lock held by another connection
        """
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._lock = threading.RLock()

        # Thread-local connections and transaction depth
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []

        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a thread-local connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._timeout,
                check_same_thread=False,
                isolation_level=None,  # transactions are opened explicitly
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            self._local.depth = 0
            with self._lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        Nested blocks join the outermost one; only the outermost block
        commits or rolls back.
        """
        with self._lock:
            conn = self._get_connection()
            depth = self._local.depth
            if depth == 0:
                conn.execute("BEGIN IMMEDIATE")
            self._local.depth = depth + 1
            try:
                yield conn
            except BaseException:
                self._local.depth = depth
                if depth == 0:
                    conn.execute("ROLLBACK")
                raise
            else:
                self._local.depth = depth
                if depth == 0:
                    conn.execute("COMMIT")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS actions (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    vision TEXT,
                    done INTEGER NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    embedding_vector TEXT,
                    node_summary TEXT,
                    subtree_summary TEXT,
                    family_context_summary TEXT,
                    family_vision_summary TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS edges (
                    src TEXT NOT NULL REFERENCES actions(id) ON DELETE CASCADE,
                    dst TEXT NOT NULL REFERENCES actions(id) ON DELETE CASCADE,
                    kind TEXT NOT NULL CHECK (kind IN ('family', 'depends_on')),
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (src, dst, kind)
                )
            """)

            # Single parent
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_edges_single_parent
                ON edges(dst) WHERE kind = 'family'
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_edges_dst
                ON edges(dst, kind)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_actions_done
                ON actions(done, created_at)
            """)

    # =========================================================================
    # Actions
    # =========================================================================

    def get(self, action_id: str) -> Optional[Action]:
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_ACTION_COLUMNS} FROM actions WHERE id = ?",
            (action_id,)
        ).fetchone()
        if row is None:
            return None
        return self._deserialize_action(row)

    def get_many(self, action_ids: Iterable[str]) -> dict[str, Action]:
        ids = list(set(action_ids))
        if not ids:
            return {}
        conn = self._get_connection()
        result: dict[str, Action] = {}
        # Stay well under SQLITE_MAX_VARIABLE_NUMBER
        for i in range(0, len(ids), 500):
            chunk = ids[i:i + 500]
            placeholders = ", ".join("?" for _ in chunk)
            rows = conn.execute(
                f"SELECT {_ACTION_COLUMNS} FROM actions WHERE id IN ({placeholders})",
                chunk,
            )
            for row in rows:
                result[row["id"]] = self._deserialize_action(row)
        return result

    def list(
        self,
        done: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Action]:
        conn = self._get_connection()
        sql = f"SELECT {_ACTION_COLUMNS} FROM actions"
        params: list = []

        if done is not None:
            sql += " WHERE done = ?"
            params.append(int(done))

        sql += " ORDER BY created_at, id"

        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        elif offset:
            sql += " LIMIT -1 OFFSET ?"
            params.append(offset)

        return [self._deserialize_action(row) for row in conn.execute(sql, params)]

    def count(self, done: Optional[bool] = None) -> int:
        conn = self._get_connection()
        if done is None:
            row = conn.execute("SELECT COUNT(*) FROM actions").fetchone()
        else:
            row = conn.execute("SELECT COUNT(*) FROM actions WHERE done = ?", (int(done),)).fetchone()
        return row[0]

    def create(self, fields: ActionCreate) -> Action:
        action = Action(**fields.model_dump())
        with self.transaction() as conn:
            conn.execute(f"""
                INSERT INTO actions ({_ACTION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, self._serialize_action(action))
        return action

    def update(
        self,
        action_id: str,
        fields: ActionUpdate,
        expected_version: Optional[int] = None,
    ) -> Action:
        changes = fields.changes()
        if "done" in changes:
            changes["done"] = int(changes["done"])

        assignments = [f"{name} = ?" for name in changes]
        assignments += ["version = version + 1", "updated_at = ?"]
        params: list = list(changes.values()) + [_timestamp(utcnow()), action_id]

        sql = f"UPDATE actions SET {', '.join(assignments)} WHERE id = ?"
        if expected_version is not None:
            # Compare-and-set on the version column
            sql += " AND version = ?"
            params.append(expected_version)

        with self.transaction() as conn:
            cursor = conn.execute(sql, params)
            if cursor.rowcount == 0:
                current = self.get(action_id)
                if current is None:
                    raise NotFoundError(action_id)
                raise VersionConflictError(action_id, expected_version, current.version)
            updated = self.get(action_id)
        return updated

    def update_derived(self, action_id: str, fields: dict[str, Any]) -> Action:
        fields = parse_derived(fields)
        if not fields:
            return self.require(action_id)

        values = []
        for name, value in fields.items():
            if name == "embedding_vector" and value is not None:
                value = json.dumps(value)
            values.append(value)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE actions SET {assignments} WHERE id = ?",
                values + [action_id],
            )
            if cursor.rowcount == 0:
                raise NotFoundError(action_id)
            updated = self.get(action_id)
        return updated

    def touch(self, action_id: str) -> None:
        with self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE actions SET updated_at = ? WHERE id = ?",
                (_timestamp(utcnow()), action_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(action_id)

    def delete(self, action_id: str) -> Optional[Action]:
        with self.transaction() as conn:
            action = self.get(action_id)
            if action is None:
                return None
            # Edges go with it via ON DELETE CASCADE
            conn.execute("DELETE FROM actions WHERE id = ?", (action_id,))
        return action

    # =========================================================================
    # Edges
    # =========================================================================

    def list_edges(
        self,
        kind: Optional[EdgeKind] = None,
        src: Optional[str] = None,
        dst: Optional[str] = None,
    ) -> list[ActionEdge]:
        conn = self._get_connection()
        sql = "SELECT src, dst, kind, created_at FROM edges"
        clauses: list[str] = []
        params: list = []

        if kind is not None:
            clauses.append("kind = ?")
            params.append(parse_edge_kind(kind).value)
        if src is not None:
            clauses.append("src = ?")
            params.append(src)
        if dst is not None:
            clauses.append("dst = ?")
            params.append(dst)

        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at, rowid"

        return [self._deserialize_edge(row) for row in conn.execute(sql, params)]

    def insert_edge(self, src: str, dst: str, kind: EdgeKind) -> ActionEdge:
        kind = parse_edge_kind(kind)
        edge = ActionEdge(src=src, dst=dst, kind=kind)

        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM actions WHERE id IN (?, ?)", (src, dst)
            ).fetchall()
            found = {row["id"] for row in existing}
            if src not in found:
                raise NotFoundError(src)
            if dst not in found:
                raise NotFoundError(dst)

            duplicate = conn.execute(
                "SELECT 1 FROM edges WHERE src = ? AND dst = ? AND kind = ?",
                (src, dst, kind.value),
            ).fetchone()
            if duplicate is not None:
                raise DuplicateEdgeError(src, dst, kind.value)

            try:
                conn.execute(
                    "INSERT INTO edges (src, dst, kind, created_at) VALUES (?, ?, ?, ?)",
                    (src, dst, kind.value, _timestamp(edge.created_at)),
                )
            except sqlite3.IntegrityError:
                if kind != EdgeKind.FAMILY:
                    raise
                parent = conn.execute(
                    "SELECT src FROM edges WHERE dst = ? AND kind = 'family'", (dst,)
                ).fetchone()
                if parent is None:
                    raise
                raise DuplicateParentError(dst, parent["src"])

        return edge

    def delete_edge(self, src: str, dst: str, kind: EdgeKind) -> Optional[ActionEdge]:
        kind = parse_edge_kind(kind)
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT src, dst, kind, created_at FROM edges WHERE src = ? AND dst = ? AND kind = ?",
                (src, dst, kind.value),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "DELETE FROM edges WHERE src = ? AND dst = ? AND kind = ?",
                (src, dst, kind.value),
            )
        return self._deserialize_edge(row)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def clear(self) -> None:
        """Clear all data."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM edges")
            conn.execute("DELETE FROM actions")

    def close(self) -> None:
        """Close every connection this store opened, across threads."""
        with self._lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.ProgrammingError:
                    logger.debug(f"Connection to {self._db_path} already closed")
            self._connections.clear()
        self._local = threading.local()

    # =========================================================================
    # Serialization Helpers
    # =========================================================================

    def _serialize_action(self, action: Action) -> tuple:
        return (
            action.id,
            action.title,
            action.description,
            action.vision,
            int(action.done),
            action.version,
            _timestamp(action.created_at),
            _timestamp(action.updated_at),
            json.dumps(action.embedding_vector) if action.embedding_vector is not None else None,
            action.node_summary,
            action.subtree_summary,
            action.family_context_summary,
            action.family_vision_summary,
        )

    def _deserialize_action(self, row: sqlite3.Row) -> Action:
        embedding = row["embedding_vector"]
        return Action(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            vision=row["vision"],
            done=bool(row["done"]),
            version=row["version"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            embedding_vector=json.loads(embedding) if embedding is not None else None,
            node_summary=row["node_summary"],
            subtree_summary=row["subtree_summary"],
            family_context_summary=row["family_context_summary"],
            family_vision_summary=row["family_vision_summary"],
        )

    def _deserialize_edge(self, row: sqlite3.Row) -> ActionEdge:
        return ActionEdge(
            src=row["src"],
            dst=row["dst"],
            kind=EdgeKind(row["kind"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
