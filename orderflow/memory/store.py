"""Conversation store abstraction and SQLite implementation."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import sqlite3

from orderflow.core.db import sqlite_connection
from orderflow.core.errors import StoreError

from .models import (
    CartItem,
    CartOperation,
    CartTotals,
    ConversationRecord,
    ConversationState,
    MessageTurn,
    product_key,
    utcnow,
)

logger = logging.getLogger("orderflow.store")


class ConversationStore(ABC):
    """Persistence operations consumed by the orchestration engine."""

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> ConversationRecord:
        """Return state, metadata and cart, creating a GREETING record on first contact."""

    @abstractmethod
    def atomic_update_cart(
        self,
        conversation_id: str,
        op: CartOperation,
        item: CartItem | None = None,
    ) -> CartTotals:
        """Apply one cart mutation as a single conditional read-modify-write."""

    @abstractmethod
    def atomic_update_state(
        self,
        conversation_id: str,
        new_state: ConversationState | None,
        metadata_patch: Mapping[str, Any] | None = None,
    ) -> bool:
        """Set the state (``None`` keeps it) and merge a metadata patch.

        Keys patched to ``None`` are removed. Returns ``False`` when the conversation is
        in a terminal state and the requested state differs.
        """

    @abstractmethod
    def get_recent_history(self, conversation_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        """Return the most recent turns for a conversation, oldest first."""

    @abstractmethod
    def append_turn(self, turn: MessageTurn) -> None:
        """Persist a single conversational turn."""

    @abstractmethod
    def iter_conversations(self) -> Iterable[str]:
        """Iterate over known conversation identifiers."""

    @abstractmethod
    def reset(self, conversation_id: str) -> None:
        """Drop turns, cart and state for a conversation."""


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connection(self, *, immediate: bool = False):
        return sqlite_connection(self.db_path, immediate=immediate)

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL DEFAULT 'greeting',
                    metadata TEXT NOT NULL DEFAULT '{}',
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    metadata TEXT,
                    FOREIGN KEY (conversation_id) REFERENCES conversations (conversation_id)
                        ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS cart_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    product_key TEXT NOT NULL,
                    product_name TEXT NOT NULL,
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    unit_price REAL NOT NULL CHECK (unit_price >= 0),
                    notes TEXT,
                    UNIQUE (conversation_id, product_key),
                    FOREIGN KEY (conversation_id) REFERENCES conversations (conversation_id)
                        ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_messages_conversation
                    ON messages (conversation_id, id DESC);
                """
            )
            conn.commit()
        finally:
            conn.close()

    # -- conversation state -------------------------------------------------

    def get_conversation(self, conversation_id: str) -> ConversationRecord:
        with self._connection() as conn:
            self._ensure_conversation(conn, conversation_id)
            row = conn.execute(
                "SELECT state, metadata, updated_at FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
            cart = self._load_cart(conn, conversation_id)

        return ConversationRecord(
            conversation_id=conversation_id,
            state=ConversationState(row["state"]),
            metadata=json_loads(row["metadata"] or "{}"),
            cart=cart,
            updated_at=datetime_from_iso(row["updated_at"]),
        )

    def atomic_update_state(
        self,
        conversation_id: str,
        new_state: ConversationState | None,
        metadata_patch: Mapping[str, Any] | None = None,
    ) -> bool:
        with self._connection(immediate=True) as conn:
            self._ensure_conversation(conn, conversation_id)
            row = conn.execute(
                "SELECT state, metadata FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
            current = ConversationState(row["state"])
            if current.is_terminal and new_state is not None and new_state is not current:
                logger.warning(
                    "Refusing transition %s -> %s on terminal conversation %s",
                    current.value,
                    new_state.value,
                    conversation_id,
                )
                return False

            metadata = json_loads(row["metadata"] or "{}")
            for key, value in (metadata_patch or {}).items():
                if value is None:
                    metadata.pop(key, None)
                else:
                    metadata[key] = value

            conn.execute(
                """
                UPDATE conversations
                SET state = ?, metadata = ?, updated_at = ?
                WHERE conversation_id = ?
                """,
                (
                    (new_state or current).value,
                    json_dumps(metadata),
                    utcnow().isoformat(),
                    conversation_id,
                ),
            )
        return True

    # -- cart ---------------------------------------------------------------

    def atomic_update_cart(
        self,
        conversation_id: str,
        op: CartOperation,
        item: CartItem | None = None,
    ) -> CartTotals:
        if op is not CartOperation.CLEAR and item is None:
            raise StoreError(f"cart operation {op.value} requires an item")

        with self._connection(immediate=True) as conn:
            self._ensure_conversation(conn, conversation_id)
            changed = True

            if op is CartOperation.ADD:
                conn.execute(
                    """
                    INSERT INTO cart_items
                        (conversation_id, product_key, product_name, quantity, unit_price, notes)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(conversation_id, product_key) DO UPDATE SET
                        product_name = excluded.product_name,
                        quantity = excluded.quantity,
                        unit_price = excluded.unit_price,
                        notes = excluded.notes
                    """,
                    (
                        conversation_id,
                        item.key,
                        item.product_name,
                        item.quantity,
                        item.unit_price,
                        item.notes,
                    ),
                )
            elif op is CartOperation.UPDATE:
                cursor = conn.execute(
                    """
                    UPDATE cart_items SET quantity = ?
                    WHERE conversation_id = ? AND product_key = ?
                    """,
                    (item.quantity, conversation_id, item.key),
                )
                changed = cursor.rowcount > 0
            elif op is CartOperation.REMOVE:
                cursor = conn.execute(
                    "DELETE FROM cart_items WHERE conversation_id = ? AND product_key = ?",
                    (conversation_id, item.key),
                )
                changed = cursor.rowcount > 0
            else:
                cursor = conn.execute(
                    "DELETE FROM cart_items WHERE conversation_id = ?",
                    (conversation_id,),
                )
                changed = cursor.rowcount > 0

            cart = self._load_cart(conn, conversation_id)
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
                (utcnow().isoformat(), conversation_id),
            )

        return CartTotals(
            new_total=sum(line.line_total for line in cart),
            new_count=sum(line.quantity for line in cart),
            changed=changed,
        )

    # -- turns --------------------------------------------------------------

    def append_turn(self, turn: MessageTurn) -> None:
        with self._connection() as conn:
            self._ensure_conversation(conn, turn.conversation_id)
            conn.execute(
                """
                INSERT INTO messages (conversation_id, role, content, created_at, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    turn.conversation_id,
                    turn.role,
                    turn.content,
                    turn.created_at.isoformat(),
                    json_dumps(turn.metadata),
                ),
            )

    def get_recent_history(self, conversation_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, role, content, created_at, metadata
                FROM messages
                WHERE conversation_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            ).fetchall()

        turns = [
            MessageTurn(
                conversation_id=row["conversation_id"],
                role=row["role"],
                content=row["content"],
                created_at=datetime_from_iso(row["created_at"]),
                metadata=json_loads(row["metadata"] or "{}"),
            )
            for row in rows
        ]
        turns.reverse()
        return turns

    def iter_conversations(self) -> Iterable[str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT conversation_id FROM conversations ORDER BY conversation_id")
            return [row["conversation_id"] for row in rows]

    def reset(self, conversation_id: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM cart_items WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _ensure_conversation(conn: sqlite3.Connection, conversation_id: str) -> None:
        conn.execute(
            """
            INSERT OR IGNORE INTO conversations (conversation_id, state, metadata, updated_at)
            VALUES (?, ?, '{}', ?)
            """,
            (conversation_id, ConversationState.GREETING.value, utcnow().isoformat()),
        )

    @staticmethod
    def _load_cart(conn: sqlite3.Connection, conversation_id: str) -> list[CartItem]:
        rows = conn.execute(
            """
            SELECT product_name, quantity, unit_price, notes
            FROM cart_items
            WHERE conversation_id = ?
            ORDER BY id ASC
            """,
            (conversation_id,),
        ).fetchall()
        return [
            CartItem(
                product_name=row["product_name"],
                quantity=row["quantity"],
                unit_price=row["unit_price"],
                notes=row["notes"],
            )
            for row in rows
        ]


def find_cart_item(cart: Sequence[CartItem], name: str) -> CartItem | None:
    key = product_key(name)
    return next((item for item in cart if item.key == key), None)


def json_dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), default=str)


def json_loads(value: str) -> dict[str, Any]:
    return json.loads(value)


def datetime_from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)
