"""Email store contract and its SQLite implementation."""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from mail_intelligence import constants
from mail_intelligence.models import Attachment, Message, Rule, to_iso, utcnow

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    account_id TEXT,
    sender TEXT,
    sender_name TEXT,
    to_json TEXT,
    cc_json TEXT,
    subject TEXT,
    snippet TEXT,
    body TEXT,
    date TEXT,
    is_read INTEGER,
    is_starred INTEGER,
    labels_json TEXT,
    category TEXT,
    importance REAL,
    attachments_json TEXT,
    unsubscribe_link TEXT,
    size INTEGER
);

CREATE TABLE IF NOT EXISTS rules (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT UNIQUE,
    created_at TEXT,
    data_json TEXT
);
"""


@dataclass
class MessageFilter:
    """Selection for EmailStore.get_messages. Results are always newest first."""

    account_id: str | None = None
    category: str | None = None
    is_read: bool | None = None
    limit: int | None = None


class EmailStore(Protocol):
    """Read/write access to message and rule records."""

    def get_messages(self, filter: MessageFilter | None = None) -> list[Message]: ...

    def get_message(self, message_id: str) -> Message | None: ...

    def update_category(self, message_id: str, category: str) -> None: ...

    def mark_read(self, message_ids: list[str], read: bool) -> None: ...

    def save_rule(self, rule: Rule) -> Rule: ...

    def get_rule(self, rule_id: str) -> Rule | None: ...

    def get_rules(self) -> list[Rule]: ...

    def delete_rule(self, rule_id: str) -> None: ...


def _message_from_row(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        account_id=row["account_id"] or "",
        sender=row["sender"] or "",
        sender_name=row["sender_name"] or "",
        to=json.loads(row["to_json"] or "[]"),
        cc=json.loads(row["cc_json"] or "[]"),
        subject=row["subject"] or "",
        snippet=row["snippet"] or "",
        body=row["body"] or "",
        date=row["date"] or "",
        is_read=bool(row["is_read"]),
        is_starred=bool(row["is_starred"]),
        labels=json.loads(row["labels_json"] or "[]"),
        category=row["category"],
        importance=row["importance"],
        attachments=[Attachment(**a) for a in json.loads(row["attachments_json"] or "[]")],
        unsubscribe_link=row["unsubscribe_link"],
        size=row["size"] or 0,
    )


class SqliteEmailStore:
    """Persistent SQLite store for messages and rules."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or constants.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- messages ---

    def save_messages(self, messages: Iterable[Message]) -> int:
        """Insert or replace messages in a single transaction."""
        count = 0
        with self._conn:
            for m in messages:
                self._conn.execute(
                    "INSERT OR REPLACE INTO messages (id, account_id, sender, sender_name, to_json, "
                    "cc_json, subject, snippet, body, date, is_read, is_starred, labels_json, "
                    "category, importance, attachments_json, unsubscribe_link, size) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        m.id,
                        m.account_id,
                        m.sender,
                        m.sender_name,
                        json.dumps(m.to),
                        json.dumps(m.cc),
                        m.subject,
                        m.snippet,
                        m.body,
                        m.date,
                        int(m.is_read),
                        int(m.is_starred),
                        json.dumps(m.labels),
                        m.category,
                        m.importance,
                        json.dumps([a.__dict__ for a in m.attachments]),
                        m.unsubscribe_link,
                        m.size,
                    ),
                )
                count += 1
        return count

    def get_messages(self, filter: MessageFilter | None = None) -> list[Message]:
        filter = filter or MessageFilter()
        sql = "SELECT * FROM messages WHERE 1=1"
        params: list = []

        if filter.account_id:
            sql += " AND account_id = ?"
            params.append(filter.account_id)
        if filter.category:
            sql += " AND category = ?"
            params.append(filter.category)
        if filter.is_read is not None:
            sql += " AND is_read = ?"
            params.append(int(filter.is_read))

        sql += " ORDER BY date DESC"

        if filter.limit:
            sql += " LIMIT ?"
            params.append(filter.limit)

        return [_message_from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def get_message(self, message_id: str) -> Message | None:
        row = self._conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return _message_from_row(row) if row else None

    def update_category(self, message_id: str, category: str) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE messages SET category = ? WHERE id = ?", (category, message_id)
            )

    def update_classification(self, message_id: str, category: str, importance: float) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE messages SET category = ?, importance = ? WHERE id = ?",
                (category, importance, message_id),
            )

    def mark_read(self, message_ids: list[str], read: bool) -> None:
        with self._conn:
            self._conn.executemany(
                "UPDATE messages SET is_read = ? WHERE id = ?",
                [(int(read), message_id) for message_id in message_ids],
            )

    def category_counts(self) -> dict[str, int]:
        rows = self._conn.execute(
            "SELECT category, COUNT(*) AS c FROM messages GROUP BY category ORDER BY c DESC"
        ).fetchall()
        return {r["category"]: r["c"] for r in rows}

    # --- rules ---

    def save_rule(self, rule: Rule) -> Rule:
        """Insert or update a rule, keeping its original creation order."""
        now = to_iso(utcnow())
        rule.id = rule.id or uuid.uuid4().hex[:12]
        rule.created_at = rule.created_at or now
        rule.updated_at = now
        with self._conn:
            existing = self._conn.execute(
                "SELECT seq FROM rules WHERE id = ?", (rule.id,)
            ).fetchone()
            if existing:
                self._conn.execute(
                    "UPDATE rules SET data_json = ? WHERE id = ?",
                    (json.dumps(rule.to_dict()), rule.id),
                )
            else:
                self._conn.execute(
                    "INSERT INTO rules (id, created_at, data_json) VALUES (?, ?, ?)",
                    (rule.id, rule.created_at, json.dumps(rule.to_dict())),
                )
        return self.get_rule(rule.id)  # type: ignore[return-value]

    def get_rule(self, rule_id: str) -> Rule | None:
        row = self._conn.execute(
            "SELECT data_json FROM rules WHERE id = ?", (rule_id,)
        ).fetchone()
        return Rule.from_dict(json.loads(row["data_json"])) if row else None

    def get_rules(self) -> list[Rule]:
        """Return all rules in creation order."""
        rows = self._conn.execute("SELECT data_json FROM rules ORDER BY seq").fetchall()
        return [Rule.from_dict(json.loads(r["data_json"])) for r in rows]

    def delete_rule(self, rule_id: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))

    # --- maintenance ---

    def clear(self) -> None:
        """Drop and recreate all tables."""
        self._conn.executescript("DROP TABLE IF EXISTS messages;DROP TABLE IF EXISTS rules;")
        self._create_tables()

    def get_info(self) -> dict:
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        message_count = self._conn.execute("SELECT COUNT(*) AS c FROM messages").fetchone()["c"]
        rule_count = self._conn.execute("SELECT COUNT(*) AS c FROM rules").fetchone()["c"]
        newest = self._conn.execute("SELECT MAX(date) AS d FROM messages").fetchone()["d"]
        return {
            "db_file_size": file_size,
            "message_count": message_count,
            "rule_count": rule_count,
            "newest_message_date": newest,
        }

    def close(self) -> None:
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> SqliteEmailStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
