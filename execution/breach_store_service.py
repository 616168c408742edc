"""
SQLite persistence for breach records seen per email address.
A record is identified by (email, name); the surrogate id is only a primary key.
"""
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from execution.breach_models import BreachRecord, normalize_email

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "email",
    "name",
    "title",
    "domain",
    "breach_date",
    "added_date",
    "modified_date",
    "pwn_count",
    "description",
    "logo_path",
    "data_classes",
    "is_verified",
    "is_fabricated",
    "is_sensitive",
    "is_retired",
    "is_spam_list",
    "is_malware",
    "created_at",
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(db_path: str) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))


def ensure_schema(db_path: str) -> None:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS breaches (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                name TEXT NOT NULL,
                title TEXT NOT NULL,
                domain TEXT NOT NULL,
                breach_date TEXT NOT NULL,
                added_date TEXT NOT NULL,
                modified_date TEXT NOT NULL,
                pwn_count INTEGER NOT NULL,
                description TEXT NOT NULL,
                logo_path TEXT NOT NULL,
                data_classes TEXT NOT NULL,
                is_verified INTEGER NOT NULL,
                is_fabricated INTEGER NOT NULL,
                is_sensitive INTEGER NOT NULL,
                is_retired INTEGER NOT NULL,
                is_spam_list INTEGER NOT NULL,
                is_malware INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                notified_at TEXT,
                suppressed_at TEXT
            )
            """
        )
        cursor.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_breaches_email_name ON breaches (email, name)"
        )
        # Databases created before the suppression stamp existed
        columns = {row[1] for row in cursor.execute("PRAGMA table_info(breaches)")}
        if "suppressed_at" not in columns:
            cursor.execute("ALTER TABLE breaches ADD COLUMN suppressed_at TEXT")
        conn.commit()
    finally:
        conn.close()


def breach_exists(db_path: str, email: str, name: str) -> bool:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT 1 FROM breaches WHERE email = ? AND name = ? LIMIT 1",
            (normalize_email(email), name),
        )
        return cursor.fetchone() is not None
    finally:
        conn.close()


def insert_breach(db_path: str, record: BreachRecord) -> bool:
    """
    Store ``record`` unless (email, name) is already present.

    The existence check and the write are one statement, so a duplicate
    never reaches the unique index. Returns True when a row was written.
    """
    email = normalize_email(record.email)
    values = (
        record.id,
        email,
        record.name,
        record.title,
        record.domain,
        record.breach_date,
        record.added_date,
        record.modified_date,
        record.pwn_count,
        record.description,
        record.logo_path,
        json.dumps(record.data_classes),
        int(record.is_verified),
        int(record.is_fabricated),
        int(record.is_sensitive),
        int(record.is_retired),
        int(record.is_spam_list),
        int(record.is_malware),
        _utc_now(),
    )
    column_list = ", ".join(_COLUMNS)
    placeholders = ", ".join("?" for _ in _COLUMNS)
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"""
            INSERT INTO breaches ({column_list})
            SELECT {placeholders}
            WHERE NOT EXISTS (SELECT 1 FROM breaches WHERE email = ? AND name = ?)
            """,
            values + (email, record.name),
        )
        conn.commit()
        inserted = cursor.rowcount == 1
    finally:
        conn.close()

    if inserted:
        logger.debug(f"[STORE] Recorded {record.name} for {email}")
    return inserted


def _stamp(db_path: str, column: str, email: str, names: list[str]) -> int:
    if not names:
        return 0
    email = normalize_email(email)
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.executemany(
            f"UPDATE breaches SET {column} = ? WHERE email = ? AND name = ?",
            [(_utc_now(), email, name) for name in names],
        )
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()


def mark_notified(db_path: str, email: str, names: list[str]) -> int:
    """Stamp delivery time on the given records. Returns rows updated."""
    return _stamp(db_path, "notified_at", email, names)


def mark_suppressed(db_path: str, email: str, names: list[str]) -> int:
    """Stamp records that were held back from alerting by the added-date cutoff."""
    return _stamp(db_path, "suppressed_at", email, names)


def _row_to_record(row: sqlite3.Row) -> BreachRecord:
    return BreachRecord(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        title=row["title"],
        domain=row["domain"],
        breach_date=row["breach_date"],
        added_date=row["added_date"],
        modified_date=row["modified_date"],
        pwn_count=row["pwn_count"],
        description=row["description"],
        logo_path=row["logo_path"],
        data_classes=json.loads(row["data_classes"] or "[]"),
        is_verified=bool(row["is_verified"]),
        is_fabricated=bool(row["is_fabricated"]),
        is_sensitive=bool(row["is_sensitive"]),
        is_retired=bool(row["is_retired"]),
        is_spam_list=bool(row["is_spam_list"]),
        is_malware=bool(row["is_malware"]),
    )


def list_unnotified(db_path: str, email: str) -> list[BreachRecord]:
    """Records that were due an alert but never delivered; cutoff-suppressed ones are left out."""
    conn = _connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT * FROM breaches
            WHERE email = ? AND notified_at IS NULL AND suppressed_at IS NULL
            ORDER BY rowid
            """,
            (normalize_email(email),),
        )
        return [_row_to_record(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def count_breaches(db_path: str, email: str | None = None) -> int:
    conn = _connect(db_path)
    try:
        cursor = conn.cursor()
        if email is None:
            cursor.execute("SELECT COUNT(*) FROM breaches")
        else:
            cursor.execute(
                "SELECT COUNT(*) FROM breaches WHERE email = ?", (normalize_email(email),)
            )
        return cursor.fetchone()[0]
    finally:
        conn.close()
