import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from examprep.config import settings
from examprep.models.flashcard import (
    CardStatus,
    CardType,
    Difficulty,
    Flashcard,
    FlashcardAuthor,
    FlashcardCreate,
    FlashcardFilters,
    FlashcardStats,
    FlashcardUpdate,
    InvalidFlashcardContent,
    missing_content,
)
from examprep.services.scheduler import ReviewableCard, round_half_up

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS flashcards (
    id            TEXT PRIMARY KEY,
    type          TEXT NOT NULL,
    difficulty    TEXT NOT NULL,
    category      TEXT NOT NULL,
    subcategory   TEXT,
    tags          TEXT NOT NULL DEFAULT '[]',
    status        TEXT NOT NULL DEFAULT 'draft',
    front         TEXT,
    back          TEXT,
    extra         TEXT,
    text          TEXT,
    question      TEXT,
    options       TEXT,
    correct       INTEGER,
    explanation   TEXT,
    statement     TEXT,
    answer        TEXT,
    hint          TEXT,
    image         TEXT,
    times_studied INTEGER NOT NULL DEFAULT 0,
    times_correct INTEGER NOT NULL DEFAULT 0,
    correct_rate  REAL NOT NULL DEFAULT 0.0,
    ease_factor   REAL NOT NULL DEFAULT 2.5,
    interval      TEXT NOT NULL DEFAULT '0',  -- unbounded day count
    next_review   TEXT NOT NULL,
    author_id     TEXT NOT NULL DEFAULT '',
    author_name   TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_review ON flashcards(next_review);
CREATE INDEX IF NOT EXISTS idx_flashcards_category ON flashcards(category);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""

# Columns serialised as JSON text
_JSON_COLUMNS = ("tags", "options")

_SEARCH_COLUMNS = ("front", "back", "question", "statement", "text", "tags")


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 at second precision; lexical order == time order."""
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def _now() -> str:
    return to_iso(datetime.now(timezone.utc))


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    d = dict(row)
    for col in _JSON_COLUMNS:
        if d[col] is not None:
            d[col] = json.loads(d[col])
    d["interval"] = int(d["interval"])
    return Flashcard(**d)


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    for key, val in fields.items():
        if key in _JSON_COLUMNS and val is not None:
            fields[key] = json.dumps(val, ensure_ascii=False)
        elif hasattr(val, "value"):
            fields[key] = val.value
    return fields


async def _insert_flashcard(
    db: aiosqlite.Connection, card: FlashcardCreate, now: datetime
) -> str:
    card_id = str(uuid.uuid4())
    state = ReviewableCard.new(now)
    fields = _encode(card.model_dump())
    fields.update(
        id=card_id,
        times_studied=state.times_studied,
        times_correct=state.times_correct,
        correct_rate=state.correct_rate,
        ease_factor=state.ease_factor,
        interval=str(state.interval),
        next_review=to_iso(state.next_review),
        created_at=to_iso(now),
        updated_at=to_iso(now),
    )
    columns = ", ".join(fields)
    placeholders = ", ".join("?" for _ in fields)
    await db.execute(
        f"INSERT INTO flashcards ({columns}) VALUES ({placeholders})",  # noqa: S608
        list(fields.values()),
    )
    return card_id


async def create_flashcard(
    db: aiosqlite.Connection, card: FlashcardCreate, now: datetime | None = None
) -> Flashcard:
    card_id = await _insert_flashcard(db, card, now or datetime.now(timezone.utc))
    await db.commit()
    return await get_flashcard(db, card_id)  # type: ignore[return-value]


async def bulk_create_flashcards(
    db: aiosqlite.Connection, cards: list[FlashcardCreate]
) -> list[str]:
    """Insert already-validated cards in one transaction. Returns new IDs."""
    now = datetime.now(timezone.utc)
    ids = [await _insert_flashcard(db, c, now) for c in cards]
    await db.commit()
    return ids


async def get_flashcard(db: aiosqlite.Connection, card_id: str) -> Flashcard | None:
    cursor = await db.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,))
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def list_flashcards(
    db: aiosqlite.Connection,
    *,
    search: str = "",
    category: str | None = None,
    subcategory: str | None = None,
    difficulty: str | None = None,
    card_type: str | None = None,
    status: str | None = None,
    author_id: str | None = None,
    due_before: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Flashcard], int]:
    """Filter and page flashcards. ``due_before`` switches to due-first ordering."""
    clauses: list[str] = []
    params: list[Any] = []
    if search:
        like = f"%{search.lower()}%"
        clauses.append(
            "(" + " OR ".join(f"lower({c}) LIKE ?" for c in _SEARCH_COLUMNS) + ")"
        )
        params.extend(like for _ in _SEARCH_COLUMNS)
    for column, value in (
        ("category", category),
        ("subcategory", subcategory),
        ("difficulty", difficulty),
        ("type", card_type),
        ("status", status),
        ("author_id", author_id),
    ):
        if value:
            clauses.append(f"{column} = ?")
            params.append(value)
    if due_before:
        clauses.append("next_review <= ?")
        params.append(due_before)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    order = "next_review ASC" if due_before else "created_at DESC"

    count_cursor = await db.execute(
        f"SELECT COUNT(*) FROM flashcards {where}", params  # noqa: S608
    )
    count_row = await count_cursor.fetchone()
    total = count_row[0] if count_row else 0

    cursor = await db.execute(
        f"SELECT * FROM flashcards {where} ORDER BY {order}, id ASC LIMIT ? OFFSET ?",  # noqa: S608
        [*params, limit, offset],
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows], total


async def update_flashcard_content(
    db: aiosqlite.Connection, card_id: str, updates: FlashcardUpdate
) -> Flashcard | None:
    """Apply a content edit. Raises InvalidFlashcardContent if the merged card
    would lose content its type requires."""
    card = await get_flashcard(db, card_id)
    if card is None:
        return None
    changes = updates.model_dump(exclude_none=True)
    if not changes:
        return card

    missing = missing_content(card.type, {**card.model_dump(), **changes})
    if missing:
        raise InvalidFlashcardContent(
            f"{card.type.value} cards require: {', '.join(missing)}"
        )

    fields = _encode(changes)
    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [card_id]

    cursor = await db.execute(
        f"UPDATE flashcards SET {set_clause} WHERE id = ?",  # noqa: S608
        values,
    )
    await db.commit()
    if not cursor.rowcount:
        return None
    return await get_flashcard(db, card_id)


async def update_flashcard_schedule(
    db: aiosqlite.Connection, card_id: str, state: ReviewableCard
) -> Flashcard | None:
    """Overwrite the scheduling columns only; content is left as is."""
    await db.execute(
        """UPDATE flashcards
           SET times_studied = ?, times_correct = ?, correct_rate = ?,
               ease_factor = ?, interval = ?, next_review = ?, updated_at = ?
           WHERE id = ?""",
        (
            state.times_studied,
            state.times_correct,
            state.correct_rate,
            state.ease_factor,
            str(state.interval),
            to_iso(state.next_review),
            _now(),
            card_id,
        ),
    )
    await db.commit()
    return await get_flashcard(db, card_id)


async def delete_flashcard(db: aiosqlite.Connection, card_id: str) -> bool:
    cursor = await db.execute("DELETE FROM flashcards WHERE id = ?", (card_id,))
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def _count_by(db: aiosqlite.Connection, column: str) -> dict[str, int]:
    cursor = await db.execute(
        f"SELECT {column}, COUNT(*) FROM flashcards GROUP BY {column} ORDER BY {column}"  # noqa: S608
    )
    return {row[0]: row[1] for row in await cursor.fetchall()}


async def get_flashcard_stats(db: aiosqlite.Connection, now: str) -> FlashcardStats:
    """Aggregate counts, accuracy and due cards across the whole deck store."""
    by_status = await _count_by(db, "status")

    cursor = await db.execute(
        """SELECT COUNT(*),
                  COALESCE(SUM(times_studied), 0),
                  SUM(CASE WHEN times_studied > 0 THEN 1 ELSE 0 END),
                  AVG(CASE WHEN times_studied > 0 THEN correct_rate END)
           FROM flashcards"""
    )
    total, total_studies, with_stats, avg_rate = await cursor.fetchone()

    due_cursor = await db.execute(
        "SELECT COUNT(*) FROM flashcards WHERE status = 'published' AND next_review <= ?",
        (now,),
    )
    due_row = await due_cursor.fetchone()

    return FlashcardStats(
        total=total,
        published=by_status.get("published", 0),
        draft=by_status.get("draft", 0),
        archived=by_status.get("archived", 0),
        by_category=await _count_by(db, "category"),
        by_difficulty=await _count_by(db, "difficulty"),
        by_type=await _count_by(db, "type"),
        avg_correct_rate=round_half_up(avg_rate, 1) if avg_rate is not None else 0.0,
        total_studies=total_studies,
        flashcards_with_stats=with_stats or 0,
        due_for_review=due_row[0] if due_row else 0,
    )


async def get_flashcard_filters(db: aiosqlite.Connection) -> FlashcardFilters:
    """Distinct values present in the store, plus the fixed enum choices."""
    cursor = await db.execute("SELECT DISTINCT category FROM flashcards ORDER BY category")
    categories = [row[0] for row in await cursor.fetchall()]

    cursor = await db.execute(
        "SELECT DISTINCT subcategory FROM flashcards "
        "WHERE subcategory IS NOT NULL AND subcategory != '' ORDER BY subcategory"
    )
    subcategories = [row[0] for row in await cursor.fetchall()]

    cursor = await db.execute(
        "SELECT DISTINCT author_id, author_name FROM flashcards "
        "WHERE author_id != '' ORDER BY author_name, author_id"
    )
    authors = [FlashcardAuthor(id=row[0], name=row[1]) for row in await cursor.fetchall()]

    return FlashcardFilters(
        categories=categories,
        subcategories=subcategories,
        authors=authors,
        difficulties=list(Difficulty),
        types=list(CardType),
        statuses=list(CardStatus),
    )


class FlashcardRepository:
    """Card lookup and schedule persistence for the study service."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def get(self, card_id: str) -> Flashcard | None:
        return await get_flashcard(self.db, card_id)

    async def save_schedule(self, card_id: str, state: ReviewableCard) -> Flashcard | None:
        return await update_flashcard_schedule(self.db, card_id, state)
