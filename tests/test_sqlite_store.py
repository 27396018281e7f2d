import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

from examprep.db import init_all_databases
from examprep.db.sqlite import (
    FlashcardRepository,
    create_flashcard,
    get_flashcard,
    get_flashcard_filters,
    get_flashcard_stats,
    list_flashcards,
    to_iso,
    update_flashcard_content,
)
from examprep.models.flashcard import (
    FlashcardCreate,
    FlashcardUpdate,
    InvalidFlashcardContent,
)
from examprep.services.scheduler import (
    MAX_REVIEW_DATE,
    ReviewableCard,
    ReviewOutcome,
    schedule,
)

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


async def _with_db(data_dir, fn):
    await init_all_databases(data_dir)
    async with aiosqlite.connect(data_dir / "examprep.db") as db:
        db.row_factory = aiosqlite.Row
        return await fn(db)


def _card(**overrides) -> FlashcardCreate:
    data = dict(
        type="basic",
        difficulty="easy",
        category="DIREITO",
        front="Front",
        back="Back",
        status="published",
    )
    data.update(overrides)
    return FlashcardCreate(**data)


def test_to_iso_normalises_to_utc():
    local = datetime(2026, 10, 19, 6, 0, 30, 123456, tzinfo=timezone(timedelta(hours=-3)))
    assert to_iso(local) == "2026-10-19T09:00:30+00:00"


def test_new_card_has_initial_schedule(data_dir):
    async def run(db):
        return await create_flashcard(db, _card(tags=["a", "b"]), now=NOW)

    card = asyncio.run(_with_db(data_dir, run))
    assert card.tags == ["a", "b"]
    assert card.times_studied == 0
    assert card.ease_factor == 2.5
    assert card.interval == 0
    assert card.next_review == "2026-10-20T09:00:00+00:00"


def test_save_schedule_overwrites_only_scheduling_fields(data_dir):
    async def run(db):
        card = await create_flashcard(db, _card(), now=NOW)
        repo = FlashcardRepository(db)
        state = schedule(
            ReviewableCard.new(NOW), ReviewOutcome(is_correct=True, quality=5), NOW
        )
        saved = await repo.save_schedule(card.id, state)
        return card, saved

    before, after = asyncio.run(_with_db(data_dir, run))
    assert after.times_studied == 1
    assert after.times_correct == 1
    assert after.correct_rate == 100.0
    assert after.ease_factor == 2.6
    assert after.interval == 1
    assert after.next_review == "2026-10-20T09:00:00+00:00"
    assert after.front == before.front
    assert after.tags == before.tags
    assert after.created_at == before.created_at


def test_content_update_keeps_schedule(data_dir):
    async def run(db):
        card = await create_flashcard(db, _card(), now=NOW)
        return await update_flashcard_content(
            db, card.id, FlashcardUpdate(back="New back", status="archived")
        )

    updated = asyncio.run(_with_db(data_dir, run))
    assert updated.back == "New back"
    assert updated.status == "archived"
    assert updated.ease_factor == 2.5
    assert updated.next_review == "2026-10-20T09:00:00+00:00"


def test_content_update_missing_card(data_dir):
    async def run(db):
        return await update_flashcard_content(db, "missing", FlashcardUpdate(back="x"))

    assert asyncio.run(_with_db(data_dir, run)) is None


def test_content_update_cannot_blank_required_fields(data_dir):
    async def run(db):
        card = await create_flashcard(db, _card(), now=NOW)
        with pytest.raises(InvalidFlashcardContent, match="back"):
            await update_flashcard_content(db, card.id, FlashcardUpdate(back=""))
        return await get_flashcard(db, card.id)

    stored = asyncio.run(_with_db(data_dir, run))
    assert stored.back == "Back"


def test_huge_interval_round_trips(data_dir):
    state = replace(
        ReviewableCard.new(NOW),
        times_studied=40,
        times_correct=40,
        correct_rate=100.0,
        ease_factor=6.5,
        interval=3 * 10**25,
        next_review=MAX_REVIEW_DATE,
    )

    async def run(db):
        card = await create_flashcard(db, _card(), now=NOW)
        await FlashcardRepository(db).save_schedule(card.id, state)
        return await get_flashcard(db, card.id)

    stored = asyncio.run(_with_db(data_dir, run))
    assert stored.interval == 3 * 10**25
    assert stored.next_review == "9999-12-31T23:59:59+00:00"


def test_filters_lists_distinct_values(data_dir):
    async def run(db):
        await create_flashcard(db, _card(subcategory="Penal", author_id="7", author_name="Caio"))
        await create_flashcard(db, _card(subcategory="Penal", author_id="7", author_name="Caio"))
        await create_flashcard(db, _card(category="ADMIN", subcategory=""))
        return await get_flashcard_filters(db)

    filters = asyncio.run(_with_db(data_dir, run))
    assert filters.categories == ["ADMIN", "DIREITO"]
    assert filters.subcategories == ["Penal"]
    assert [(a.id, a.name) for a in filters.authors] == [("7", "Caio")]
    assert len(filters.types) == 6


def test_due_listing_orders_oldest_first(data_dir):
    async def run(db):
        await create_flashcard(db, _card(front="later"), now=NOW - timedelta(days=2))
        await create_flashcard(db, _card(front="oldest"), now=NOW - timedelta(days=5))
        await create_flashcard(db, _card(front="future"), now=NOW)
        return await list_flashcards(db, due_before=to_iso(NOW))

    items, total = asyncio.run(_with_db(data_dir, run))
    assert total == 2
    assert [c.front for c in items] == ["oldest", "later"]


def test_list_filters_and_search(data_dir):
    async def run(db):
        await create_flashcard(db, _card(front="Habeas corpus", tags=["CF"]), now=NOW)
        await create_flashcard(db, _card(front="Mandado", category="ADMIN"), now=NOW)
        await create_flashcard(
            db, _card(type="cloze", front=None, back=None, text="{{c1::Lei}} seca"), now=NOW
        )
        by_search = await list_flashcards(db, search="HABEAS")
        by_tag = await list_flashcards(db, search="cf")
        by_category = await list_flashcards(db, category="ADMIN")
        by_type = await list_flashcards(db, card_type="cloze")
        page = await list_flashcards(db, limit=2, offset=2)
        return by_search, by_tag, by_category, by_type, page

    by_search, by_tag, by_category, by_type, page = asyncio.run(_with_db(data_dir, run))
    assert [c.front for c in by_search[0]] == ["Habeas corpus"]
    assert by_tag[1] == 1
    assert [c.front for c in by_category[0]] == ["Mandado"]
    assert by_type[0][0].text == "{{c1::Lei}} seca"
    assert len(page[0]) == 1
    assert page[1] == 3


def test_stats(data_dir):
    async def run(db):
        repo = FlashcardRepository(db)
        a = await create_flashcard(db, _card(), now=NOW - timedelta(days=3))
        b = await create_flashcard(db, _card(category="ADMIN", difficulty="hard"), now=NOW)
        await create_flashcard(db, _card(status="draft"), now=NOW - timedelta(days=3))

        state = ReviewableCard.new(NOW)
        state = schedule(state, ReviewOutcome(is_correct=True, quality=4), NOW)
        state = schedule(state, ReviewOutcome(is_correct=False, quality=1), NOW)
        await repo.save_schedule(b.id, state)

        state = ReviewableCard.new(NOW)
        state = schedule(state, ReviewOutcome(is_correct=True, quality=4), NOW)
        state = schedule(state, ReviewOutcome(is_correct=True, quality=4), NOW)
        state = schedule(state, ReviewOutcome(is_correct=False, quality=2), NOW)
        await repo.save_schedule(a.id, state)
        return await get_flashcard_stats(db, to_iso(NOW))

    stats = asyncio.run(_with_db(data_dir, run))
    assert stats.total == 3
    assert stats.published == 2
    assert stats.draft == 1
    assert stats.archived == 0
    assert stats.by_category == {"ADMIN": 1, "DIREITO": 2}
    assert stats.by_difficulty == {"easy": 2, "hard": 1}
    assert stats.by_type == {"basic": 3}
    # (50.0 + 66.7) / 2
    assert stats.avg_correct_rate == 58.4
    assert stats.total_studies == 5
    assert stats.flashcards_with_stats == 2
    assert stats.due_for_review == 0
