"""
Flashcards & study-session router.

Endpoints:
  GET    /flashcards/              — list cards (filters, pagination)
  GET    /flashcards/due           — published cards due for review, oldest first
  GET    /flashcards/stats         — aggregate counts and accuracy
  GET    /flashcards/filters       — distinct categories, subcategories, authors and enum choices
  POST   /flashcards/bulk-import   — create many cards, reporting per-item errors
  POST   /flashcards/{id}/study    — record a review, run SM-2, persist schedule
  GET    /flashcards/{id}          — single card
  POST   /flashcards/              — create card
  PATCH  /flashcards/{id}          — edit content (schedule untouched)
  DELETE /flashcards/{id}          — delete a never-studied card
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

import aiosqlite
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError

from examprep.db.sqlite import (
    FlashcardRepository,
    bulk_create_flashcards,
    create_flashcard,
    delete_flashcard,
    get_db,
    get_flashcard,
    get_flashcard_filters,
    get_flashcard_stats,
    list_flashcards,
    to_iso,
    update_flashcard_content,
)
from examprep.models.flashcard import (
    BulkImportError,
    BulkImportResult,
    CardStatus,
    CardType,
    Difficulty,
    Flashcard,
    FlashcardCreate,
    FlashcardFilters,
    FlashcardList,
    FlashcardPage,
    FlashcardStats,
    FlashcardUpdate,
    InvalidFlashcardContent,
    StudyRequest,
    StudyResult,
)
from examprep.services.scheduler import InvalidReviewInput
from examprep.services.study import CardNotFound, record_study

logger = logging.getLogger(__name__)
router = APIRouter()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@router.get("/", response_model=FlashcardPage)
async def list_cards(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    search: str = Query(default=""),
    category: str | None = Query(default=None),
    subcategory: str | None = Query(default=None),
    difficulty: Difficulty | None = Query(default=None),
    type: CardType | None = Query(default=None),
    status: CardStatus | None = Query(default=None),
    author_id: str | None = Query(default=None),
    due_only: bool = Query(default=False),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardPage:
    items, total = await list_flashcards(
        db,
        search=search,
        category=category,
        subcategory=subcategory,
        difficulty=difficulty.value if difficulty else None,
        card_type=type.value if type else None,
        status=status.value if status else None,
        author_id=author_id,
        due_before=to_iso(_utcnow()) if due_only else None,
        offset=(page - 1) * limit,
        limit=limit,
    )
    pages = math.ceil(total / limit)
    return FlashcardPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        pages=pages,
        has_next=page < pages,
        has_prev=page > 1,
    )


@router.get("/due", response_model=FlashcardList)
async def get_due(
    limit: int = Query(default=20, ge=1, le=100),
    category: str | None = Query(default=None),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    """Return published cards due for review now, oldest first."""
    items, total = await list_flashcards(
        db,
        category=category,
        status=CardStatus.PUBLISHED.value,
        due_before=to_iso(_utcnow()),
        limit=limit,
    )
    return FlashcardList(items=items, total=total)


@router.get("/stats", response_model=FlashcardStats)
async def flashcard_stats(db: aiosqlite.Connection = Depends(get_db)) -> FlashcardStats:
    return await get_flashcard_stats(db, to_iso(_utcnow()))


@router.get("/filters", response_model=FlashcardFilters)
async def flashcard_filters(db: aiosqlite.Connection = Depends(get_db)) -> FlashcardFilters:
    return await get_flashcard_filters(db)


@router.post("/bulk-import", response_model=BulkImportResult)
async def bulk_import(
    flashcards: list[Any] = Body(..., embed=True),
    db: aiosqlite.Connection = Depends(get_db),
) -> BulkImportResult:
    """Validate each card independently; invalid entries are skipped and reported."""
    valid: list[FlashcardCreate] = []
    errors: list[BulkImportError] = []
    for index, data in enumerate(flashcards):
        try:
            valid.append(FlashcardCreate.model_validate(data))
        except ValidationError as exc:
            message = "; ".join(e["msg"] for e in exc.errors())
            errors.append(BulkImportError(index=index, error=message))

    await bulk_create_flashcards(db, valid)
    logger.info(
        "Bulk import: %d flashcards imported, %d errors", len(valid), len(errors)
    )
    return BulkImportResult(success=len(valid), errors=errors)


@router.post("/{card_id}/study", response_model=StudyResult)
async def study_card(
    card_id: str,
    body: StudyRequest,
    db: aiosqlite.Connection = Depends(get_db),
) -> StudyResult:
    """Record a study session for a card. Runs SM-2 and stores the new schedule."""
    try:
        return await record_study(
            FlashcardRepository(db),
            card_id,
            is_correct=body.is_correct,
            quality=body.quality,
            now=_utcnow(),
        )
    except InvalidReviewInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CardNotFound as exc:
        raise HTTPException(status_code=404, detail="Flashcard not found") from exc


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    card = await get_flashcard(db, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return card


@router.post("/", response_model=Flashcard, status_code=201)
async def create_card(
    body: FlashcardCreate, db: aiosqlite.Connection = Depends(get_db)
) -> Flashcard:
    return await create_flashcard(db, body)


@router.patch("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    try:
        updated = await update_flashcard_content(db, card_id, body)
    except InvalidFlashcardContent as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if not updated:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    card = await get_flashcard(db, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    if card.times_studied > 0:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Flashcard has been studied {card.times_studied} times; "
                "archive it instead of deleting"
            ),
        )
    await delete_flashcard(db, card_id)
