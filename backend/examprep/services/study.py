"""
Study-session recording: the read → schedule → write step around the
SM-2 scheduler.

The scheduler requires an explicit quality. When a client only reports
right/wrong, ``QualityPolicy`` supplies the quality here, upstream of the
scheduler.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from examprep.config import settings
from examprep.db.sqlite import to_iso
from examprep.models.flashcard import Flashcard, StudyResult
from examprep.services.scheduler import (
    InvalidReviewInput,
    ReviewableCard,
    ReviewOutcome,
    schedule,
)

logger = logging.getLogger(__name__)


class CardNotFound(LookupError):
    pass


class CardRepository(Protocol):
    async def get(self, card_id: str) -> Flashcard | None: ...

    async def save_schedule(
        self, card_id: str, state: ReviewableCard
    ) -> Flashcard | None: ...


@dataclass(frozen=True)
class QualityPolicy:
    correct: int = 3
    incorrect: int = 1

    @classmethod
    def from_settings(cls) -> QualityPolicy:
        return cls(
            correct=settings.default_quality_correct,
            incorrect=settings.default_quality_incorrect,
        )

    def resolve(self, is_correct: bool, quality: int | None) -> int:
        if quality is not None:
            return quality
        return self.correct if is_correct else self.incorrect


def review_state(card: Flashcard) -> ReviewableCard:
    return ReviewableCard(
        times_studied=card.times_studied,
        times_correct=card.times_correct,
        correct_rate=card.correct_rate,
        ease_factor=card.ease_factor,
        interval=card.interval,
        next_review=datetime.fromisoformat(card.next_review),
    )


async def record_study(
    repo: CardRepository,
    card_id: str,
    is_correct: bool,
    quality: int | None,
    now: datetime,
    policy: QualityPolicy | None = None,
) -> StudyResult:
    """
    Apply one review to a stored card and persist the new schedule.

    Raises CardNotFound or InvalidReviewInput; in both cases nothing is
    written and the stored card remains authoritative.
    """
    policy = policy or QualityPolicy.from_settings()
    outcome = ReviewOutcome(
        is_correct=is_correct, quality=policy.resolve(is_correct, quality)
    )

    card = await repo.get(card_id)
    if card is None:
        raise CardNotFound(card_id)

    try:
        state = schedule(review_state(card), outcome, now)
    except InvalidReviewInput as exc:
        logger.warning("Rejected review for card %s: %s", card_id, exc)
        raise

    saved = await repo.save_schedule(card_id, state)
    if saved is None:
        # Deleted between read and write
        raise CardNotFound(card_id)

    logger.info(
        "Recorded study for card %s: quality=%d interval=%d ease=%.2f",
        card_id,
        outcome.quality,
        state.interval,
        state.ease_factor,
    )
    return StudyResult(
        flashcard_id=card_id,
        times_studied=state.times_studied,
        correct_rate=state.correct_rate,
        ease_factor=state.ease_factor,
        interval=state.interval,
        next_review=to_iso(state.next_review),
    )
