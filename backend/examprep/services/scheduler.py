"""
SM-2 review scheduler.

Pure calculation: takes a card's current review state and one review
outcome, returns the next review state. No I/O, no clock access; the
caller passes ``now`` and persists the result.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext

INITIAL_EASE = 2.5
MIN_EASE = 1.3
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3
# Latest due date representable in UTC; very long intervals saturate here
MAX_REVIEW_DATE = datetime.max.replace(tzinfo=timezone.utc)


class InvalidReviewInput(ValueError):
    """Review state or outcome is outside the scheduler's domain."""


@dataclass(frozen=True)
class ReviewableCard:
    times_studied: int
    times_correct: int
    correct_rate: float
    ease_factor: float
    interval: int           # days until next review
    next_review: datetime

    @classmethod
    def new(cls, now: datetime) -> ReviewableCard:
        """Initial state for a freshly created card: due tomorrow."""
        return cls(
            times_studied=0,
            times_correct=0,
            correct_rate=0.0,
            ease_factor=INITIAL_EASE,
            interval=0,
            next_review=now + timedelta(days=1),
        )


@dataclass(frozen=True)
class ReviewOutcome:
    is_correct: bool
    quality: int  # 0=blackout … 5=perfect recall


def round_half_up(value: float, places: int = 0) -> float:
    """Decimal half-up rounding of the float's shortest repr."""
    exp = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(exp, rounding=ROUND_HALF_UP))


def correct_rate(times_correct: int, times_studied: int) -> float:
    if times_studied <= 0:
        return 0.0
    return round_half_up(times_correct / times_studied * 100, 1)


def _validate(current: ReviewableCard, outcome: ReviewOutcome) -> None:
    q = outcome.quality
    if isinstance(q, bool) or not isinstance(q, int):
        raise InvalidReviewInput(f"quality must be an integer, got {q!r}")
    if not MIN_QUALITY <= q <= MAX_QUALITY:
        raise InvalidReviewInput(
            f"quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {q}"
        )
    if not isinstance(outcome.is_correct, bool):
        raise InvalidReviewInput(
            f"is_correct must be a boolean, got {outcome.is_correct!r}"
        )
    if current.times_studied < 0 or current.times_correct < 0:
        raise InvalidReviewInput(
            f"counters must be non-negative "
            f"(times_studied={current.times_studied}, times_correct={current.times_correct})"
        )
    if current.times_correct > current.times_studied:
        raise InvalidReviewInput(
            f"times_correct ({current.times_correct}) exceeds "
            f"times_studied ({current.times_studied})"
        )
    if current.ease_factor < MIN_EASE:
        raise InvalidReviewInput(
            f"ease_factor {current.ease_factor} is below the floor of {MIN_EASE}"
        )
    if current.interval < 0:
        raise InvalidReviewInput(f"interval must be non-negative, got {current.interval}")


def next_interval(interval: int, ease_factor: float, quality: int) -> int:
    if quality < PASSING_QUALITY:
        # Failed recall: relearn tomorrow
        return 1
    if interval == 0:
        return 1
    if interval == 1:
        return 6
    # Exact decimal product: intervals are unbounded and outgrow float range
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(interval)) + len(repr(ease_factor)) + 2)
        product = Decimal(interval) * Decimal(repr(ease_factor))
        return int(product.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def next_review_date(now: datetime, interval: int) -> datetime:
    """``now`` plus ``interval`` calendar days, capped at MAX_REVIEW_DATE."""
    try:
        due = now + timedelta(days=interval)
        due.astimezone(timezone.utc)
    except OverflowError:
        return MAX_REVIEW_DATE
    return due


def next_ease(ease_factor: float, quality: int) -> float:
    miss = MAX_QUALITY - quality
    ease = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    return round_half_up(max(MIN_EASE, ease), 2)


def schedule(
    current: ReviewableCard, outcome: ReviewOutcome, now: datetime
) -> ReviewableCard:
    """
    Compute the card state after one review.

    Interval and ease are driven by ``outcome.quality`` alone; ``is_correct``
    only feeds the accuracy counters. Raises InvalidReviewInput without
    computing anything when the inputs are out of range.
    """
    _validate(current, outcome)

    times_studied = current.times_studied + 1
    times_correct = current.times_correct + (1 if outcome.is_correct else 0)
    interval = next_interval(current.interval, current.ease_factor, outcome.quality)

    return ReviewableCard(
        times_studied=times_studied,
        times_correct=times_correct,
        correct_rate=correct_rate(times_correct, times_studied),
        ease_factor=next_ease(current.ease_factor, outcome.quality),
        interval=interval,
        next_review=next_review_date(now, interval),
    )
