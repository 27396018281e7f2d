from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, StrictBool, StrictInt, model_validator


class CardType(str, Enum):
    BASIC = "basic"
    BASIC_REVERSED = "basic_reversed"
    CLOZE = "cloze"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    TYPE_ANSWER = "type_answer"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class CardStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Content fields each card type cannot do without
REQUIRED_CONTENT: dict[CardType, tuple[str, ...]] = {
    CardType.BASIC: ("front", "back"),
    CardType.BASIC_REVERSED: ("front", "back"),
    CardType.CLOZE: ("text",),
    CardType.MULTIPLE_CHOICE: ("question", "options"),
    CardType.TRUE_FALSE: ("statement", "answer"),
    CardType.TYPE_ANSWER: ("question", "answer"),
}


class InvalidFlashcardContent(ValueError):
    pass


def missing_content(card_type: CardType, values: dict) -> list[str]:
    """Required content fields that are absent or blank for this card type."""
    return [f for f in REQUIRED_CONTENT[card_type] if not values.get(f)]


class FlashcardContent(BaseModel):
    front: str | None = None
    back: str | None = None
    extra: str | None = None
    text: str | None = None          # cloze text, {{c1::word}} format
    question: str | None = None
    options: list[str] | None = None
    correct: int | None = None       # index into options
    explanation: str | None = None
    statement: str | None = None
    answer: str | None = None
    hint: str | None = None
    image: str | None = None


class FlashcardCreate(FlashcardContent):
    type: CardType
    difficulty: Difficulty
    category: str
    subcategory: str | None = None
    tags: list[str] = []
    status: CardStatus = CardStatus.DRAFT
    author_id: str = ""
    author_name: str = ""

    @model_validator(mode="after")
    def _check_content(self) -> FlashcardCreate:
        missing = missing_content(self.type, self.model_dump())
        if missing:
            raise ValueError(
                f"{self.type.value} cards require: {', '.join(missing)}"
            )
        return self


class FlashcardUpdate(FlashcardContent):
    difficulty: Difficulty | None = None
    category: str | None = None
    subcategory: str | None = None
    tags: list[str] | None = None
    status: CardStatus | None = None


class Flashcard(FlashcardContent):
    id: str
    type: CardType
    difficulty: Difficulty
    category: str
    subcategory: str | None
    tags: list[str]
    status: CardStatus
    times_studied: int
    times_correct: int
    correct_rate: float
    ease_factor: float
    interval: int           # days until next review
    next_review: str        # ISO-8601 UTC timestamp
    author_id: str
    author_name: str
    created_at: str
    updated_at: str


class FlashcardPage(BaseModel):
    items: list[Flashcard]
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool
    has_prev: bool


class FlashcardList(BaseModel):
    items: list[Flashcard]
    total: int


class FlashcardStats(BaseModel):
    total: int
    published: int
    draft: int
    archived: int
    by_category: dict[str, int]
    by_difficulty: dict[str, int]
    by_type: dict[str, int]
    avg_correct_rate: float
    total_studies: int
    flashcards_with_stats: int
    due_for_review: int


class FlashcardAuthor(BaseModel):
    id: str
    name: str


class FlashcardFilters(BaseModel):
    categories: list[str]
    subcategories: list[str]
    authors: list[FlashcardAuthor]
    difficulties: list[Difficulty]
    types: list[CardType]
    statuses: list[CardStatus]


class BulkImportError(BaseModel):
    index: int
    error: str


class BulkImportResult(BaseModel):
    success: int
    errors: list[BulkImportError]


class StudyRequest(BaseModel):
    is_correct: StrictBool
    quality: StrictInt | None = None  # 0–5; omitted = policy default


class StudyResult(BaseModel):
    flashcard_id: str
    times_studied: int
    correct_rate: float
    ease_factor: float
    interval: int
    next_review: str
