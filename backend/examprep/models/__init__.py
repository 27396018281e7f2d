from examprep.models.flashcard import (
    BulkImportError,
    BulkImportResult,
    CardStatus,
    CardType,
    Difficulty,
    Flashcard,
    FlashcardAuthor,
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

__all__ = [
    "BulkImportError",
    "BulkImportResult",
    "CardStatus",
    "CardType",
    "Difficulty",
    "Flashcard",
    "FlashcardAuthor",
    "FlashcardCreate",
    "FlashcardFilters",
    "FlashcardList",
    "FlashcardPage",
    "FlashcardStats",
    "FlashcardUpdate",
    "InvalidFlashcardContent",
    "StudyRequest",
    "StudyResult",
]
