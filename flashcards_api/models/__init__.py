from flashcards_api.models.user import User
from flashcards_api.models.generation import Generation, GenerationErrorLog, GenerationStatus
from flashcards_api.models.flashcard import Flashcard, FlashcardSource

__all__ = [
    "User",
    "Generation",
    "GenerationErrorLog",
    "GenerationStatus",
    "Flashcard",
    "FlashcardSource",
]
