import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints, model_validator

from flashcards_api.models.flashcard import FlashcardSource

FrontText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=300)]
BackText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


class FlashcardCreate(BaseModel):
    front: FrontText
    back: BackText
    source: FlashcardSource
    generation_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _require_generation_for_ai_source(self) -> "FlashcardCreate":
        if self.source != FlashcardSource.manual and self.generation_id is None:
            raise ValueError("generation_id is required when source is ai_full or ai_edited")
        return self


class FlashcardsCreateRequest(BaseModel):
    flashcards: list[FlashcardCreate] = Field(min_length=1, max_length=100)


class FlashcardUpdate(BaseModel):
    front: FrontText | None = None
    back: BackText | None = None


class FlashcardResponse(BaseModel):
    id: uuid.UUID
    generation_id: uuid.UUID | None
    front: str
    back: str
    source: FlashcardSource
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class PaginatedFlashcardResponse(BaseModel):
    items: list[FlashcardResponse]
    total: int
    limit: int
    offset: int
