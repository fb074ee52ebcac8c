import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, StringConstraints

from flashcards_api.config import settings
from flashcards_api.models.flashcard import FlashcardSource
from flashcards_api.models.generation import GenerationStatus

# Length is checked on the text as pasted, surrounding whitespace is dropped afterwards
SourceText = Annotated[
    str,
    StringConstraints(
        min_length=settings.GENERATION_SOURCE_MIN_LENGTH,
        max_length=settings.GENERATION_SOURCE_MAX_LENGTH,
    ),
    AfterValidator(str.strip),
]


class GenerationCreateRequest(BaseModel):
    source_text: SourceText


# --- AI output ---

class GeneratedFlashcardItem(BaseModel):
    front: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
    back: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]


class GeneratedFlashcardsPayload(BaseModel):
    flashcards: list[GeneratedFlashcardItem] = Field(default_factory=list)


# --- Responses ---

class FlashcardProposalResponse(BaseModel):
    id: uuid.UUID
    front: str
    back: str
    source: FlashcardSource

    model_config = {"from_attributes": True}


class GenerationCreateResponse(BaseModel):
    id: uuid.UUID
    model: str
    status: GenerationStatus
    generated_count: int
    flashcards_proposals: list[FlashcardProposalResponse]


class GenerationResponse(BaseModel):
    id: uuid.UUID
    model: str
    status: GenerationStatus
    generated_count: int
    accepted_unedited_count: int
    accepted_edited_count: int
    source_text_length: int
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class GenerationErrorResponse(BaseModel):
    id: uuid.UUID
    error_code: str | None
    error_message: str
    created_at: datetime

    model_config = {"from_attributes": True}


SortOrder = Literal["asc", "desc"]


# --- Pagination ---

class PaginatedGenerationResponse(BaseModel):
    items: list[GenerationResponse]
    total: int
    limit: int
    offset: int


class PaginatedProposalResponse(BaseModel):
    items: list[FlashcardProposalResponse]
    total: int
    limit: int
    offset: int
