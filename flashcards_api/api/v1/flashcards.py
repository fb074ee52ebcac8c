import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.api.deps import get_current_user
from flashcards_api.api.errors import DATABASE_ERRORS, database_http_error
from flashcards_api.database import get_db
from flashcards_api.models.flashcard import FlashcardSource
from flashcards_api.models.user import User
from flashcards_api.schemas.flashcard import (
    FlashcardResponse,
    FlashcardsCreateRequest,
    FlashcardUpdate,
    PaginatedFlashcardResponse,
)
from flashcards_api.schemas.generation import SortOrder
from flashcards_api.services.flashcard_service import (
    create_flashcards,
    delete_flashcard,
    get_flashcard_for_owner,
    list_flashcards,
    update_flashcard,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flashcards", tags=["flashcards"])


@router.post(
    "",
    response_model=list[FlashcardResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_flashcards_endpoint(
    data: FlashcardsCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        flashcards = await create_flashcards(db, current_user, data.flashcards)
        await db.commit()
    except DATABASE_ERRORS as exc:
        logger.exception("Error creating flashcards")
        await db.rollback()
        raise database_http_error(exc) from exc
    return flashcards


@router.get("", response_model=PaginatedFlashcardResponse)
async def list_flashcards_endpoint(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    source: FlashcardSource | None = None,
    sort: SortOrder = "desc",
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await list_flashcards(
        db, current_user, limit=limit, offset=offset, source=source, sort=sort,
    )
    return PaginatedFlashcardResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/{flashcard_id}", response_model=FlashcardResponse)
async def get_flashcard_endpoint(
    flashcard_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_flashcard_for_owner(db, flashcard_id, current_user)


@router.patch("/{flashcard_id}", response_model=FlashcardResponse)
async def update_flashcard_endpoint(
    flashcard_id: uuid.UUID,
    data: FlashcardUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    flashcard = await get_flashcard_for_owner(db, flashcard_id, current_user)
    return await update_flashcard(db, flashcard, data)


@router.delete("/{flashcard_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flashcard_endpoint(
    flashcard_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    flashcard = await get_flashcard_for_owner(db, flashcard_id, current_user)
    await delete_flashcard(db, flashcard)
