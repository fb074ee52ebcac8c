import logging
import uuid
from collections import Counter

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.models.flashcard import Flashcard, FlashcardSource
from flashcards_api.models.generation import Generation, GenerationStatus
from flashcards_api.models.user import User
from flashcards_api.schemas.flashcard import FlashcardCreate, FlashcardUpdate

logger = logging.getLogger(__name__)


# --- Helpers ---

async def _validate_generation_ids(
    db: AsyncSession, user: User, items: list[FlashcardCreate],
) -> None:
    generation_ids = {item.generation_id for item in items if item.generation_id is not None}
    if not generation_ids:
        return

    result = await db.execute(
        select(Generation.id, Generation.status).where(
            Generation.user_id == user.id,
            Generation.id.in_(generation_ids),
        )
    )
    found = {row.id: row.status for row in result}

    missing = generation_ids - found.keys()
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Generation not found or access denied: {', '.join(sorted(str(i) for i in missing))}",
        )

    not_completed = [str(gid) for gid, state in found.items() if state != GenerationStatus.completed]
    if not_completed:
        logger.warning(
            "Saving flashcards from generations that are not completed: %s",
            ", ".join(not_completed),
        )


async def _bump_acceptance_counters(db: AsyncSession, flashcards: list[Flashcard]) -> None:
    unedited = Counter(
        card.generation_id for card in flashcards if card.source == FlashcardSource.ai_full
    )
    edited = Counter(
        card.generation_id for card in flashcards if card.source == FlashcardSource.ai_edited
    )
    for generation_id in unedited.keys() | edited.keys():
        await db.execute(
            update(Generation)
            .where(Generation.id == generation_id)
            .values(
                accepted_unedited_count=Generation.accepted_unedited_count + unedited[generation_id],
                accepted_edited_count=Generation.accepted_edited_count + edited[generation_id],
            )
        )


async def get_flashcard_for_owner(
    db: AsyncSession, flashcard_id: uuid.UUID, user: User,
) -> Flashcard:
    result = await db.execute(
        select(Flashcard).where(
            Flashcard.id == flashcard_id,
            Flashcard.user_id == user.id,
            Flashcard.is_proposal.is_(False),
        )
    )
    flashcard = result.scalar_one_or_none()
    if flashcard is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Flashcard not found",
        )
    return flashcard


# --- CRUD ---

async def create_flashcards(
    db: AsyncSession, user: User, items: list[FlashcardCreate],
) -> list[Flashcard]:
    await _validate_generation_ids(db, user, items)

    flashcards = [
        Flashcard(
            user_id=user.id,
            front=item.front,
            back=item.back,
            source=item.source,
            generation_id=item.generation_id,
        )
        for item in items
    ]
    db.add_all(flashcards)
    await db.flush()
    await _bump_acceptance_counters(db, flashcards)

    for card in flashcards:
        await db.refresh(card)

    logger.info("Created %d flashcards for user %s", len(flashcards), user.id)
    return flashcards


async def list_flashcards(
    db: AsyncSession,
    user: User,
    *,
    limit: int = 20,
    offset: int = 0,
    source: FlashcardSource | None = None,
    sort: str = "desc",
) -> tuple[list[Flashcard], int]:
    owned = (Flashcard.user_id == user.id, Flashcard.is_proposal.is_(False))
    query = select(Flashcard).where(*owned)
    count_query = select(func.count()).select_from(Flashcard).where(*owned)

    if source is not None:
        query = query.where(Flashcard.source == source)
        count_query = count_query.where(Flashcard.source == source)

    order = Flashcard.created_at.asc() if sort == "asc" else Flashcard.created_at.desc()
    query = query.order_by(order, Flashcard.id).offset(offset).limit(limit)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def update_flashcard(
    db: AsyncSession, flashcard: Flashcard, data: FlashcardUpdate,
) -> Flashcard:
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    changed = False
    for field, value in update_data.items():
        if getattr(flashcard, field) != value:
            setattr(flashcard, field, value)
            changed = True

    # An accepted AI card whose text was changed is no longer "as generated"
    if changed and flashcard.source == FlashcardSource.ai_full:
        flashcard.source = FlashcardSource.ai_edited

    await db.flush()
    await db.refresh(flashcard)
    return flashcard


async def delete_flashcard(db: AsyncSession, flashcard: Flashcard) -> None:
    await db.delete(flashcard)
    await db.flush()
