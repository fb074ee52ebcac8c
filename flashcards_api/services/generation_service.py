import hashlib
import logging
import time
import uuid

from fastapi import HTTPException, status
from redis.asyncio import Redis
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.ai.generator import generate_flashcards
from flashcards_api.ai.openrouter import OpenRouterClient, OpenRouterError
from flashcards_api.config import settings
from flashcards_api.models.flashcard import Flashcard, FlashcardSource
from flashcards_api.models.generation import Generation, GenerationErrorLog, GenerationStatus
from flashcards_api.models.user import User
from flashcards_api.schemas.generation import (
    FlashcardProposalResponse,
    GenerationCreateResponse,
)

logger = logging.getLogger(__name__)


# --- Helpers ---

def derive_generation_id(user_id: uuid.UUID, source_text: str) -> uuid.UUID:
    """MD5 of owner, wall-clock nanoseconds and text, read as a UUID."""
    raw = f"{user_id}:{time.time_ns()}:{source_text}"
    return uuid.UUID(hex=hashlib.md5(raw.encode()).hexdigest())


async def _check_rate_limit(redis: Redis, user: User) -> None:
    key = f"ai:ratelimit:gen:{user.id}"
    limit = settings.AI_RATE_LIMIT_PER_MINUTE

    current = await redis.get(key)
    if current is not None and int(current) >= limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="AI generation rate limit exceeded. Please try again later.",
        )

    pipe = redis.pipeline()
    pipe.incr(key)
    pipe.expire(key, 60)
    await pipe.execute()


async def _record_failure(
    db: AsyncSession, generation_id: uuid.UUID, user_id: uuid.UUID, error: BaseException,
) -> None:
    error_code = error.code.value if isinstance(error, OpenRouterError) else type(error).__name__
    error_message = str(error) or type(error).__name__
    logger.error("Generation %s failed (%s): %s", generation_id, error_code, error_message)

    try:
        db.add(GenerationErrorLog(
            generation_id=generation_id,
            user_id=user_id,
            error_code=error_code,
            error_message=error_message,
        ))
        await db.execute(
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.status == GenerationStatus.pending,
            )
            .values(status=GenerationStatus.failed)
        )
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Could not record failure for generation %s", generation_id)
        await db.rollback()


async def get_generation_for_owner(
    db: AsyncSession, generation_id: uuid.UUID, user: User,
) -> Generation:
    result = await db.execute(
        select(Generation).where(
            Generation.id == generation_id,
            Generation.user_id == user.id,
        )
    )
    generation = result.scalar_one_or_none()
    if generation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation not found",
        )
    return generation


# --- Orchestration ---

async def create_generation(
    db: AsyncSession,
    redis: Redis,
    client: OpenRouterClient,
    user: User,
    source_text: str,
) -> GenerationCreateResponse:
    """Run one generation request end to end.

    The pending record is committed first so that it survives a failed
    inference call. Proposal rows and the ``completed`` update are committed
    together; any error rolls both back, records an error log, marks the
    generation ``failed`` and is re-raised.
    """
    await _check_rate_limit(redis, user)

    # Rollback expires every instance in the session, the user included.
    user_id = user.id
    generation = Generation(
        id=derive_generation_id(user_id, source_text),
        user_id=user_id,
        source_text=source_text,
        source_text_length=len(source_text),
        status=GenerationStatus.pending,
        model="pending",
        generated_count=0,
    )
    db.add(generation)
    await db.commit()
    generation_id = generation.id
    logger.info("Created pending generation %s for user %s", generation_id, user_id)

    try:
        items, model_name = await generate_flashcards(client, source_text)
        items = items[:settings.AI_MAX_FLASHCARDS]

        proposals = [
            Flashcard(
                user_id=user_id,
                generation_id=generation_id,
                front=item.front,
                back=item.back,
                source=FlashcardSource.ai_full,
                is_proposal=True,
            )
            for item in items
        ]
        db.add_all(proposals)
        await db.flush()

        generation.status = GenerationStatus.completed
        generation.model = model_name
        generation.generated_count = len(proposals)
        await db.commit()
    except BaseException as exc:
        # Cancellation is recorded as a failure too
        await db.rollback()
        await _record_failure(db, generation_id, user_id, exc)
        raise

    logger.info(
        "Generation %s completed with %d proposals (model=%s)",
        generation_id, len(proposals), model_name,
    )
    return GenerationCreateResponse(
        id=generation_id,
        model=model_name,
        status=GenerationStatus.completed,
        generated_count=len(proposals),
        flashcards_proposals=[
            FlashcardProposalResponse.model_validate(card) for card in proposals
        ],
    )


# --- Queries ---

async def list_generations(
    db: AsyncSession,
    user: User,
    *,
    limit: int = 20,
    offset: int = 0,
    status_filter: GenerationStatus | None = None,
    sort: str = "desc",
) -> tuple[list[Generation], int]:
    query = select(Generation).where(Generation.user_id == user.id)
    count_query = select(func.count()).select_from(Generation).where(Generation.user_id == user.id)

    if status_filter is not None:
        query = query.where(Generation.status == status_filter)
        count_query = count_query.where(Generation.status == status_filter)

    order = Generation.created_at.asc() if sort == "asc" else Generation.created_at.desc()
    query = query.order_by(order, Generation.id).offset(offset).limit(limit)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def list_generation_flashcards(
    db: AsyncSession,
    generation: Generation,
    *,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Flashcard], int]:
    base = select(Flashcard).where(
        Flashcard.generation_id == generation.id,
        Flashcard.user_id == generation.user_id,
        Flashcard.is_proposal.is_(True),
    )
    total = (await db.execute(
        select(func.count()).select_from(base.subquery())
    )).scalar_one()
    result = await db.execute(
        base.order_by(Flashcard.created_at, Flashcard.id).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total


async def list_generation_errors(
    db: AsyncSession, generation: Generation,
) -> list[GenerationErrorLog]:
    result = await db.execute(
        select(GenerationErrorLog)
        .where(GenerationErrorLog.generation_id == generation.id)
        .order_by(GenerationErrorLog.created_at)
    )
    return list(result.scalars().all())
