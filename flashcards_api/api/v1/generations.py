import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.ai.openrouter import OpenRouterClient, OpenRouterError
from flashcards_api.api.deps import get_current_user, get_openrouter_client, get_redis
from flashcards_api.api.errors import DATABASE_ERRORS, database_http_error, inference_http_error
from flashcards_api.database import get_db
from flashcards_api.models.generation import GenerationStatus
from flashcards_api.models.user import User
from flashcards_api.schemas.generation import (
    GenerationCreateRequest,
    GenerationCreateResponse,
    GenerationErrorResponse,
    GenerationResponse,
    PaginatedGenerationResponse,
    PaginatedProposalResponse,
    SortOrder,
)
from flashcards_api.services.generation_service import (
    create_generation,
    get_generation_for_owner,
    list_generation_errors,
    list_generation_flashcards,
    list_generations,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generations", tags=["generations"])


@router.post(
    "",
    response_model=GenerationCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_generation_endpoint(
    data: GenerationCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    client: OpenRouterClient = Depends(get_openrouter_client),
):
    logger.info("Processing generation request for user %s", current_user.id)
    try:
        return await create_generation(db, redis, client, current_user, data.source_text)
    except OpenRouterError as exc:
        raise inference_http_error(exc) from exc
    except DATABASE_ERRORS as exc:
        logger.exception("Database error during generation")
        raise database_http_error(exc) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Unexpected error during generation")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate flashcards. Please try again.",
        ) from exc


@router.get("", response_model=PaginatedGenerationResponse)
async def list_generations_endpoint(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: GenerationStatus | None = Query(None, alias="status"),
    sort: SortOrder = "desc",
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await list_generations(
        db, current_user, limit=limit, offset=offset,
        status_filter=status_filter, sort=sort,
    )
    return PaginatedGenerationResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/{generation_id}", response_model=GenerationResponse)
async def get_generation_endpoint(
    generation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_generation_for_owner(db, generation_id, current_user)


@router.get("/{generation_id}/flashcards", response_model=PaginatedProposalResponse)
async def list_generation_flashcards_endpoint(
    generation_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    generation = await get_generation_for_owner(db, generation_id, current_user)
    items, total = await list_generation_flashcards(db, generation, limit=limit, offset=offset)
    return PaginatedProposalResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/{generation_id}/errors", response_model=list[GenerationErrorResponse])
async def list_generation_errors_endpoint(
    generation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    generation = await get_generation_for_owner(db, generation_id, current_user)
    return await list_generation_errors(db, generation)
