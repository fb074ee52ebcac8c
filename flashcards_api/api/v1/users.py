from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.api.deps import clear_refresh_cookie, get_current_user
from flashcards_api.database import get_db
from flashcards_api.models.user import User
from flashcards_api.schemas.user import UserResponse
from flashcards_api.services.auth_service import delete_user_account

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await delete_user_account(db, current_user)
    await db.commit()
    clear_refresh_cookie(response)
