import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from flashcards_api.core.security import hash_password, verify_password
from flashcards_api.models.flashcard import Flashcard
from flashcards_api.models.generation import Generation, GenerationErrorLog
from flashcards_api.models.user import User
from flashcards_api.schemas.user import UserRegisterRequest

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, data: UserRegisterRequest) -> User:
    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(db, email)
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def update_user_password(db: AsyncSession, user: User, new_password: str) -> None:
    user.password_hash = hash_password(new_password)
    await db.flush()


async def delete_user_account(db: AsyncSession, user: User) -> None:
    """Remove the user together with their flashcards, generations and error logs."""
    await db.execute(delete(Flashcard).where(Flashcard.user_id == user.id))
    await db.execute(delete(GenerationErrorLog).where(GenerationErrorLog.user_id == user.id))
    await db.execute(delete(Generation).where(Generation.user_id == user.id))
    await db.delete(user)
    await db.flush()
    logger.info("Deleted account %s", user.id)
