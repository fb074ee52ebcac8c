from fastapi import APIRouter

from flashcards_api.api.v1.auth import router as auth_router
from flashcards_api.api.v1.flashcards import router as flashcards_router
from flashcards_api.api.v1.generations import router as generations_router
from flashcards_api.api.v1.users import router as users_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(auth_router)
api_v1_router.include_router(users_router)
api_v1_router.include_router(generations_router)
api_v1_router.include_router(flashcards_router)
