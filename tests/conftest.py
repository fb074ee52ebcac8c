import json
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"
os.environ["OPENROUTER_API_KEY"] = "test-key"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from flashcards_api.ai.generator import FLASHCARDS_RESPONSE_FORMAT
from flashcards_api.ai.openrouter import OpenRouterClient
from flashcards_api.api.deps import get_openrouter_client, get_redis
from flashcards_api.database import Base, get_db
from flashcards_api.main import app

SOURCE_TEXT = (
    "Photosynthesis is the process by which green plants, algae and some bacteria "
    "convert light energy into chemical energy stored in glucose. "
) * 5


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: list[tuple[str, str]] = []

    def incr(self, key: str) -> "FakePipeline":
        self._ops.append(("incr", key))
        return self

    def expire(self, key: str, seconds: int) -> "FakePipeline":
        self._ops.append(("expire", key))
        return self

    async def execute(self) -> list:
        results = []
        for op, key in self._ops:
            if op == "incr":
                value = int(self._redis.store.get(key, 0)) + 1
                self._redis.store[key] = str(value)
                results.append(value)
            else:
                results.append(True)
        self._ops.clear()
        return results


class FakeRedis:
    """In-memory stand-in for the handful of redis calls the rate limiter makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)


class MockOpenRouter:
    """Queue of canned upstream replies served through an httpx mock transport."""

    def __init__(self) -> None:
        self.replies: list = []
        self.requests: list[httpx.Request] = []

    def reply_with_cards(self, count: int, model: str = "openai/gpt-4o-mini") -> None:
        cards = [{"front": f"Question {i}", "back": f"Answer {i}"} for i in range(count)]
        self.replies.append(chat_completion(json.dumps({"flashcards": cards}), model=model))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        # Fresh object per call; a repeated reply must not share stream state
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def chat_completion(content: str | None, model: str = "openai/gpt-4o-mini") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": "gen-123",
            "model": model,
            "created": 1700000000,
            "choices": [
                {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"},
            ],
            "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
        },
    )


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def openrouter() -> MockOpenRouter:
    return MockOpenRouter()


@pytest.fixture
async def client(session_factory, fake_redis, openrouter):
    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_redis():
        return fake_redis

    async def override_openrouter():
        return OpenRouterClient(
            "test-key",
            default_model="openai/gpt-4o-mini",
            default_response_format=FLASHCARDS_RESPONSE_FORMAT,
            max_retries=2,
            retry_delay=0,
            transport=openrouter.transport,
        )

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_redis] = override_redis
    app.dependency_overrides[get_openrouter_client] = override_openrouter

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def register_and_login(
    client: httpx.AsyncClient, email: str = "learner@example.com", password: str = "s3cret-pass",
) -> dict[str, str]:
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "confirm_password": password},
    )
    assert response.status_code == 201, response.text

    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def auth_headers(client) -> dict[str, str]:
    return await register_and_login(client)
