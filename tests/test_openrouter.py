import json

import httpx
import pytest

from flashcards_api.ai.generator import FLASHCARDS_RESPONSE_FORMAT
from flashcards_api.ai.openrouter import (
    ChatMessage,
    ChatOptions,
    ModelParams,
    OpenRouterClient,
    OpenRouterError,
    OpenRouterErrorCode,
    json_schema_to_model,
)

from conftest import MockOpenRouter, chat_completion

USER_MESSAGE = [ChatMessage(role="user", content="Make flashcards")]


def make_client(mock: MockOpenRouter, **kwargs) -> OpenRouterClient:
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("retry_delay", 0)
    return OpenRouterClient("sk-test", transport=mock.transport, **kwargs)


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr("flashcards_api.ai.openrouter.asyncio.sleep", fake_sleep)
    return delays


def test_missing_api_key_rejected():
    with pytest.raises(OpenRouterError) as exc_info:
        OpenRouterClient("   ")
    assert exc_info.value.code == OpenRouterErrorCode.missing_api_key


async def test_empty_messages_rejected(openrouter):
    client = make_client(openrouter)
    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion([])
    assert exc_info.value.code == OpenRouterErrorCode.invalid_input
    assert openrouter.requests == []


async def test_successful_completion_builds_payload(openrouter):
    openrouter.replies.append(chat_completion("Hello there", model="mistral/small"))
    client = make_client(openrouter, http_referer="https://10xcards.app", app_title="10xCards")
    client.set_system_message("Be brief")

    response = await client.send_chat_completion(
        USER_MESSAGE,
        ChatOptions(
            model="mistral/small",
            model_params=ModelParams(temperature=0.2, max_tokens=100),
        ),
    )

    assert response.content == "Hello there"
    assert response.model == "mistral/small"

    request = openrouter.requests[0]
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["HTTP-Referer"] == "https://10xcards.app"
    assert request.headers["X-Title"] == "10xCards"

    payload = json.loads(request.content)
    assert payload["model"] == "mistral/small"
    assert payload["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Make flashcards"},
    ]
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 100
    assert "top_p" not in payload
    assert "response_format" not in payload


async def test_response_format_sent_with_schema_key(openrouter):
    openrouter.replies.append(chat_completion('{"flashcards": []}'))
    client = make_client(openrouter, default_response_format=FLASHCARDS_RESPONSE_FORMAT)

    await client.send_chat_completion(USER_MESSAGE)

    payload = json.loads(openrouter.requests[0].content)
    assert payload["response_format"]["type"] == "json_schema"
    assert payload["response_format"]["json_schema"]["name"] == "flashcards"
    assert payload["response_format"]["json_schema"]["schema"]["required"] == ["flashcards"]


async def test_set_model_changes_default(openrouter):
    openrouter.replies.append(chat_completion("ok"))
    client = make_client(openrouter)
    client.set_model("anthropic/claude-3-haiku")

    await client.send_chat_completion(USER_MESSAGE)

    assert json.loads(openrouter.requests[0].content)["model"] == "anthropic/claude-3-haiku"

    with pytest.raises(OpenRouterError) as exc_info:
        client.set_model(" ")
    assert exc_info.value.code == OpenRouterErrorCode.invalid_model_name


def test_blank_system_message_clears_it():
    client = OpenRouterClient("sk-test")
    client.set_system_message("You are helpful")
    client.set_system_message("  ")
    assert client.system_message is None


async def test_rate_limit_retried_until_exhausted(openrouter, sleeps):
    openrouter.replies.append(httpx.Response(429, json={"error": {"message": "slow down"}}))
    client = make_client(openrouter, max_retries=2, retry_delay=1.0)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.max_retries_exceeded
    assert exc_info.value.status_code == 429
    assert len(openrouter.requests) == 3
    assert sleeps == [1.0, 2.0]


async def test_network_error_retried_then_succeeds(openrouter, sleeps):
    openrouter.replies.extend([
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        chat_completion("recovered"),
    ])
    client = make_client(openrouter, max_retries=2, retry_delay=0.5)

    response = await client.send_chat_completion(USER_MESSAGE)

    assert response.content == "recovered"
    assert len(openrouter.requests) == 3
    assert sleeps == [0.5, 1.0]


async def test_network_error_exhaustion_has_no_status(openrouter, sleeps):
    openrouter.replies.append(httpx.ConnectError("connection refused"))
    client = make_client(openrouter, max_retries=1)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.max_retries_exceeded
    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert len(openrouter.requests) == 2


async def test_server_error_then_success(openrouter, sleeps):
    openrouter.replies.extend([httpx.Response(503), chat_completion("fine")])
    client = make_client(openrouter)

    response = await client.send_chat_completion(USER_MESSAGE)

    assert response.content == "fine"
    assert len(sleeps) == 1


async def test_authentication_failure_not_retried(openrouter, sleeps):
    openrouter.replies.append(httpx.Response(401, json={"error": {"message": "bad key"}}))
    client = make_client(openrouter)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.authentication_failed
    assert exc_info.value.status_code == 401
    assert len(openrouter.requests) == 1
    assert sleeps == []


async def test_bad_request_uses_upstream_message(openrouter):
    openrouter.replies.append(httpx.Response(400, json={"error": {"message": "model not found"}}))
    client = make_client(openrouter)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.api_request_failed
    assert "model not found" in exc_info.value.message
    assert len(openrouter.requests) == 1


@pytest.mark.parametrize(
    "reply",
    [
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json={"id": "x", "choices": []}),
        chat_completion(None),
    ],
)
async def test_malformed_body_is_invalid_response_format(openrouter, reply):
    openrouter.replies.append(reply)
    client = make_client(openrouter)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.invalid_response_format
    assert len(openrouter.requests) == 1


@pytest.mark.parametrize(
    "content",
    ["not json at all", '{"cards": []}', '{"flashcards": "none"}'],
)
async def test_schema_mismatch_rejected(openrouter, content):
    openrouter.replies.append(chat_completion(content))
    client = make_client(openrouter, default_response_format=FLASHCARDS_RESPONSE_FORMAT)

    with pytest.raises(OpenRouterError) as exc_info:
        await client.send_chat_completion(USER_MESSAGE)

    assert exc_info.value.code == OpenRouterErrorCode.schema_validation_failed


async def test_fenced_json_passes_schema_validation(openrouter):
    content = '```json\n{"flashcards": [{"front": "Q", "back": "A"}]}\n```'
    openrouter.replies.append(chat_completion(content))
    client = make_client(openrouter, default_response_format=FLASHCARDS_RESPONSE_FORMAT)

    response = await client.send_chat_completion(USER_MESSAGE)

    assert response.content == content


def test_json_schema_to_model_enforces_types():
    model = json_schema_to_model(
        {
            "type": "object",
            "properties": {"count": {"type": "integer"}, "label": {"type": "string"}},
            "required": ["count"],
        },
    )
    assert model is not None
    assert model.model_validate({"count": 3}).label is None
    with pytest.raises(ValueError):
        model.model_validate({"count": "3"})

    assert json_schema_to_model({"type": "array", "items": {"type": "string"}}) is None
