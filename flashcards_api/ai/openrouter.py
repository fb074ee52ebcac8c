"""Async client for the OpenRouter chat-completions API.

Wraps a single logical chat-completion call: builds the request payload,
sends it with a timeout, retries network failures and transient HTTP statuses
with exponential backoff, classifies terminal failures into
:class:`OpenRouterError` codes and optionally validates the returned JSON
content against the requested ``json_schema`` response format.
"""

import asyncio
import enum
import json
import logging
from typing import Any, Literal, Optional

import httpx
from langchain_core.utils.json import parse_json_markdown
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from flashcards_api.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

ChatRole = Literal["system", "user", "assistant"]


class OpenRouterErrorCode(str, enum.Enum):
    missing_api_key = "missing_api_key"
    invalid_input = "invalid_input"
    invalid_model_name = "invalid_model_name"
    network_error = "network_error"
    authentication_failed = "authentication_failed"
    rate_limit_exceeded = "rate_limit_exceeded"
    server_error = "server_error"
    api_request_failed = "api_request_failed"
    invalid_response_format = "invalid_response_format"
    schema_validation_failed = "schema_validation_failed"
    max_retries_exceeded = "max_retries_exceeded"


class OpenRouterError(Exception):
    def __init__(
        self,
        message: str,
        code: OpenRouterErrorCode,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


# --- Request models ---

class ChatMessage(BaseModel):
    role: ChatRole
    content: str


class ModelParams(BaseModel):
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, ge=0, le=1)
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


class JSONSchemaFormat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    strict: bool = True
    schema_: dict[str, Any] = Field(alias="schema")


class ResponseFormat(BaseModel):
    type: Literal["json_schema"] = "json_schema"
    json_schema: JSONSchemaFormat


class ChatOptions(BaseModel):
    model: str | None = None
    response_format: ResponseFormat | None = None
    model_params: ModelParams | None = None


# --- Response models ---

class ChatChoiceMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatChoiceMessage
    finish_reason: str | None = None


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    id: str = ""
    model: str = ""
    created: int = 0
    choices: list[ChatChoice] = []
    usage: ChatUsage | None = None

    @property
    def content(self) -> str:
        return self.choices[0].message.content or ""


_JSON_SCHEMA_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def json_schema_to_model(schema: dict[str, Any], name: str = "ResponseSchema") -> type[BaseModel] | None:
    """Build a strict pydantic model for the top level of an object schema.

    Only property types and ``required`` are enforced; nested structures are
    checked for their container type alone. Returns ``None`` for schemas that
    are not objects with properties, which accept any JSON value.
    """
    properties = schema.get("properties")
    if schema.get("type") != "object" or not properties:
        return None

    required = set(schema.get("required", []))
    fields: dict[str, Any] = {}
    for key, prop in properties.items():
        prop_type = prop.get("type") if isinstance(prop, dict) else None
        py_type = _JSON_SCHEMA_TYPES.get(prop_type, Any) if isinstance(prop_type, str) else Any
        if key in required:
            fields[key] = (py_type, ...)
        else:
            fields[key] = (Optional[py_type], None)

    return create_model(name, __config__=ConfigDict(strict=True), **fields)


class OpenRouterClient:
    """Chat-completion client with bounded retries.

    Besides the configured defaults (model name and system message, both
    changeable through setters) no state is kept between calls.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        default_model: str = "openai/gpt-4o-mini",
        default_response_format: ResponseFormat | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        http_referer: str | None = None,
        app_title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise OpenRouterError("API key is required", OpenRouterErrorCode.missing_api_key)

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.default_response_format = default_response_format
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.http_referer = http_referer
        self.app_title = app_title
        self._transport = transport
        self._system_message: str | None = None

    @property
    def system_message(self) -> str | None:
        return self._system_message

    def set_model(self, model_name: str) -> None:
        if not model_name or not model_name.strip():
            raise OpenRouterError(
                "Model name cannot be empty", OpenRouterErrorCode.invalid_model_name,
            )
        self.default_model = model_name

    def set_system_message(self, message: str | None) -> None:
        self._system_message = message if message and message.strip() else None

    async def send_chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        if not messages:
            raise OpenRouterError(
                "At least one message is required", OpenRouterErrorCode.invalid_input,
            )

        if self._system_message:
            messages = [ChatMessage(role="system", content=self._system_message), *messages]

        response_format = self._resolve_response_format(options)
        payload = self._build_payload(messages, options, response_format)

        async with self._build_http_client() as client:
            attempt = 0
            while True:
                try:
                    response = await client.post("/chat/completions", json=payload)
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    error = self._error_from_response(exc.response)
                    if exc.response.status_code not in RETRYABLE_STATUS_CODES:
                        logger.error("OpenRouter request failed: %s", error.message)
                        raise error from exc
                    last_exc: Exception = exc
                except httpx.RequestError as exc:
                    error = self._network_error(exc)
                    last_exc = exc
                else:
                    return self._handle_response(response, response_format)

                if attempt >= self.max_retries:
                    logger.error(
                        "OpenRouter request failed after %d retries: %s",
                        self.max_retries, error.message,
                    )
                    raise OpenRouterError(
                        f"Request failed after {self.max_retries} retries: {error.message}",
                        OpenRouterErrorCode.max_retries_exceeded,
                        error.status_code,
                    ) from last_exc

                delay = self._backoff_delay(attempt)
                attempt += 1
                logger.warning(
                    "OpenRouter %s, retry attempt %d/%d in %.2fs",
                    error.code.value, attempt, self.max_retries, delay,
                )
                await asyncio.sleep(delay)

    # --- Internals ---

    def _build_http_client(self) -> httpx.AsyncClient:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.http_referer:
            headers["HTTP-Referer"] = self.http_referer
        if self.app_title:
            headers["X-Title"] = self.app_title
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _resolve_response_format(self, options: ChatOptions | None) -> ResponseFormat | None:
        if options is not None and options.response_format is not None:
            return options.response_format
        return self.default_response_format

    def _build_payload(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None,
        response_format: ResponseFormat | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": (options.model if options and options.model else None) or self.default_model,
            "messages": [message.model_dump() for message in messages],
        }

        if response_format is not None:
            payload["response_format"] = response_format.model_dump(by_alias=True)

        if options and options.model_params:
            payload.update(options.model_params.model_dump(exclude_none=True))

        return payload

    def _backoff_delay(self, attempt: int) -> float:
        return self.retry_delay * (2 ** attempt)

    def _handle_response(
        self, response: httpx.Response, response_format: ResponseFormat | None,
    ) -> ChatResponse:
        try:
            chat = ChatResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OpenRouterError(
                "Invalid response format: malformed response body",
                OpenRouterErrorCode.invalid_response_format,
                response.status_code,
            ) from exc

        if not chat.choices:
            raise OpenRouterError(
                "Invalid response format: no choices returned",
                OpenRouterErrorCode.invalid_response_format,
                response.status_code,
            )
        if not chat.choices[0].message.content:
            raise OpenRouterError(
                "Invalid response format: no message content",
                OpenRouterErrorCode.invalid_response_format,
                response.status_code,
            )

        if response_format is not None:
            self._validate_schema(chat.content, response_format)

        return chat

    def _validate_schema(self, content: str, response_format: ResponseFormat) -> None:
        try:
            parsed = parse_json_markdown(content, parser=json.loads)
            validator = json_schema_to_model(
                response_format.json_schema.schema_, response_format.json_schema.name,
            )
            if validator is not None:
                validator.model_validate(parsed)
        except (ValueError, ValidationError) as exc:
            logger.warning("Schema validation failed: %s", exc)
            raise OpenRouterError(
                "Response does not match expected schema",
                OpenRouterErrorCode.schema_validation_failed,
            ) from exc

    @staticmethod
    def _network_error(exc: httpx.RequestError) -> OpenRouterError:
        if isinstance(exc, httpx.TimeoutException):
            message = "Network error: request to OpenRouter API timed out"
        else:
            message = "Network error: Unable to reach OpenRouter API"
        return OpenRouterError(message, OpenRouterErrorCode.network_error)

    @staticmethod
    def _error_from_response(response: httpx.Response) -> OpenRouterError:
        status_code = response.status_code
        upstream_message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            upstream_message = body["error"].get("message")

        if status_code == 401:
            return OpenRouterError(
                "Authentication failed: Invalid API key",
                OpenRouterErrorCode.authentication_failed,
                status_code,
            )
        if status_code == 429:
            return OpenRouterError(
                "Rate limit exceeded: Too many requests",
                OpenRouterErrorCode.rate_limit_exceeded,
                status_code,
            )
        if status_code >= 500:
            return OpenRouterError(
                f"Server error: {upstream_message or 'OpenRouter API is temporarily unavailable'}",
                OpenRouterErrorCode.server_error,
                status_code,
            )
        return OpenRouterError(
            f"API request failed: {upstream_message or response.reason_phrase}",
            OpenRouterErrorCode.api_request_failed,
            status_code,
        )


def create_openrouter_client(**overrides: Any) -> OpenRouterClient:
    """Create a client configured from settings; keyword arguments override."""
    if not settings.OPENROUTER_API_KEY:
        raise OpenRouterError(
            "OPENROUTER_API_KEY environment variable is not set",
            OpenRouterErrorCode.missing_api_key,
        )

    options: dict[str, Any] = {
        "base_url": settings.OPENROUTER_BASE_URL,
        "default_model": settings.OPENROUTER_MODEL,
        "timeout": settings.OPENROUTER_TIMEOUT_SECONDS,
        "max_retries": settings.OPENROUTER_MAX_RETRIES,
        "retry_delay": settings.OPENROUTER_RETRY_DELAY_SECONDS,
        "http_referer": settings.OPENROUTER_HTTP_REFERER,
        "app_title": settings.OPENROUTER_APP_TITLE,
    }
    options.update(overrides)
    return OpenRouterClient(settings.OPENROUTER_API_KEY, **options)
