import logging

from langchain_core.exceptions import OutputParserException
from langchain_core.messages import BaseMessage
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from flashcards_api.ai.openrouter import (
    ChatMessage,
    ChatOptions,
    JSONSchemaFormat,
    ModelParams,
    OpenRouterClient,
    OpenRouterError,
    OpenRouterErrorCode,
    ResponseFormat,
    create_openrouter_client,
)
from flashcards_api.config import settings
from flashcards_api.schemas.generation import GeneratedFlashcardsPayload, GeneratedFlashcardItem

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert educator who turns study material into flashcards.

For each flashcard:
- "front": a clear, concise question or prompt
- "back": a comprehensive but concise answer

Focus on the key concepts, facts and important information in the text.
Return ONLY a JSON object with this exact structure, no additional text or formatting:
{{"flashcards": [{{"front": "Question or prompt text", "back": "Answer or explanation text"}}]}}
"""

HUMAN_PROMPT = """\
Generate between {min_count} and {max_count} flashcards based on the following text.

Text to analyze:
{source_text}
"""

FLASHCARDS_RESPONSE_FORMAT = ResponseFormat(
    json_schema=JSONSchemaFormat(
        name="flashcards",
        strict=True,
        schema={
            "type": "object",
            "properties": {
                "flashcards": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "front": {"type": "string"},
                            "back": {"type": "string"},
                        },
                        "required": ["front", "back"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["flashcards"],
            "additionalProperties": False,
        },
    ),
)

_ROLE_MAP = {"system": "system", "human": "user", "ai": "assistant"}


def _build_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("system", SYSTEM_PROMPT),
        ("human", HUMAN_PROMPT),
    ])


def _to_chat_messages(messages: list[BaseMessage]) -> list[ChatMessage]:
    return [
        ChatMessage(role=_ROLE_MAP[message.type], content=message.content)
        for message in messages
    ]


def create_flashcard_generation_client() -> OpenRouterClient:
    return create_openrouter_client(default_response_format=FLASHCARDS_RESPONSE_FORMAT)


def build_generation_messages(source_text: str) -> list[ChatMessage]:
    prompt = _build_prompt()
    return _to_chat_messages(prompt.format_messages(
        source_text=source_text,
        min_count=settings.AI_MIN_FLASHCARDS,
        max_count=settings.AI_MAX_FLASHCARDS,
    ))


def parse_generated_flashcards(content: str) -> list[GeneratedFlashcardItem]:
    """Parse model output into flashcard items.

    Accepts either ``{"flashcards": [...]}`` or a bare array, optionally
    wrapped in a markdown code fence.
    """
    parser = JsonOutputParser()
    try:
        result = parser.parse(content)
        if isinstance(result, list):
            result = {"flashcards": result}
        payload = GeneratedFlashcardsPayload.model_validate(result)
    except (OutputParserException, ValidationError) as exc:
        raise OpenRouterError(
            f"Failed to parse AI response: {exc}",
            OpenRouterErrorCode.schema_validation_failed,
        ) from exc
    return payload.flashcards


async def generate_flashcards(
    client: OpenRouterClient, source_text: str,
) -> tuple[list[GeneratedFlashcardItem], str]:
    """Ask the model for flashcards. Returns the items and the model name."""
    messages = build_generation_messages(source_text)
    options = ChatOptions(
        response_format=FLASHCARDS_RESPONSE_FORMAT,
        model_params=ModelParams(
            temperature=settings.AI_GENERATION_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
        ),
    )

    logger.info(
        "Generating flashcards from %d chars of text with model=%s",
        len(source_text), client.default_model,
    )
    response = await client.send_chat_completion(messages, options)

    cards = parse_generated_flashcards(response.content)
    logger.info("Model %s returned %d flashcards", response.model, len(cards))

    return cards, response.model or client.default_model
