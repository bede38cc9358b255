import json
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError as PydanticValidationError

from glintup.config import get_config
from glintup.core.errors import ConfigurationError, ContentGenerationError
from glintup.core.logging import get_logger
from glintup.schemas.llm import GeneratedWord, GenerationRequest

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a vocabulary teaching assistant for "Glintup", a daily word service.
Generate unique, interesting and educational vocabulary words with clear definitions and helpful example sentences.

Rules:
- Each word should be somewhat challenging but practical for everyday use
- Never return a word from the exclusion list
- Definitions are one sentence, examples are one natural sentence using the word
- part_of_speech, pronunciation and memory_hook are optional but encouraged

Respond with a JSON object of the form {"words": [{"word", "definition", "example", "category", "part_of_speech", "pronunciation", "memory_hook"}]}."""

CATEGORY_PROMPTS = {
    "business": "professional business vocabulary that would be useful in a corporate environment",
    "exam": "advanced academic vocabulary that would appear in standardized tests like SAT, GRE, or TOEFL",
    "slang": "modern English slang and idioms used in casual conversation",
    "general": "useful general vocabulary that would enhance everyday conversation",
}


class WordGenerator(Protocol):
    """Content generation collaborator used by word selection."""

    async def generate_words(
        self,
        category: str,
        count: int,
        excluding: list[str],
        subcategory: str | None = None,
    ) -> list[GeneratedWord]: ...


def category_prompt(category: str) -> str:
    key = category.strip().lower()
    return CATEGORY_PROMPTS.get(
        key, f"useful vocabulary related to {category} that would enhance knowledge in that area"
    )


def build_user_prompt(request: GenerationRequest) -> str:
    prompt = f"Generate {request.count} {category_prompt(request.category)}."
    if request.subcategory:
        prompt += f"\nTarget level: {request.subcategory}."
    prompt += f'\nThe category should be "{request.category.lower()}" for all words.'
    if request.excluding:
        prompt += "\nDo not use any of these words: " + ", ".join(sorted(request.excluding))
    return prompt


def parse_generated_words(content: str | None, category: str) -> list[GeneratedWord]:
    """
    Parse a provider response into validated entries.

    Accepts either {"words": [...]} or a bare JSON array. Individual
    entries missing word, definition or example are dropped.

    Raises:
        ContentGenerationError: If the payload is not JSON or holds no list
    """
    if not content:
        raise ContentGenerationError("empty generation response")

    try:
        data: Any = json.loads(content)
    except json.JSONDecodeError as e:
        raise ContentGenerationError(f"generation response is not JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("words")
    if not isinstance(data, list):
        raise ContentGenerationError("generation response holds no word list")

    words: list[GeneratedWord] = []
    for raw in data:
        if not isinstance(raw, dict):
            logger.bind(category=category, entry=str(raw)[:80]).warning("generated_entry_malformed")
            continue
        try:
            entry = GeneratedWord.model_validate(raw)
        except PydanticValidationError as e:
            logger.bind(category=category, error=str(e)[:200]).warning("generated_entry_malformed")
            continue
        words.append(entry.model_copy(update={"category": category.lower()}))
    return words


class OpenAIWordGenerator:
    """Generates vocabulary with the OpenAI chat completions API."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
    ) -> None:
        config = get_config()
        self._client = client
        self.model = model or config.settings.llm_model
        self.temperature = temperature if temperature is not None else config.generation.temperature
        self.timeout = timeout if timeout is not None else config.generation.timeout_seconds

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = get_config().settings.openai_api_key
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set")
            self._client = AsyncOpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def generate_words(
        self,
        category: str,
        count: int,
        excluding: list[str],
        subcategory: str | None = None,
    ) -> list[GeneratedWord]:
        """
        Request `count` new words for a category.

        Args:
            category: Subscriber's content category
            count: Number of words wanted
            excluding: Headwords the subscriber has already seen
            subcategory: Optional level tag such as "intermediate"

        Returns:
            Validated entries; may be fewer than requested

        Raises:
            ConfigurationError: No API key configured
            ContentGenerationError: Provider failure, timeout or unusable payload
        """
        client = self._get_client()
        request = GenerationRequest(
            category=category, subcategory=subcategory, count=count, excluding=excluding
        )

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(request)},
                ],
                response_format={"type": "json_object"},
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except openai.OpenAIError as e:
            logger.bind(category=category, count=count, error=str(e)).error("word_generation_failed")
            raise ContentGenerationError(f"generation provider error: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        words = parse_generated_words(content, category)

        usage = response.usage
        logger.bind(
            category=category,
            requested=count,
            returned=len(words),
            tokens=usage.total_tokens if usage else None,
        ).info("words_generated")
        return words
