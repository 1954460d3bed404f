import json
import logging
from typing import Any, Optional, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from config import settings
from errors import LLMError, LLMNotConfiguredError, LLMTimeoutError, SchemaError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_UNCONFIGURED_KEYS = {"", "demo"}


class LLMService:
    """
    Thin wrapper around the OpenAI chat completions API that always asks for JSON.

    Each pipeline owns its own prompts; this class only knows how to send them
    and how to turn failures into domain errors.
    """

    JSON_ONLY_INSTRUCTION = "Always respond with valid JSON only, no markdown or explanations."

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_MODEL
        self.request_timeout = settings.LLM_REQUEST_TIMEOUT_SECONDS
        self._client: Optional[AsyncOpenAI] = None

    @property
    def configured(self) -> bool:
        return self.api_key not in _UNCONFIGURED_KEYS

    @property
    def client(self) -> AsyncOpenAI:
        if not self.configured:
            raise LLMNotConfiguredError("OpenAI API key not configured")
        if self._client is None:
            # Single attempt per call, bounded by the request timeout
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                max_retries=0,
                timeout=self.request_timeout,
            )
        return self._client

    async def complete_json(self,
                            system_prompt: str,
                            user_prompt: str,
                            temperature: float = 0.7,
                            max_tokens: Optional[int] = None,
                            json_object: bool = True) -> str:
        """
        Send one system + user exchange and return the raw message content.

        ``json_object`` turns on the API's JSON mode, which only accepts a top-level
        object; callers expecting a bare array leave it off and rely on the prompt.
        """
        request: dict = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": f"{system_prompt}\n{self.JSON_ONLY_INSTRUCTION}"},
                {"role": "user", "content": user_prompt},
            ],
        }
        if max_tokens:
            request["max_tokens"] = max_tokens
        if json_object:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**request)
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI request timed out after {self.request_timeout}s")
            raise LLMTimeoutError(f"OpenAI request timed out: {str(e)}") from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise LLMError(f"OpenAI API error: {str(e)}") from e

        content = response.choices[0].message.content
        if not content:
            raise LLMError("OpenAI returned an empty response")
        return content.strip()


def _first_well_formed(content: str, opener: str) -> Optional[Any]:
    decoder = json.JSONDecoder()
    start = content.find(opener)
    while start != -1:
        try:
            value, _ = decoder.raw_decode(content, start)
            return value
        except json.JSONDecodeError:
            start = content.find(opener, start + 1)
    return None


def extract_json(content: str, opener: str = "{") -> Any:
    """
    Pull the first well-formed JSON value starting with ``opener`` out of LLM output.

    Models sometimes wrap the payload in prose or code fences; when no embedded
    value decodes, the whole content is parsed strictly.
    """
    value = _first_well_formed(content, opener)
    if value is not None:
        return value
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Response is not valid JSON: {e.msg}") from e


def validate_payload(model: Type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaError(f"Response does not match the {model.__name__} schema: {e.error_count()} error(s)") from e
