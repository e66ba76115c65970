"""Gemini chat client using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from writers_room.models import Completion, TokenUsage
from writers_room.providers.base import ErrorKind, LLMClient, ProviderError, kind_from_status

logger = logging.getLogger(__name__)


def _to_contents(messages: list[dict[str, str]]) -> list[genai_types.Content]:
    contents = []
    for message in messages:
        if message["role"] == "system":
            continue
        role = "model" if message["role"] == "assistant" else "user"
        contents.append(genai_types.Content(role=role, parts=[genai_types.Part(text=message["content"])]))
    return contents


class GeminiClient(LLMClient):
    """Google Gemini client via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", kind=ErrorKind.AUTH)
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float | None = None,
    ) -> Completion:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model,
                    contents=_to_contents(messages),
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=max_tokens,
                        temperature=temperature,
                        system_instruction=system or None,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s", kind=ErrorKind.TIMEOUT
            ) from exc
        except genai_errors.APIError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed: {exc}",
                kind=kind_from_status(exc.code),
                status_code=exc.code,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text", kind=ErrorKind.EMPTY)

        usage = TokenUsage()
        if response.usage_metadata:
            meta = response.usage_metadata
            usage = TokenUsage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )

        finish_reason = "stop"
        if response.candidates and response.candidates[0].finish_reason:
            finish_reason = str(response.candidates[0].finish_reason.value).lower()

        logger.info("Gemini %s: %.2fs, %d tokens", model, latency, usage.total_tokens)

        return Completion(
            content=response.text,
            usage=usage,
            finish_reason=finish_reason,
            model=model,
            latency_sec=latency,
        )
