"""OpenAI chat client using openai SDK with native async.

Also serves OpenAI-compatible endpoints (xAI, DeepSeek, local servers)
when the model config carries a base_url.
"""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from writers_room.models import Completion, TokenUsage
from writers_room.providers.base import ErrorKind, LLMClient, ProviderError, kind_from_status

logger = logging.getLogger(__name__)


class OpenAIClient(LLMClient):
    """OpenAI (or OpenAI-compatible) client via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", kind=ErrorKind.AUTH)
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

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
        start = time.monotonic()
        kwargs = {"model": model, "messages": messages, "max_tokens": max_tokens}
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s", kind=ErrorKind.TIMEOUT
            ) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out: {exc}", kind=ErrorKind.TIMEOUT) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", kind=ErrorKind.CONNECTION) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed: {exc}",
                kind=kind_from_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content", kind=ErrorKind.EMPTY)

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.info("OpenAI %s: %.2fs, %d tokens", model, latency, usage.total_tokens)

        return Completion(
            content=choice.message.content,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
            model=response.model or model,
            latency_sec=latency,
        )
