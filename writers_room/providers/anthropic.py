"""Anthropic Claude chat client using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from writers_room.models import Completion, TokenUsage
from writers_room.providers.base import ErrorKind, LLMClient, ProviderError, kind_from_status

logger = logging.getLogger(__name__)


class AnthropicClient(LLMClient):
    """Anthropic Claude client via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", kind=ErrorKind.AUTH)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

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
        # The Messages API takes the system prompt separately.
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]
        kwargs = {"model": model, "max_tokens": max_tokens, "messages": chat}
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s", kind=ErrorKind.TIMEOUT
            ) from exc
        except anthropic_sdk.APITimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out: {exc}", kind=ErrorKind.TIMEOUT) from exc
        except anthropic_sdk.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", kind=ErrorKind.CONNECTION) from exc
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed: {exc}",
                kind=kind_from_status(exc.status_code),
                status_code=exc.status_code,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content", kind=ErrorKind.EMPTY)

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response", kind=ErrorKind.EMPTY)

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info("Anthropic %s: %.2fs, %d tokens", model, latency, usage.total_tokens)

        return Completion(
            content="\n".join(text_blocks),
            usage=usage,
            finish_reason=response.stop_reason or "end_turn",
            model=response.model or model,
            latency_sec=latency,
        )
