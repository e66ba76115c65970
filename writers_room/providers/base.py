"""Abstract base for all LLM chat clients."""

from abc import ABC, abstractmethod
from enum import Enum

from writers_room.models import Completion


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    CONNECTION = "connection"
    SERVER = "server"
    AUTH = "auth"
    BAD_REQUEST = "bad_request"
    EMPTY = "empty"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(
        self,
        provider_name: str,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status_code: int | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.kind = kind
        self.status_code = status_code
        super().__init__(f"[{provider_name}] {message}")


def kind_from_status(status_code: int | None) -> ErrorKind:
    """Map an HTTP status from a provider SDK to an error kind."""
    if status_code is None:
        return ErrorKind.UNKNOWN
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code >= 500:
        return ErrorKind.SERVER
    if 400 <= status_code < 500:
        return ErrorKind.BAD_REQUEST
    return ErrorKind.UNKNOWN


class LLMClient(ABC):
    """Abstract base for all LLM chat clients."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the default model identifier for this client."""
        ...

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float | None = None,
    ) -> Completion:
        """Run one chat completion.

        Args:
            model: Model identifier to call.
            messages: Chat messages, each {"role": ..., "content": ...};
                a leading "system" message carries the persona prompt.
            max_tokens: Completion token cap.
            temperature: Sampling temperature, provider default when None.

        Returns:
            Completion with content, token usage and finish reason.

        Raises:
            ProviderError: On API failure, timeout, or empty response,
                with `kind` set so callers can tell transient from fatal.
        """
        ...
