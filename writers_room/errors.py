"""Exception hierarchy for the discussion engine."""


class WritersRoomError(Exception):
    """Base class for all discussion engine errors."""


class ValidationError(WritersRoomError):
    """Raised synchronously when start parameters or persona config are invalid."""


class InvalidTransitionError(WritersRoomError):
    """Raised when a discussion status change is not an edge of the state graph."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal status transition: {current} -> {requested}")


class TransientApiError(WritersRoomError):
    """A retryable failure: timeout, rate limit, dropped connection, 5xx."""


class FatalAgentError(WritersRoomError):
    """An unrecoverable failure for one agent (bad persona, auth failure)."""

    def __init__(self, agent_id: str, message: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"[{agent_id}] {message}")


class PersistenceError(WritersRoomError):
    """A discussion store write failed. Logged, never fatal to the loop."""


class SummarizationError(WritersRoomError):
    """Compacting a message window failed; the messages stay unsummarized."""
