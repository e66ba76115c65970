"""Provider health checks: ping each LLM client before starting a discussion."""

import asyncio
import logging
import time
from dataclasses import dataclass

from writers_room.providers.base import ErrorKind, LLMClient, ProviderError

logger = logging.getLogger(__name__)

_PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
_PING_MAX_TOKENS = 10
DEFAULT_TIMEOUT_SEC = 15.0


@dataclass(frozen=True)
class HealthResult:
    ok: bool
    model: str
    latency_sec: float
    error: str = ""
    kind: ErrorKind | None = None   # set for ProviderError failures and timeouts


async def _check_one(client: LLMClient, timeout_sec: float) -> HealthResult:
    model = client.model_string()
    started = time.monotonic()
    try:
        completion = await asyncio.wait_for(
            client.complete(model, _PING_MESSAGES, _PING_MAX_TOKENS), timeout=timeout_sec
        )
    except TimeoutError:
        error, kind = f"No answer within {timeout_sec:g}s", ErrorKind.TIMEOUT
    except ProviderError as exc:
        error, kind = str(exc), exc.kind
    except Exception as exc:
        error, kind = str(exc), None
    else:
        latency = time.monotonic() - started
        return HealthResult(ok=True, model=completion.model or model, latency_sec=latency)

    latency = time.monotonic() - started
    logger.debug("Health check for %s failed after %.2fs: %s", model, latency, error)
    return HealthResult(ok=False, model=model, latency_sec=latency, error=error, kind=kind)


async def run_health_checks(
    clients: dict[str, LLMClient],
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
) -> dict[str, HealthResult]:
    """Ping all clients in parallel.

    Returns:
        Dict mapping provider name -> HealthResult. A client that does not
        answer within `timeout_sec` fails with kind TIMEOUT.
    """
    names = list(clients)
    results = await asyncio.gather(*(_check_one(clients[n], timeout_sec) for n in names))
    return dict(zip(names, results))
