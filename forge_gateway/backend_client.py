"""Shared HTTP client for remote model engines.

Every binding sends its requests through the module-level ``client``. Each
engine endpoint gets its own circuit breaker. Request timeouts are looked up
by model role and capped by ``configure`` so that no engine call outlives the
completion route timeout.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

import httpx

from .config import ServerSettings

logger = logging.getLogger(__name__)

# Upper bounds per model role (seconds)
ROLE_TIMEOUTS = {
    "completion": 60.0,
    "chat": 300.0,
    "chat_stream": 300.0,
    "embedding": 60.0,
}
DEFAULT_TIMEOUT = 60.0

# Roles whose calls happen inside a completion route request
ROUTE_BOUND_ROLES = ("completion", "chat", "embedding")

RETRY_DELAYS = (0.5, 1.0, 2.0)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitBreaker:
    """Stops calling an engine after ``threshold`` consecutive connect failures.

    Once ``cooldown`` seconds have passed a single trial request is let
    through; its outcome closes the breaker again or re-opens it.
    """

    engine: str = "engine"
    threshold: int = 5
    cooldown: float = 30.0
    failures: int = field(default=0, init=False)
    opened_at: float = field(default=0.0, init=False)
    state: BreakerState = field(default=BreakerState.CLOSED, init=False)

    def record_failure(self) -> None:
        self.failures += 1
        if self.state is BreakerState.HALF_OPEN or self.failures >= self.threshold:
            if self.state is not BreakerState.OPEN:
                logger.warning("Engine %s unreachable %d times, pausing requests", self.engine, self.failures)
            self.state = BreakerState.OPEN
            self.opened_at = time.monotonic()

    def record_success(self) -> None:
        if self.state is not BreakerState.CLOSED:
            logger.info("Engine %s reachable again", self.engine)
        self.failures = 0
        self.state = BreakerState.CLOSED

    def allow_request(self) -> bool:
        if self.state is BreakerState.OPEN:
            if time.monotonic() - self.opened_at < self.cooldown:
                return False
            self.state = BreakerState.HALF_OPEN
        return True


class BackendClient:
    """One pooled ``httpx.AsyncClient`` shared by all engine bindings."""

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._breakers: dict[str, CircuitBreaker] = {}
        self.timeouts = dict(ROLE_TIMEOUTS)

    def configure(self, server: ServerSettings) -> None:
        """Cap route-bound role timeouts to ``server.completion_timeout``."""
        for role in ROUTE_BOUND_ROLES:
            self.timeouts[role] = min(ROLE_TIMEOUTS[role], float(server.completion_timeout))
        logger.debug("Engine timeouts: %s", self.timeouts)

    def timeout_for(self, role: str) -> float:
        return self.timeouts.get(role, DEFAULT_TIMEOUT)

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        )

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Backend client is not started")
        return self._client

    def _open_breaker(self, engine: str) -> CircuitBreaker:
        breaker = self._breakers.setdefault(engine, CircuitBreaker(engine=engine))
        if not breaker.allow_request():
            raise httpx.ConnectError(f"Engine {engine} is paused after repeated connect failures")
        return breaker

    async def request(
        self,
        engine: str,
        method: str,
        url: str,
        *,
        role: str,
        retries: int = 3,
        **kwargs,
    ) -> httpx.Response:
        """Send one request, retrying only when the engine cannot be reached."""
        breaker = self._open_breaker(engine)
        timeout = self.timeout_for(role)

        last_error: Exception | None = None
        for attempt in range(1, retries + 1):
            try:
                resp = await self._require_client().request(method, url, timeout=timeout, **kwargs)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last_error = e
                breaker.record_failure()
                if attempt == retries or not breaker.allow_request():
                    break
                delay = RETRY_DELAYS[min(attempt - 1, len(RETRY_DELAYS) - 1)]
                logger.warning(
                    "%s engine %s unreachable (attempt %d/%d): %s, retrying in %.1fs",
                    role, engine, attempt, retries, e, delay,
                )
                await asyncio.sleep(delay)
                continue
            breaker.record_success()
            return resp

        raise last_error

    async def stream_bytes(
        self,
        engine: str,
        method: str,
        url: str,
        *,
        role: str = "chat_stream",
        **kwargs,
    ) -> AsyncIterator[bytes]:
        """Yield the raw response body of a streamed engine call.

        An error status raises ``httpx.HTTPStatusError`` before any byte is
        yielded. Streams are never retried.
        """
        breaker = self._open_breaker(engine)
        try:
            async with self._require_client().stream(
                method, url, timeout=self.timeout_for(role), **kwargs
            ) as resp:
                breaker.record_success()
                if resp.is_error:
                    await resp.aread()
                    resp.raise_for_status()
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except (httpx.ConnectError, httpx.ConnectTimeout):
            breaker.record_failure()
            raise


client = BackendClient()
