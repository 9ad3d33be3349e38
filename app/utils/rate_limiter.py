"""
Rate limiting for endpoints that call the completion capability

Only quiz generation, attempt submission and study suggestions spend model
calls, so the limiter is attached to those routes as a dependency instead
of wrapping every request.
"""
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List

from fastapi import HTTPException, Request

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Window:
    name: str
    seconds: int
    limit: int


class RateLimiter:
    """
    In-memory sliding-window limiter per client
    Production: Use Redis for distributed rate limiting
    """

    # idle clients are dropped at most this often
    SWEEP_INTERVAL = 60

    def __init__(self, requests_per_minute: int = 30, requests_per_hour: int = 500):
        self.windows: List[Window] = [
            Window("minute", 60, requests_per_minute),
            Window("hour", 3600, requests_per_hour),
        ]
        # {window name: {client id: request timestamps, oldest first}}
        self.hits: Dict[str, Dict[str, Deque[float]]] = {
            window.name: defaultdict(deque) for window in self.windows
        }
        self.last_sweep = 0.0

    def client_id(self, request: Request) -> str:
        if hasattr(request.state, "user_id"):
            return str(request.state.user_id)
        return request.client.host if request.client else "unknown"

    def _recent(self, window: Window, client: str, now: float) -> Deque[float]:
        hits = self.hits[window.name][client]
        while hits and hits[0] <= now - window.seconds:
            hits.popleft()
        return hits

    def sweep(self, now: float) -> None:
        """Drop clients with no requests left in a window"""
        for window in self.windows:
            clients = self.hits[window.name]
            for client in list(clients):
                if not self._recent(window, client, now):
                    del clients[client]
        self.last_sweep = now

    def check(self, client: str, now: float = None) -> None:
        """
        Record one request for client

        Raises:
            HTTPException: 429 when any window is full
        """
        now = time.time() if now is None else now
        if now - self.last_sweep >= self.SWEEP_INTERVAL:
            self.sweep(now)
        recent = [(window, self._recent(window, client, now)) for window in self.windows]

        for window, hits in recent:
            if len(hits) >= window.limit:
                retry_after = max(1, int(hits[0] + window.seconds - now))
                logger.warning(f"Rate limit exceeded ({window.name}): {client}")
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "rate_limit_exceeded",
                        "message": f"Too many requests. Limit: {window.limit} requests per {window.name}",
                        "retry_after": retry_after
                    }
                )

        for _, hits in recent:
            hits.append(now)

    async def __call__(self, request: Request) -> None:
        self.check(self.client_id(request))


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR
)
