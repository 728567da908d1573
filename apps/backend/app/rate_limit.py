"""
Per-client fixed-window rate limiting for the search endpoint.

Each client gets MAX requests per window. The window starts on the client's
first request and the counter resets only once the whole window has elapsed,
so a client over the cap is denied for the rest of that window.
"""
import math
import time
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import Request
from fastapi.responses import JSONResponse
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_SECONDS = 60 * 60
UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class Allow:
    count: int


@dataclass(frozen=True)
class Deny:
    retry_after_seconds: int
    reset_at: float

    @property
    def block_until(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


Decision = Union[Allow, Deny]


def _describe_window(seconds: float) -> str:
    if seconds == 60:
        return "minute"
    if seconds == 3600:
        return "hour"
    if seconds % 60 == 0:
        return f"{int(seconds // 60)} minutes"
    return f"{int(seconds)} seconds"


class QuotaExceeded(Exception):
    """Raised when a client has used up its search quota."""

    def __init__(self, client_id: str, decision: Deny, max_requests: int,
                 window_seconds: float = DEFAULT_WINDOW_SECONDS):
        self.client_id = client_id
        self.decision = decision
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        super().__init__(f"Rate limit exceeded for {client_id}")

    def to_dict(self) -> dict:
        retry_after = self.decision.retry_after_seconds
        mins, secs = divmod(retry_after, 60)
        block_until = self.decision.block_until
        local_time = block_until.astimezone().strftime("%H:%M:%S")
        return {
            "error": "RATE_LIMITED",
            "message": (
                f"You have exceeded the limit of {self.max_requests} requests per {_describe_window(self.window_seconds)} from this IP. "
                f"You can try again in {mins} min {secs} sec (until {local_time})."
            ),
            "retryAfterSeconds": retry_after,
            "blockUntil": block_until.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }


class RateGovernor:
    """
    Gates the search operation with a per-client request quota.

    Counting is delegated to the limits fixed-window strategy: the window is
    anchored at the client's first hit and denied hits are counted too.
    """

    def __init__(self, storage: Optional[Storage] = None,
                 max_requests: int = DEFAULT_MAX_REQUESTS,
                 window_seconds: int = DEFAULT_WINDOW_SECONDS):
        # MemoryStorage drops expired windows on its own expiry timer
        self.storage = storage if storage is not None else MemoryStorage()
        self.limiter = FixedWindowRateLimiter(self.storage)
        self.quota = RateLimitItemPerSecond(max_requests, window_seconds)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.lock = threading.Lock()

    def count(self, client_id: str) -> int:
        """Requests seen from a client in its current window."""
        return self.storage.get(self.quota.key_for(client_id))

    def admit(self, client_id: str) -> Decision:
        """
        Count one request for a client and decide whether it may proceed.

        Returns:
            Allow with the request's position in the window, or Deny with the
            seconds left until the window resets and the reset timestamp.
        """
        # hit and the follow-up reads form one step
        with self.lock:
            if self.limiter.hit(self.quota, client_id):
                return Allow(count=self.count(client_id))

            reset_at, _ = self.limiter.get_window_stats(self.quota, client_id)
            retry_after = max(1, math.ceil(reset_at - time.time()))
            return Deny(retry_after_seconds=retry_after, reset_at=float(reset_at))


def get_client_id(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address, else a shared bucket."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def enforce_search_quota(request: Request):
    """Dependency that counts the request against the caller's quota."""
    governor: RateGovernor = request.app.state.governor
    client_id = get_client_id(request)
    decision = governor.admit(client_id)
    if isinstance(decision, Deny):
        logger.warning(
            f"[rate_limit] {client_id} over quota ({governor.max_requests}/window), "
            f"retry in {decision.retry_after_seconds}s"
        )
        raise QuotaExceeded(client_id, decision, governor.max_requests, governor.window_seconds)


async def quota_exceeded_handler(request: Request, exc: QuotaExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.decision.retry_after_seconds)},
    )
