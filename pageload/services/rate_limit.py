"""
Rate Limiter Service

Per-client fixed window counter gating upstream-triggering requests.

Semantics:
- The first request from a client key opens a window of `window_seconds`
  with count 1.
- Requests inside the window increment the count; once the count has reached
  `max_requests`, further requests are denied with the whole seconds left
  until the window resets (at least 1).
- The first request at or after the reset time opens a fresh window.

The limiter is consulted only when a request actually needs the upstream;
pure cache hits never touch it.

Client identity comes from the first syntactically valid address in a
prioritized list of forwarded-address headers. Clients with no usable header
all share the "unknown" bucket.

Expired windows are pruned only once the number of tracked keys exceeds
`prune_threshold` (amortized cleanup, not a precise TTL).
"""

import ipaddress
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Union


logger = logging.getLogger(__name__)


UNKNOWN_CLIENT_KEY = "unknown"

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_REQUESTS = 10
DEFAULT_PRUNE_THRESHOLD = 500


@dataclass
class RateWindow:
    client_key: str
    window_reset_at: float
    count: int


@dataclass(frozen=True)
class RateLimitAllowed:
    remaining: int


@dataclass(frozen=True)
class RateLimitDenied:
    retry_after_sec: int


RateLimitDecision = Union[RateLimitAllowed, RateLimitDenied]


class RateLimiter:
    """
    Sliding-window-by-reset request counter keyed by client identity.

    Args:
        max_requests: Requests allowed per window per key
        window_seconds: Window width
        prune_threshold: Tracked-key count above which expired windows are pruned
        clock: Monotonic seconds source, injectable for tests
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        prune_threshold: int = DEFAULT_PRUNE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def window_for(self, client_key: str) -> Optional[RateWindow]:
        return self._windows.get(client_key)

    def check(self, client_key: str) -> RateLimitDecision:
        """
        Count one upstream-triggering request for client_key.

        Returns:
            RateLimitAllowed with the requests left in the window, or
            RateLimitDenied with seconds until the window resets (>= 1)
        """
        now = self._clock()

        if len(self._windows) > self.prune_threshold:
            self._prune(now)

        window = self._windows.get(client_key)
        if window is None or now >= window.window_reset_at:
            self._windows[client_key] = RateWindow(
                client_key=client_key,
                window_reset_at=now + self.window_seconds,
                count=1,
            )
            return RateLimitAllowed(remaining=self.max_requests - 1)

        if window.count >= self.max_requests:
            retry_after = max(1, math.ceil(window.window_reset_at - now))
            logger.warning(f"Rate limit exceeded for client {client_key}; retry after {retry_after}s")
            return RateLimitDenied(retry_after_sec=retry_after)

        window.count += 1
        return RateLimitAllowed(remaining=self.max_requests - window.count)

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now >= w.window_reset_at]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired rate-limit windows")


# =============================================================================
# Client Identity
# =============================================================================


def _parse_address(value: str) -> Optional[str]:
    candidate = value.strip().strip('"')
    if not candidate:
        return None

    # [v6]:port and v4:port forms
    if candidate.startswith("[") and "]" in candidate:
        candidate = candidate[1:candidate.index("]")]
    elif candidate.count(":") == 1:
        candidate = candidate.split(":", 1)[0]

    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def client_key_from_headers(headers: Mapping[str, str], header_names: Iterable[str]) -> str:
    """
    Derive the rate-limit key for a request.

    Headers are tried in priority order. For list-valued headers such as
    X-Forwarded-For only the first (client-most) entry is considered.

    Args:
        headers: Request headers (case-insensitive mapping, e.g. Starlette Headers)
        header_names: Header names, highest priority first

    Returns:
        Normalized IP address string, or UNKNOWN_CLIENT_KEY
    """
    for name in header_names:
        raw = headers.get(name)
        if not raw:
            continue
        address = _parse_address(raw.split(",", 1)[0])
        if address:
            return address
    return UNKNOWN_CLIENT_KEY
