"""Per-identifier request rate limiting.

Each limiter keeps, per identifier, the timestamps (epoch ms) of the requests
it allowed. Timestamps older than the window are pruned lazily on every check.
State lives in process memory; a multi-worker deployment needs a shared store.
"""

from dataclasses import dataclass
from typing import Callable

from paperbag.core.clock import now_ms
from paperbag.core.config import Settings

ANONYMOUS = "anonymous"


class RateLimiter:
    """Allow at most `max_requests` per identifier within `window_ms`."""

    def __init__(
        self,
        window_ms: int = 60_000,
        max_requests: int = 10,
        clock: Callable[[], int] = now_ms,
    ):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock
        self._requests: dict[str, list[int]] = {}

    def _valid_requests(self, identifier: str, now: int) -> list[int]:
        requests = [t for t in self._requests.get(identifier, []) if now - t < self.window_ms]
        if requests:
            self._requests[identifier] = requests
        else:
            self._requests.pop(identifier, None)
        return requests

    def is_allowed(self, identifier: str) -> bool:
        """Record a request and return True if the identifier is under its limit.

        A rejected request is not recorded.
        """
        now = self._clock()
        requests = self._valid_requests(identifier, now)
        if len(requests) >= self.max_requests:
            return False
        requests.append(now)
        self._requests[identifier] = requests
        return True

    def get_remaining_requests(self, identifier: str) -> int:
        """Requests the identifier may still make in the current window."""
        requests = self._valid_requests(identifier, self._clock())
        return max(0, self.max_requests - len(requests))

    def get_reset_time(self, identifier: str) -> int:
        """Epoch ms at which the oldest counted request leaves the window.

        Returns the current time when nothing is counted.
        """
        now = self._clock()
        requests = self._valid_requests(identifier, now)
        if not requests:
            return now
        return min(requests) + self.window_ms


@dataclass
class RateLimiters:
    """The limiter instances guarding Paperbag operations."""

    upload: RateLimiter
    processing: RateLimiter
    general: RateLimiter

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], int] = now_ms
    ) -> "RateLimiters":
        return cls(
            upload=RateLimiter(
                settings.upload_rate_window_ms, settings.upload_rate_max_requests, clock
            ),
            processing=RateLimiter(
                settings.processing_rate_window_ms, settings.processing_rate_max_requests, clock
            ),
            general=RateLimiter(
                settings.general_rate_window_ms, settings.general_rate_max_requests, clock
            ),
        )

    def status_for(self, identifier: str) -> dict[str, dict[str, int]]:
        """Remaining quota and reset time of every limiter for one identifier."""
        return {
            name: {
                "remaining": limiter.get_remaining_requests(identifier),
                "reset_time": limiter.get_reset_time(identifier),
            }
            for name, limiter in (
                ("upload", self.upload),
                ("processing", self.processing),
                ("general", self.general),
            )
        }
