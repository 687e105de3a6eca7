"""Rate limiting for the admin login endpoints: in-memory sliding window."""

import time
from dataclasses import dataclass, field
import logging

from fastapi import HTTPException, Request, status

from giftlist.core.audit import audit_rate_limit_exceeded, client_ip
from giftlist.core.config import settings


logger = logging.getLogger("giftlist.rate_limit")

MAX_ENTRIES = 10000
CLEANUP_INTERVAL = 100


@dataclass
class RateLimitEntry:
    """Track requests for a single client."""
    timestamps: list[float] = field(default_factory=list)
    last_access: float = field(default_factory=time.time)


class InMemoryRateLimiter:
    """In-memory rate limiter with sliding window algorithm and memory management."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._request_count = 0

    def _cleanup_old_requests(self, entry: RateLimitEntry, window_seconds: int) -> None:
        cutoff = time.time() - window_seconds
        entry.timestamps = [ts for ts in entry.timestamps if ts > cutoff]

    def _cleanup_stale_entries(self, max_age_seconds: int = 3600) -> None:
        cutoff = time.time() - max_age_seconds
        stale_keys = [
            key for key, entry in self._entries.items()
            if entry.last_access < cutoff and not entry.timestamps
        ]
        for key in stale_keys:
            del self._entries[key]
        if stale_keys:
            logger.debug("Cleaned up %d stale rate limit entries", len(stale_keys))

    def _enforce_max_entries(self) -> None:
        if len(self._entries) <= MAX_ENTRIES:
            return
        sorted_entries = sorted(self._entries.items(), key=lambda x: x[1].last_access)
        entries_to_remove = len(self._entries) - MAX_ENTRIES + 100
        for key, _ in sorted_entries[:entries_to_remove]:
            del self._entries[key]
        logger.warning(
            "Rate limit entries exceeded %d, removed %d oldest entries",
            MAX_ENTRIES, entries_to_remove
        )

    def is_allowed(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """
        Check if request is allowed under rate limit.

        Returns:
            tuple[bool, int]: (is_allowed, retry_after_seconds)
        """
        now = time.time()
        entry = self._entries.get(key)
        if entry is None:
            entry = RateLimitEntry()
            self._entries[key] = entry
        entry.last_access = now

        self._cleanup_old_requests(entry, window_seconds)

        if len(entry.timestamps) >= max_requests:
            oldest = min(entry.timestamps)
            retry_after = int(oldest + window_seconds - now) + 1
            return False, max(1, retry_after)

        entry.timestamps.append(now)

        self._request_count += 1
        if self._request_count % CLEANUP_INTERVAL == 0:
            self._cleanup_stale_entries(window_seconds * 2)
            self._enforce_max_entries()

        return True, 0

    def reset(self, key: str | None = None) -> None:
        """Reset one key, or everything (used by tests)."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


limiter = InMemoryRateLimiter()


def get_client_identifier(request: Request) -> str:
    ip = client_ip(request)
    if ip:
        return f"ip:{ip}"
    user_agent = request.headers.get("User-Agent", "")
    return f"ua:{hash(user_agent)}"


def check_rate_limit(
    request: Request,
    max_requests: int | None = None,
    window_seconds: int | None = None,
    key_suffix: str = "",
) -> None:
    """
    Imperative rate limit check.

    Raises HTTPException(429) if the limit is exceeded.
    """
    if not settings.rate_limit_enabled:
        return

    client_id = get_client_identifier(request)
    path = request.url.path
    key = f"{client_id}:{path}:{key_suffix}"

    allowed, retry_after = limiter.is_allowed(
        key,
        max_requests or settings.rate_limit_login_requests,
        window_seconds or settings.rate_limit_window_seconds,
    )

    if not allowed:
        logger.warning(
            "Rate limit exceeded for %s on %s, retry_after=%ds",
            client_id,
            path,
            retry_after,
        )
        audit_rate_limit_exceeded(request, path, retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )
