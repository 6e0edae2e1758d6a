"""
Rate Limiting for the Defense Builder

Fixed-window request budget per caller identity. The counter state lives
behind a RateLimitStore so a single instance can keep it in memory while a
multi-instance deployment shares it through PostgreSQL.
"""

import time
import random
import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Window length and request budget."""
    window_ms: int = 60000
    max_requests: int = 5


@dataclass
class RateLimitEntry:
    """Counter state for one identifier."""
    count: int
    reset_time: int  # epoch milliseconds


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    reset_in: int  # milliseconds

    @property
    def retry_after(self) -> int:
        """Seconds to wait, rounded up, for the Retry-After header."""
        return max(0, -(-self.reset_in // 1000))


class RateLimitStore(Protocol):
    """Storage backend for rate limit counters."""

    def hit(
        self, identifier: str, now: int, config: RateLimitConfig
    ) -> tuple[RateLimitEntry, bool]:
        """Atomically record a request; return the entry and whether it was counted."""
        ...

    def sweep(self, now: int) -> int:
        """Remove expired entries; return how many were removed."""
        ...


class InMemoryRateLimitStore:
    """
    Process-local counter map guarded by a lock.

    Only correct for a single instance; each worker process keeps its own map.
    """

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def hit(
        self, identifier: str, now: int, config: RateLimitConfig
    ) -> tuple[RateLimitEntry, bool]:
        with self._lock:
            entry = self._entries.get(identifier)

            if entry is None or now >= entry.reset_time:
                entry = RateLimitEntry(count=1, reset_time=now + config.window_ms)
                self._entries[identifier] = entry
                return RateLimitEntry(entry.count, entry.reset_time), True

            if entry.count >= config.max_requests:
                return RateLimitEntry(entry.count, entry.reset_time), False

            entry.count += 1
            return RateLimitEntry(entry.count, entry.reset_time), True

    def sweep(self, now: int) -> int:
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.reset_time]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit entries")
        return len(expired)

    def get(self, identifier: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(identifier)
            return RateLimitEntry(entry.count, entry.reset_time) if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class PostgresRateLimitStore:
    """
    Shared counters in PostgreSQL for multi-instance deployments.

    Each hit is a single INSERT ... ON CONFLICT statement, so concurrent
    requests for the same identifier are serialized by the row lock.
    """

    TABLE_NAME = "rate_limits"

    def __init__(self, statute_store):
        """
        Args:
            statute_store: StatuteStore whose connection handling is reused
        """
        self.store = statute_store

    def initialize_schema(self) -> None:
        """Create the counters table if it doesn't exist."""
        with self.store.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                        identifier TEXT PRIMARY KEY,
                        count INT NOT NULL,
                        reset_time BIGINT NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_rate_limits_reset
                        ON {self.TABLE_NAME}(reset_time);
                """)
                conn.commit()
        logger.info("Rate limit schema initialized")

    def hit(
        self, identifier: str, now: int, config: RateLimitConfig
    ) -> tuple[RateLimitEntry, bool]:
        # Denied hits still bump the counter; a request counts while count <= budget
        sql = f"""
        INSERT INTO {self.TABLE_NAME} AS r (identifier, count, reset_time)
        VALUES (%s, 1, %s)
        ON CONFLICT (identifier) DO UPDATE SET
            count = CASE WHEN %s >= r.reset_time THEN 1 ELSE r.count + 1 END,
            reset_time = CASE
                WHEN %s >= r.reset_time THEN EXCLUDED.reset_time
                ELSE r.reset_time
            END
        RETURNING count, reset_time
        """
        new_reset = now + config.window_ms

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (identifier, new_reset, now, now))
                row = cur.fetchone()
                conn.commit()
            return row

        row = self.store._execute_with_retry(_op, "rate_limit_hit")
        count = int(row["count"])
        entry = RateLimitEntry(
            count=min(count, config.max_requests),
            reset_time=int(row["reset_time"]),
        )
        return entry, count <= config.max_requests

    def sweep(self, now: int) -> int:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"DELETE FROM {self.TABLE_NAME} WHERE reset_time <= %s", (now,)
                )
                deleted = cur.rowcount
                conn.commit()
            return deleted

        return self.store._execute_with_retry(_op, "rate_limit_sweep")


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Fixed-window rate limiter.

    Usage:
        limiter = RateLimiter(InMemoryRateLimitStore())
        result = limiter.check(identifier, RateLimitConfig(60000, 5))
        if not result.allowed:
            ...  # respond 429 with Retry-After: result.retry_after
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock=_now_ms,
        sweep_probability: float = 0.01,
        rng: Optional[random.Random] = None,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock
        self._sweep_probability = sweep_probability
        self._rng = rng or random.Random()

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Record a request for identifier and report whether it is allowed."""
        now = self._clock()

        # Bound memory by occasionally dropping expired windows
        if self._rng.random() < self._sweep_probability:
            try:
                self.store.sweep(now)
            except Exception as e:
                logger.warning(f"Rate limit sweep failed: {e}")

        entry, counted = self.store.hit(identifier, now, config)
        reset_in = max(0, entry.reset_time - now)

        if not counted:
            return RateLimitResult(allowed=False, remaining=0, reset_in=reset_in)

        return RateLimitResult(
            allowed=True,
            remaining=max(0, config.max_requests - entry.count),
            reset_in=reset_in,
        )


def hash_credential(token: str) -> str:
    """Non-reversible short fingerprint of a credential."""
    return hashlib.sha256(token.encode()).hexdigest()[:32]


def get_client_identifier(headers, client_host: Optional[str] = None) -> str:
    """
    Derive the rate limit identity for a request.

    Prefers a hash of the bearer credential; falls back to the first
    X-Forwarded-For address, then the socket peer address.
    """
    auth_header = headers.get("authorization")
    if auth_header:
        token = auth_header
        if token.lower().startswith("bearer "):
            token = token[7:]
        token = token.strip()
        if token:
            return f"auth:{hash_credential(token)}"

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = client_host or "unknown"
    return f"ip:{ip or 'unknown'}"


# Global rate limiter instance
_limiter = None


def get_rate_limiter(store: Optional[RateLimitStore] = None) -> RateLimiter:
    """Get the global rate limiter instance."""
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter(store)
    return _limiter


def reset_rate_limiter() -> None:
    """Drop the global instance (for tests and reconfiguration)."""
    global _limiter
    _limiter = None
