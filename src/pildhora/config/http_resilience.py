"""Retry, rate-limit and timeout settings for the REST adapters."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

ResponseHook = Callable[[httpx.Response], Awaitable[None]]

# PUT on a realtime path replaces the node, so repeating it is safe
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT"})
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 30.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = IDEMPOTENT_METHODS
    status_forcelist: frozenset[int] = TRANSIENT_STATUSES
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ConfigurationError(f"retry total must be >= 0, got {self.total}")
        if not 0 <= self.backoff_jitter <= 1:
            raise ConfigurationError(f"backoff_jitter must be in [0, 1], got {self.backoff_jitter}")


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float

    @classmethod
    def per_second(cls, rate: float) -> RateLimit:
        """Express ``rate`` calls per second as whole calls per window."""

        if rate <= 0:
            raise ConfigurationError(f"rate must be positive, got {rate}")
        if rate >= 1:
            return cls(max_calls=int(rate), per_seconds=1.0)
        return cls(max_calls=1, per_seconds=1.0 / rate)


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    """Settings for one ``ResilientClient``; ``name`` tags its log lines."""

    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    response_hooks: tuple[ResponseHook, ...] = ()
    default_headers: Mapping[str, str] | None = None
