"""Defaults for reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass

from pildhora.domain.reconciliation.execute import (
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_MAX_WORKERS,
)

from .env import optional_env_float, optional_env_int
from .http_resilience import RateLimit


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    max_workers: int = DEFAULT_MAX_WORKERS
    call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS
    write_ratelimit: RateLimit | None = None


def get_reconcile_config() -> ReconcileConfig:
    timeout = optional_env_float(
        "PILDHORA_CALL_TIMEOUT_SECONDS", default=DEFAULT_CALL_TIMEOUT_SECONDS
    )
    writes_per_second = optional_env_float("PILDHORA_WRITES_PER_SECOND", default=None)
    return ReconcileConfig(
        max_workers=optional_env_int("PILDHORA_MAX_WORKERS", default=DEFAULT_MAX_WORKERS),
        call_timeout_seconds=timeout or DEFAULT_CALL_TIMEOUT_SECONDS,
        write_ratelimit=RateLimit.per_second(writes_per_second) if writes_per_second else None,
    )
