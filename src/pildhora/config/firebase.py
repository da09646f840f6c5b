"""Firebase project configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

REALTIME_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class FirebaseConfig:
    """Credentials and endpoints for the document and realtime stores."""

    credentials_path: Path
    database_url: str
    project_id: str | None = None
    resilience: ResilienceConfig | None = None

    def realtime_resilience(self) -> ResilienceConfig:
        return self.resilience or ResilienceConfig(
            name="rtdb",
            base_url=self.database_url,
            timeout_seconds=REALTIME_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=50, per_seconds=1.0),
        )


def get_firebase_config() -> FirebaseConfig:
    values = require_env_vars(("PILDHORA_FIREBASE_CREDENTIALS", "PILDHORA_RTDB_URL"))
    credentials_path = Path(values["PILDHORA_FIREBASE_CREDENTIALS"]).expanduser()
    if not credentials_path.is_file():
        raise ConfigurationError(
            f"Firebase credentials file not found: {credentials_path}",
            variable="PILDHORA_FIREBASE_CREDENTIALS",
        )
    database_url = values["PILDHORA_RTDB_URL"].rstrip("/")
    if not database_url.startswith("https://"):
        raise ConfigurationError(
            f"PILDHORA_RTDB_URL must be an https URL, got {database_url!r}",
            variable="PILDHORA_RTDB_URL",
        )
    return FirebaseConfig(
        credentials_path=credentials_path,
        database_url=database_url,
        project_id=optional_env_var("PILDHORA_FIREBASE_PROJECT_ID"),
    )
