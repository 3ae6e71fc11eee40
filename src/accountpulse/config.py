"""Summary: Application configuration for AccountPulse.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for storage, providers, and the pipeline.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    store_backend: str
    environment: str
    sentiment_provider: str
    google_language_api_key: str | None
    google_language_url: str
    yelp_api_key: str | None
    yelp_base_url: str
    fixtures_dir: str
    cache_ttl_seconds: int
    load_interval_seconds: int
    snapshot_interval_seconds: int
    schedule_buffer_seconds: int
    max_concurrency: int
    provider_timeout_seconds: float
    api_host: str
    api_port: int
    api_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("ACCOUNTPULSE_DB_PATH", defaults["db_path"]),
            store_backend=os.getenv("ACCOUNTPULSE_STORE_BACKEND", defaults["store_backend"]),
            environment=os.getenv("ACCOUNTPULSE_ENV", defaults["environment"]),
            sentiment_provider=os.getenv(
                "ACCOUNTPULSE_SENTIMENT_PROVIDER", defaults["sentiment_provider"]
            ),
            google_language_api_key=os.getenv("GOOGLE_LANGUAGE_API_KEY")
            or defaults["google_language_api_key"]
            or None,
            google_language_url=os.getenv("GOOGLE_LANGUAGE_URL", defaults["google_language_url"]),
            yelp_api_key=os.getenv("YELP_API_KEY") or defaults["yelp_api_key"] or None,
            yelp_base_url=os.getenv("YELP_BASE_URL", defaults["yelp_base_url"]),
            fixtures_dir=os.getenv("ACCOUNTPULSE_FIXTURES_DIR", defaults["fixtures_dir"]),
            cache_ttl_seconds=int(
                os.getenv("ACCOUNTPULSE_CACHE_TTL_SECONDS", defaults["cache_ttl_seconds"])
            ),
            load_interval_seconds=int(
                os.getenv("ACCOUNTPULSE_LOAD_INTERVAL_SECONDS", defaults["load_interval_seconds"])
            ),
            snapshot_interval_seconds=int(
                os.getenv(
                    "ACCOUNTPULSE_SNAPSHOT_INTERVAL_SECONDS", defaults["snapshot_interval_seconds"]
                )
            ),
            schedule_buffer_seconds=int(
                os.getenv(
                    "ACCOUNTPULSE_SCHEDULE_BUFFER_SECONDS", defaults["schedule_buffer_seconds"]
                )
            ),
            max_concurrency=int(
                os.getenv("ACCOUNTPULSE_MAX_CONCURRENCY", defaults["max_concurrency"])
            ),
            provider_timeout_seconds=float(
                os.getenv(
                    "ACCOUNTPULSE_PROVIDER_TIMEOUT_SECONDS", defaults["provider_timeout_seconds"]
                )
            ),
            api_host=os.getenv("ACCOUNTPULSE_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("ACCOUNTPULSE_API_PORT", defaults["api_port"])),
            api_key=os.getenv("ACCOUNTPULSE_API_KEY", defaults["api_key"]),
        )

    @property
    def store_root(self) -> str:
        """Root collection name; dev data lives apart from prod."""

        return "users" if self.environment == "prod" else f"users-{self.environment}"


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())
