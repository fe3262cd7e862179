"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g., SERVICE_URL=https://corpus.example.org/
#   2. **.env file** - key=value lines in the working directory's .env file
#
# Field name `service_url` maps to env var `SERVICE_URL`.  Defaults apply
# when neither an env var nor a .env entry exists for that field.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """transcript-uploader application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Remote ingestion service ===
    service_url: str = "http://localhost:8080/labbcat/"
    service_username: str = ""
    service_password: str = ""
    request_timeout_seconds: float = 300.0

    # === Upload run behaviour ===
    # Batch mode pre-fills parameters with server defaults and keeps going
    # past per-entry failures; interactive mode stops on the first failure.
    batch_mode: bool = False
    # Value sent for the ``labbcat_generate`` parameter.
    generate_layers: bool = True
    # Seconds between status polls of server-side processing tasks.
    poll_interval_seconds: float = 1.0
    # Consecutive poll transport failures tolerated before an entry is failed.
    poll_max_failures: int = 30
    # Whether cancelling an upload run also stops processing-phase polling.
    cancel_stops_processing: bool = False
    # Concurrent existence look-ups after files are added.
    existence_check_concurrency: int = 4

    # === App Config ===
    app_host: str = "127.0.0.1"
    app_port: int = 8002
    app_env: str = "development"
    log_level: str = "INFO"

    def has_credentials(self) -> bool:
        """Return ``True`` when a username is configured for HTTP basic auth."""
        return bool(self.service_username)
