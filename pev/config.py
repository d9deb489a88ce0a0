"""Configuration loaded from environment (.env) and defaults."""

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # pev/
_PROJECT_ROOT = _THIS_DIR.parent                     # project root
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Replicate hosts every generation model
    replicate_api_token: str | None = None
    replicate_api_url: str = "https://api.replicate.com/v1"

    # Sora models forward an OpenAI key to the provider
    openai_api_key: str | None = None

    # Model used when a request does not name one
    pev_default_model: str = "wan-2.5"

    # Data directory for persisted job records and stitched output
    pev_data_dir: str = "./data"

    # Orchestration timing (seconds)
    poll_interval_seconds: float = 5.0
    stagger_seconds: float = 2.0

    # Rate-limit retry policy for job creation
    submit_max_attempts: int = 3
    default_retry_after_seconds: float = 10.0

    # Persisted job records older than this are ignored
    record_ttl_hours: float = 24.0

    # Stitching
    crossfade_seconds: float = 0.8
    fade_out_seconds: float = 1.0
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    video_crf: int = 23
    audio_bitrate: str = "128k"

    # Hosts the download endpoint will redirect to (comma-separated)
    trusted_media_hosts: str = "replicate.delivery,replicate.com"

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Server port
    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.pev_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def jobs_dir(self) -> Path:
        """Directory holding persisted job records."""
        return self.data_dir / "jobs"

    @property
    def output_dir(self) -> Path:
        """Directory holding stitched videos."""
        return self.data_dir / "output"

    @property
    def trusted_host_list(self) -> list[str]:
        return [h.strip().lower() for h in self.trusted_media_hosts.split(",") if h.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    try:
        settings.ensure_dirs()
    except OSError as e:
        # Callers that need the directories create them and handle the failure
        logger.warning("Could not create data directories under %s (%s)", settings.data_dir, e)
    return settings
