"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Tutor Meet"
    debug: bool = False
    secret_key: str = "change-me-in-production"  # Also signs OAuth state tokens
    log_dir: Path = Path.home() / ".logs" / "tutormeet"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all
    frontend_url: str = "/"  # Fallback redirect after the OAuth callback

    # Database
    database_url: str = "sqlite:///./tutormeet.db"

    # Google OAuth / Calendar API
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    google_calendar_id: str = "primary"
    google_oauth_scopes: str = "https://www.googleapis.com/auth/calendar.events"
    provider_timeout_seconds: float = 30.0

    # Meetings
    time_slot_grace_seconds: int = 30
    permanent_link_lead_minutes: int = 2
    default_duration_minutes: int = 60
    oauth_state_max_age_seconds: int = 900

    # Per-tutor permanent link lease
    link_lock_ttl_seconds: float = 180.0  # Above four provider calls at the default timeout
    link_lock_wait_seconds: float = 15.0
    link_lock_poll_seconds: float = 0.1

    @property
    def google_oauth_scope_list(self) -> list[str]:
        """Configured OAuth scopes, parsed from the comma-separated setting."""
        return [s.strip() for s in self.google_oauth_scopes.split(",") if s.strip()]


settings = Settings()
