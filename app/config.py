"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    REDIS_URL: Redis connection string
    ANTHROPIC_API_KEY: API key for the dialogue oracle
    PROVIDER_DIRECTORY_URL: Provider search service (static catalogue if unset)
    VOICE_SERVICE_URL: Text-to-speech playback service (optional)
    NO_ANSWER_PROBABILITY: Chance a simulated call is not picked up (default: 0.1)
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Environment
    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose logging, docs enabled
    - staging: Pre-production testing environment
    - production: Live production environment, minimal logging
    """

    debug: bool = False
    """Enable debug mode (DEBUG log level)."""

    app_name: str = "provider-outreach"
    """Application name."""

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 8000
    """Port to bind the application server."""

    cors_origins: str = "http://localhost:3000"
    """Comma-separated list of allowed CORS origins."""

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL.

    Format: redis://host:port/db

    Used for session-scoped booking records.
    """

    redis_session_ttl: int = 1800
    """TTL in seconds for session-scoped records (default: 30 minutes)."""

    # Dialogue Oracle (Claude)
    anthropic_api_key: Optional[str] = None
    """Anthropic API key used by the dialogue oracle."""

    claude_dialogue_model: str = "claude-3-5-haiku-latest"
    """Primary model used to generate simulated call dialogue."""

    claude_fallback_model: str = "claude-3-5-sonnet-latest"
    """Model tried when the primary model fails."""

    oracle_temperature: float = 0.8
    """Sampling temperature for dialogue generation."""

    oracle_max_tokens: int = 1500
    """Maximum tokens in a generated dialogue."""

    oracle_timeout_seconds: float = 45.0
    """Upper bound on a single oracle call. A timeout fails the attempt."""

    # External collaborators
    provider_directory_url: Optional[str] = None
    """Provider search service base URL.

    When unset, the built-in static provider catalogue is used.
    """

    calendar_api_url: str = "https://www.googleapis.com/calendar/v3"
    """Google Calendar API base URL for busy-event lookups."""

    voice_service_url: Optional[str] = None
    """Text-to-speech playback service base URL (optional)."""

    voice_enabled: bool = False
    """Narrate call dialogue through the voice service."""

    voice_agent_profile: str = "agent"
    """Voice profile used for the booking agent's lines."""

    voice_counterparty_profile: str = "receptionist"
    """Voice profile used for the provider's lines."""

    http_timeout_seconds: float = 15.0
    """Timeout for collaborator HTTP requests."""

    # Call simulation tuning
    dial_delay_min: float = 0.5
    """Minimum delay before a call starts ringing (seconds)."""

    dial_delay_max: float = 2.0
    """Maximum delay before a call starts ringing (seconds)."""

    ring_duration_min: float = 2.0
    """Minimum ring time before the call is answered or dropped (seconds)."""

    ring_duration_max: float = 3.5
    """Maximum ring time before the call is answered or dropped (seconds)."""

    no_answer_probability: float = 0.1
    """Probability that a provider does not pick up."""

    pacing_base_seconds: float = 0.8
    """Base pause after each utterance when not narrating."""

    pacing_per_char_seconds: float = 0.025
    """Additional pause per character of utterance text."""

    pacing_max_seconds: float = 4.0
    """Upper bound on the pause after an utterance."""

    # Scoring
    partial_availability_credit: float = 0.4
    """Availability score for an offer outside every free window."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and reused
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from app.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.no_answer_probability)
        0.1
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
