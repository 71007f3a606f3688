"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telnyx Call Control
    telnyx_api_key: Optional[str] = None
    telnyx_connection_id: str = ""
    telnyx_api_base: str = "https://api.telnyx.com/v2"

    # ElevenLabs conversational AI
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_api_base: str = "https://api.elevenlabs.io"
    elevenlabs_sip_host: str = "sip.rtc.elevenlabs.io:5061"

    # Agent phone numbers (YAML); defaults to the bundled agents.yaml
    agents_file: Optional[str] = None

    # Database (call history only)
    database_url: str = "sqlite+aiosqlite:///./calls.db"

    # Supervisory system / raw webhook forwarding
    supervisor_webhook_url: Optional[str] = None
    forward_webhook_url: Optional[str] = None

    # Orchestration
    expected_callback_ttl_seconds: float = 60.0
    sweep_interval_seconds: float = 15.0
    ended_leg_retention_seconds: float = 600.0  # Late events for a hung-up leg are ignored this long
    transcript_buffer_size: int = 200
    event_buffer_size: int = 100
    transcribe_outbound_calls: bool = True
    http_timeout_seconds: float = 10.0

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
