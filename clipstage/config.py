from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CLIPSTAGE_",
        extra="ignore",
    )

    # Application
    app_name: str = "Clipstage"
    app_version: str = "0.1.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Twitch Helix
    twitch_client_id: str = ""
    twitch_client_secret: str = ""
    twitch_access_token: str = ""
    twitch_refresh_token: str = ""
    twitch_api_base_url: str = "https://api.twitch.tv/helix"
    twitch_token_url: str = "https://id.twitch.tv/oauth2/token"
    # Channel whose chat receives approval and "not found" notices
    twitch_broadcaster_login: str = ""
    http_timeout_seconds: float = 10.0

    # OBS (obs-websocket v5)
    obs_host: str = "localhost"
    obs_port: int = 4455
    obs_password: str = ""
    obs_timeout_seconds: int = 3

    # Scene layout. Names are fixed by convention, state is always read live from OBS.
    scene_name: str = "Cliparino"
    player_source_name: str = "Player"
    player_width: int = 1920
    player_height: int = 1080
    inactive_url: str = "about:blank"
    setup_attempts: int = 3
    setup_retry_delay_seconds: float = 1.0
    content_warning_automation: bool = True

    # Embed hosting
    host: str = "127.0.0.1"
    preferred_port: int = 8080
    max_port_attempts: int = 10
    # Listener faults tolerated while running before the process gives up
    max_listener_restarts: int = 3
    nonce_length: int = 16

    # Playback
    # Added to every clip duration to cover embed load latency
    setup_delay_seconds: float = 3.0
    cooldown_seconds: float = 2.0
    max_clip_failures: int = 3

    # Clip resolution
    max_clip_seconds: int = 30
    clip_age_days: int = 30
    featured_only: bool = False
    max_search_pages: int = 50
    cache_expiration_days: int = 30

    # Moderator approval
    approval_timeout_seconds: float = 60.0
    approval_poll_interval_seconds: float = 0.5

    # Upstream retry policy
    retry_max_attempts: int = 4
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 30.0
    retry_max_total_seconds: float = 60.0
    retry_jitter: float = 0.1
    rate_limit_default_wait_seconds: float = 5.0

    # Durable key/value state (last played clip, refreshed tokens)
    state_database_url: str = "sqlite+aiosqlite:///./clipstage.db"

    @computed_field
    @property
    def cache_expiration_seconds(self) -> float:
        return self.cache_expiration_days * 86400.0

    @computed_field
    @property
    def twitch_enabled(self) -> bool:
        """Helix calls need at least a client id and a user token."""
        return bool(self.twitch_client_id and self.twitch_access_token)


@lru_cache
def get_settings() -> Settings:
    return Settings()
