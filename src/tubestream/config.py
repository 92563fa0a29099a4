"""Configuration settings for tubestream."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"
    static_dir: Path | None = None  # UI shell assets, served at / when set

    # Downloads
    target_height: int = 1080  # used when no (or a bad) format is requested
    stream_chunk_size: int = 64 * 1024
    terminate_timeout: float = 5.0  # seconds between SIGTERM and SIGKILL

    # yt-dlp
    yt_dlp_path: str = ""
    yt_dlp_cookies: str = ""  # wins over cookies_from_browser
    yt_dlp_cookies_from_browser: str = ""
    ytdlp_concurrent_fragments: int = 8

    # Metadata cache
    info_ttl_seconds: float = 15 * 60

    # URL validation
    allowed_hosts: list[str] = ["youtube.com", "youtu.be"]

    @field_validator("yt_dlp_path", "yt_dlp_cookies", "yt_dlp_cookies_from_browser")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def static_directory(self) -> Path | None:
        """Get absolute static directory path, if configured."""
        return self.static_dir.resolve() if self.static_dir else None


settings = Settings()
