from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sketchrelay.protocol.constants import DEFAULT_PALETTE


class Settings(BaseSettings):
    """
    Runtime config.

    - Loaded from environment variables (`SKETCHRELAY_*`)
    - Also reads `.env` if present (via pydantic-settings + python-dotenv)
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="SKETCHRELAY_", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 3000
    # The browser client connects at the page origin, so "/" by default.
    ws_path: str = "/"

    # Participant colors, handed out by id modulo length.
    # Env form is JSON: SKETCHRELAY_PALETTE='["#000","#fff"]'
    palette: tuple[str, ...] = DEFAULT_PALETTE

    # When off, any JSON object is relayed regardless of its "type".
    strict_schema: bool = True
    max_message_bytes: int = 64 * 1024
    # Frames queued per participant before new ones are dropped.
    outbox_size: int = 256

    # Serve a browser client from this directory at "/" (optional).
    static_dir: str | None = None

    # Logging
    log_level: str = "INFO"
    debug_log_msgs: bool = False

    @field_validator("palette")
    @classmethod
    def _palette_has_two_colors(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) < 2:
            raise ValueError("palette needs at least two colors")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
