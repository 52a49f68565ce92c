"""
Runtime configuration.

All tunables come from environment variables (a ``.env`` file is loaded
by the CLI before :meth:`Settings.from_env` is called). Credentials are
excluded from ``repr`` so a logged ``Settings`` never leaks them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

_TRUE = {"1", "true", "yes", "on"}

REQUIRED_CREDENTIALS = ("POCKET_ACCESS_TOKEN", "POCKET_CONSUMER_KEY")


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e


class RunConfig(BaseModel):
    """Per-run switches handed explicitly to the enrichment pipeline."""

    model_config = ConfigDict(frozen=True)

    generate_images: bool = True
    output_logs: bool = True
    max_workers: int = Field(default=8, ge=1)


class Settings(BaseModel):
    """Process configuration assembled from the environment."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(default="", repr=False)
    consumer_key: str = Field(default="", repr=False)

    api_url: str = "https://getpocket.com/v3"
    detail_type: str = "complete"
    state: str = "unread"
    sort: str = "newest"

    generate_screenshots: bool = True
    output_logs: bool = True
    log_level: str = "INFO"

    image_dir: Path = Path("images")
    cache_dir: Path = Path("cache")
    snapshot_file: str = "all.json"
    image_extension: str = ".png"

    server_host: str = "localhost"
    server_port: int = 4000
    public_base_url: str = "http://localhost:4000"

    max_workers: int = Field(default=8, ge=1)
    max_browsers: int = Field(default=2, ge=1)

    http_timeout: float = 30.0
    source_max_retries: int = Field(default=3, ge=1)
    render_timeout: float = 30.0
    run_timeout: float = 0.0

    screenshot_quality: int = Field(default=95, ge=0, le=100)
    viewport_width: int = 1280
    viewport_height: int = 800

    # ------------------------------------------------------------------ #
    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        ext = env.get("IMAGE_EXTENSION", ".png").strip() or ".png"
        if not ext.startswith("."):
            ext = f".{ext}"

        try:
            return cls._build(env, ext)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def _build(cls, env: Mapping[str, str], ext: str) -> "Settings":
        return cls(
            access_token=env.get("POCKET_ACCESS_TOKEN", "").strip(),
            consumer_key=env.get("POCKET_CONSUMER_KEY", "").strip(),
            api_url=env.get("POCKET_API_URL", "https://getpocket.com/v3").rstrip("/"),
            generate_screenshots=_env_bool(env, "GENERATE_SCREENSHOTS", True),
            output_logs=_env_bool(env, "OUTPUT_LOGS", True),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            image_dir=Path(env.get("IMAGE_DIR", "images")),
            cache_dir=Path(env.get("CACHE_DIR", "cache")),
            snapshot_file=env.get("SNAPSHOT_FILE", "all.json"),
            image_extension=ext,
            server_host=env.get("SERVER_HOST", "localhost"),
            server_port=_env_int(env, "SERVER_PORT", 4000),
            public_base_url=env.get("PUBLIC_BASE_URL", "http://localhost:4000").rstrip("/"),
            max_workers=_env_int(env, "MAX_WORKERS", 8),
            max_browsers=_env_int(env, "MAX_BROWSERS", 2),
            http_timeout=_env_float(env, "HTTP_TIMEOUT", 30.0),
            source_max_retries=_env_int(env, "SOURCE_MAX_RETRIES", 3),
            render_timeout=_env_float(env, "RENDER_TIMEOUT", 30.0),
            run_timeout=_env_float(env, "RUN_TIMEOUT", 0.0),
            screenshot_quality=_env_int(env, "SCREENSHOT_QUALITY", 95),
            viewport_width=_env_int(env, "VIEWPORT_WIDTH", 1280),
            viewport_height=_env_int(env, "VIEWPORT_HEIGHT", 800),
        )

    # ------------------------------------------------------------------ #
    def require_credentials(self) -> None:
        """Fail fast before any request goes out without credentials."""
        missing = [
            name
            for name, value in zip(REQUIRED_CREDENTIALS, (self.access_token, self.consumer_key))
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

    @property
    def retrieve_url(self) -> str:
        return f"{self.api_url}/get"

    @property
    def snapshot_path(self) -> Path:
        return self.cache_dir / self.snapshot_file

    def run_config(self) -> RunConfig:
        return RunConfig(
            generate_images=self.generate_screenshots,
            output_logs=self.output_logs,
            max_workers=self.max_workers,
        )
