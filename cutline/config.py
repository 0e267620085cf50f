import json
from functools import lru_cache

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_list(raw: str) -> list[str]:
    """Parse a JSON array, pipe-separated or comma-separated string."""
    if raw.startswith("["):
        try:
            return [str(item) for item in json.loads(raw)]
        except json.JSONDecodeError:
            pass
    # Pipe-separated (Cloud Run env vars cannot carry commas easily)
    if "|" in raw:
        return [item.strip() for item in raw.split("|") if item.strip()]
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Cutline Render API"
    app_version: str = "0.1.0"
    debug: bool = True

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:5173,http://localhost:3000"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        return _split_list(self.cors_origins_raw)

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    # Maximum threads for FFmpeg (0 = let FFmpeg decide)
    render_ffmpeg_threads: int = 0

    # Render files
    render_temp_dir: str = "/tmp/cutline"
    render_output_dir: str = "output"
    render_output_url_prefix: str = "/output"

    # Local directories whose files the engine may read directly.
    # Anything else must be an http(s) URL.
    media_roots_raw: str = ""

    @computed_field
    @property
    def media_roots(self) -> list[str]:
        return _split_list(self.media_roots_raw)

    # drawtext font lookup, first existing file wins
    font_candidates_raw: str = (
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc|"
        "/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc|"
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf|"
        "/System/Library/Fonts/PingFang.ttc|"
        "/System/Library/Fonts/Supplemental/Arial Unicode.ttf|"
        "/Library/Fonts/Arial Unicode.ttf"
    )

    @computed_field
    @property
    def font_candidates(self) -> list[str]:
        return _split_list(self.font_candidates_raw)


@lru_cache
def get_settings() -> Settings:
    return Settings()
