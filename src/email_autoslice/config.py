from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    data_dir: str = "data"
    log_level: str = "INFO"

    # Keys
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    google_cloud_vision_api_key: str | None = None

    # Google Cloud Vision (REST)
    vision_api_url: str = "https://vision.googleapis.com/v1/images:annotate"
    vision_timeout_sec: float = 60.0
    vision_max_objects: int = 50
    vision_max_logos: int = 10

    # Models
    gemini_vision_model: str = "gemini-2.0-flash"
    openai_vision_model: str = "gpt-4.1-mini"

    # Screenshots larger than this on either side are downscaled before model calls.
    max_model_image_dimension: int = 8000

    # Slicing defaults (source-image pixels)
    slice_padding_px: int = 4
    slice_candidate_step_px: int = 10
    slice_low_risk_multiple: int = 5
    min_slice_height_px: int = 20
    gap_min_px: int = 20
    gap_min_slice_height_px: int = 80
    gap_max_cuts: int = 12


settings = Settings()
