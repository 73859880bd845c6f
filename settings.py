from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Credentials use the providers' own variable names (no MENU_ prefix).
    replicate_api_token: str = Field(validation_alias="replicate_api_token")
    openrouter_api_key: str = Field(validation_alias="openrouter_api_key")

    project_dir: Path = Path("./data")
    upscaler_model: str = "philz1337x/crystal-upscaler"
    ocr_model: str = (
        "lucataco/deepseek-ocr:"
        "cb3b474fbfc56b1664c8c7841550bccecbe7b74c30e45ce938ffca1180b4dff5"
    )
    extraction_model: str = "google/gemini-2.5-pro"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    replicate_base_url: str = "https://api.replicate.com/v1"
    target_upscale_size: int = 4000
    max_compressed_size: int = 5 * 1024 * 1024
    max_concurrency: int = 8
    remote_timeout_seconds: float = 600.0
    replicate_poll_interval: float = 1.0
    structured_output: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MENU_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("replicate_api_token", "openrouter_api_key")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("target_upscale_size", "max_compressed_size", "max_concurrency")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("remote_timeout_seconds", "replicate_poll_interval")
    @classmethod
    def seconds_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0 seconds")
        return v

    @property
    def input_dir(self) -> Path:
        return self.project_dir / "input-menu"

    @property
    def cache_dir(self) -> Path:
        return self.project_dir / "tmp"

    @property
    def output_dir(self) -> Path:
        return self.project_dir / "output"

    @property
    def output_path(self) -> Path:
        return self.output_dir / "menu.json"
