"""
Application configuration using pydantic-settings.
Every knob the normalization pipeline reads lives here so vocabularies and
ranges can change per deployment without code edits.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CALLNORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Call source classification
    internal_caller_sentinel: str = "internal"
    internet_call_types: tuple[str, ...] = ("web", "widget", "internet")
    default_phone_region: str = "US"
    min_phone_digits: int = 7

    # Analysis block lookup, checked in this order after "default"
    analysis_collection_names: tuple[str, ...] = ("default", "Basic CTA")

    # Lead scoring vocabulary (provider rubric: 1-3 points per category)
    lead_status_tags: tuple[str, ...] = (
        "Hot", "Warm", "Cold",
        "Hot Lead", "Warm Lead", "Cold Lead",
    )
    total_score_range: tuple[int, int] = (0, 100)
    component_score_range: tuple[int, int] = (0, 3)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
