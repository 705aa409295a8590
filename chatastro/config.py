from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings with validation.

    All sensitive values should be provided via environment variables.
    """

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    # CORS - comma-separated origins or * for development
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed origins, or * for all (dev only)"
    )

    # Geocoding (OpenCage)
    opencage_api_key: str = Field(default="", description="OpenCage geocoding API key")
    opencage_base_url: str = Field(
        default="https://api.opencagedata.com/geocode/v1/json",
        description="OpenCage geocoding endpoint",
    )

    # Divine astrology API
    divine_api_key: str = Field(default="", description="Divine API key")
    divine_auth_token: str = Field(default="", description="Divine API bearer token")
    divine_base_url: str = Field(
        default="https://astroapi-3.divineapi.com/indian-api/v1",
        description="Divine API base URL",
    )

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model")
    generation_temperature: float = Field(default=0.7, description="Sampling temperature")

    # Razorpay
    razorpay_key_id: str = Field(default="", description="Razorpay key id")
    razorpay_key_secret: str = Field(default="", description="Razorpay key secret (signs payments)")
    razorpay_webhook_secret: Optional[str] = Field(
        default=None, description="Razorpay webhook secret"
    )
    razorpay_base_url: str = Field(
        default="https://api.razorpay.com/v1",
        description="Razorpay REST base URL",
    )

    # Timeouts / retries for external collaborators
    api_timeout_seconds: float = Field(
        default=10.0, description="Timeout for every outbound provider call"
    )
    provider_max_retries: int = Field(
        default=0,
        description="Extra attempts on transport errors for geocoding and astrology data",
    )

    # Monetization
    free_question_limit: int = Field(default=10, description="Free questions before payment")
    charge_failed_generations: bool = Field(
        default=True,
        description="Count a free question even when the generation call fails",
    )

    # Conversation
    cache_expiry_seconds: int = Field(default=3600, description="Astrology data cache lifetime")
    session_message_limit: int = Field(default=10, description="Exchanges kept per session")
    session_context_lines: int = Field(default=20, description="Context lines kept per session")
    context_history_lines: int = Field(
        default=6, description="Context lines rendered into each prompt"
    )
    context_payload_char_limit: int = Field(
        default=6000, description="Serialized payload size above which only keys are rendered"
    )
    max_message_length: int = Field(default=1000, description="Longest accepted user message")

    # Date policy
    current_year_override: Optional[int] = Field(
        default=2025, description="Authoritative year given to the model; None uses the clock"
    )

    # Misc
    log_level: str = "INFO"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v.lower()

    @field_validator("free_question_limit", "session_message_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that required settings are properly configured in production."""
        if self.environment != "production":
            return self

        errors = []

        if self.cors_origins == "*":
            errors.append("CORS_ORIGINS must not be '*' in production")

        if not self.razorpay_key_id or not self.razorpay_key_secret:
            errors.append("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be set in production")

        if not self.razorpay_webhook_secret:
            errors.append("RAZORPAY_WEBHOOK_SECRET should be set for webhook signature verification")

        if errors:
            raise ValueError(
                "Production configuration errors:\n- " + "\n- ".join(errors)
            )

        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cache_expiry_ms(self) -> int:
        return self.cache_expiry_seconds * 1000

    def configured_providers(self) -> dict:
        """Which collaborators have credentials (never the values themselves)."""
        return {
            "opencage": bool(self.opencage_api_key),
            "divine": bool(self.divine_api_key and self.divine_auth_token),
            "openai": bool(self.openai_api_key),
            "razorpay": bool(self.razorpay_key_id and self.razorpay_key_secret),
            "razorpay_webhook": bool(self.razorpay_webhook_secret),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
