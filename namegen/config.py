"""
Service configuration read from the environment (and `.env`).

Names follow the deployment's existing variables, including the
`NEXT_PUBLIC_SUPABASE_*` pair shared with the web frontend. Missing
credentials stop a production process at import; anywhere else they are
listed on `settings.config_errors` and logged at startup.
"""

import re
import sys
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Production settings are incomplete; the message lists every problem."""


def _is_valid_url(value: str) -> bool:
    """Check that a value parses as an absolute URL with scheme and host."""
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Runtime environment (development, test, production)
    environment: str = "development"

    # Database Configuration
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Chinese Name Generator API"
    api_version: str = "0.1.0"
    api_description: str = "Credit-gated certificate export and checkout for the name generator"

    # Supabase (identity provider + hosted Postgres)
    supabase_url: str = Field(
        "", validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    )
    supabase_anon_key: str = Field(
        "", validation_alias=AliasChoices("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")
    )
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    # LLM provider (OpenRouter preferred, OpenAI accepted)
    openrouter_api_key: str = ""
    openai_api_key: str = ""
    openai_base_url: str = "https://openrouter.ai/api/v1"

    # Payment Provider - Creem
    creem_api_key: str = ""
    creem_webhook_secret: str = ""
    creem_api_url: str = ""

    # Public site URL (checkout success redirects)
    base_url: str = "http://localhost:3000"

    # Optional Creem product IDs (catalog defaults are used when empty)
    creem_starter_product_id: str = ""
    creem_business_product_id: str = ""
    creem_enterprise_product_id: str = ""
    creem_basic_credits_id: str = ""
    creem_standard_credits_id: str = ""
    creem_premium_credits_id: str = ""

    # Timeouts for external side effects
    pdf_render_timeout_seconds: float = 30.0
    checkout_timeout_seconds: float = 15.0

    # Cache
    cache_sweep_interval_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    tracing_sample_ratio: float = Field(1.0, ge=0.0, le=1.0)
    service_name: str = "namegen-api"

    # Problems found by validate_critical_config (non-production only)
    config_errors: list[str] = []

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_production(self) -> bool:
        """True when running with production semantics."""
        return self.environment.lower() == "production"

    @property
    def llm_api_key(self) -> str:
        """OpenRouter key if present, otherwise the OpenAI key."""
        return self.openrouter_api_key or self.openai_api_key

    @property
    def creem_configured(self) -> bool:
        """Both Creem credentials needed for checkout are present."""
        return bool(self.creem_api_key and self.creem_api_url)

    @model_validator(mode="after")
    def normalize_base_url(self) -> "Settings":
        """Accept BASE_URL with or without a scheme."""
        if self.base_url and not re.match(r"^https?://", self.base_url, re.IGNORECASE):
            self.base_url = f"http://{self.base_url}"
        return self

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        Collect missing credentials and malformed URLs.

        Production raises ConfigurationError. Elsewhere the problems are kept on ``config_errors`` so local
        development and tests can run with partial configuration.
        """
        errors: list[str] = []

        required = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_ANON_KEY": self.supabase_anon_key,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_service_role_key,
            "SUPABASE_JWT_SECRET": self.supabase_jwt_secret,
            "CREEM_API_KEY": self.creem_api_key,
            "CREEM_WEBHOOK_SECRET": self.creem_webhook_secret,
            "CREEM_API_URL": self.creem_api_url,
        }
        for name, value in required.items():
            if not value:
                errors.append(f"{name} is required but empty or missing")

        if not self.llm_api_key:
            errors.append("OPENROUTER_API_KEY or OPENAI_API_KEY is required")

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        for name, value in (
            ("SUPABASE_URL", self.supabase_url),
            ("CREEM_API_URL", self.creem_api_url),
            ("BASE_URL", self.base_url),
        ):
            if value and not _is_valid_url(value):
                errors.append(f"Invalid URL for {name}: {value}")

        self.config_errors = errors

        if errors and self.is_production:
            report = "namegen-api refusing to start in production:\n" + "\n".join(
                f"  - {problem}" for problem in errors
            )
            print(report, file=sys.stderr)
            raise ConfigurationError(report)

        return self


settings = Settings()
