"""Central environment-driven settings shared by all services.

Each service process loads this once at startup. Service-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    redis_url: str = "redis://redis:6379/0"
    postgres_dsn: str
    api_key: str
    gateway_base_url: str = "https://api.razorpay.com"
    gateway_key_id: str = ""
    gateway_key_secret: str = ""
    gateway_webhook_secret: str = ""
    gateway_timeout_seconds: float = 10.0
    checkout_script_url: str = "https://checkout.razorpay.com/v1/checkout.js"
    merchant_name: str = "MahaYatri"
    checkout_theme_color: str = "#FF642C"
    unlock_api_url: str = "http://unlock-api:8000"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    rate_limit_per_minute: int = 10
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
