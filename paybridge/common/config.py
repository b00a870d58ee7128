"""Central environment-driven settings for the checkout bridge.

The process loads this once at startup. Gateway credentials and endpoints are
controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "paybridge"
    log_level: str = "INFO"
    database_url: str = "sqlite:///./paybridge.db"
    phonepe_client_id: str = ""
    phonepe_client_secret: str = ""
    phonepe_client_version: str = "1"
    phonepe_base_url: str = "https://api.phonepe.com/apis/pg"
    phonepe_identity_url: str = "https://api.phonepe.com/apis/identity-manager"
    http_timeout_seconds: float = 10.0
    token_safety_margin_seconds: int = 300
    token_max_retries: int = 3
    token_retry_base_delay_seconds: float = 1.0
    enforce_monotonic_status: bool = True
    auto_create_schema: bool = True
    otel_exporter_otlp_endpoint: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
