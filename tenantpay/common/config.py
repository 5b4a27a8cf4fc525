"""Central environment-driven settings for the tracker service and scripts.

Loaded once per process. Values come from environment variables or a local
`.env` file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-tracker"
    log_level: str = "INFO"
    portal_api_url: str = "http://localhost:3000/api/tenant"
    portal_api_token: str = ""
    http_timeout_seconds: float = 10.0
    otel_exporter_otlp_endpoint: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
