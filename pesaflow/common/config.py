"""Central environment-driven settings for the checkout service.

The process loads this once at startup and turns it into an explicit
`GatewayConfig` that is handed to service constructors (see `.env.example`).
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


GatewayEnvironment = Literal["sandbox", "production"]
DeliveryMode = Literal["GET", "POST"]

GATEWAY_BASE_URLS: dict[str, str] = {
    "sandbox": "https://cybqa.pesapal.com/pesapalv3",
    "production": "https://pay.pesapal.com/v3",
}


class Credential(BaseModel):
    """Consumer key/secret pair used to mint access tokens."""

    model_config = ConfigDict(frozen=True)

    consumer_key: str
    consumer_secret: str = Field(repr=False)


class GatewayConfig(BaseModel):
    """Immutable runtime configuration passed to gateway-facing services."""

    model_config = ConfigDict(frozen=True)

    environment: GatewayEnvironment = "sandbox"
    credential: Credential
    callback_url: str
    notification_url: str
    notification_type: DeliveryMode = "GET"
    receipt_base_url: str = "http://localhost:3000/receipt"
    merchant_reference_prefix: str = "KLB"
    default_currency: str = "KES"
    default_language: str = "EN"
    default_country_code: str = "KE"
    default_city: str = "Nairobi"
    default_description: str = "Donation for KalumaBoy Initiative"
    timeout_seconds: float = 30.0
    max_retries: int = 2
    backoff_seconds: float = 0.5

    @property
    def base_url(self) -> str:
        return GATEWAY_BASE_URLS[self.environment]


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pesaflow"
    log_level: str = "INFO"
    pesapal_env: GatewayEnvironment = "sandbox"
    pesapal_consumer_key: str = ""
    pesapal_consumer_secret: str = ""
    # Operator-registered IPN id; skips the lookup when set.
    pesapal_ipn_id: str = ""
    pesapal_ipn_notification_type: DeliveryMode = "GET"
    app_url: str = "http://localhost:8000"
    receipt_base_url: str = "http://localhost:3000/receipt"
    merchant_reference_prefix: str = "KLB"
    default_currency: str = "KES"
    default_language: str = "EN"
    default_country_code: str = "KE"
    default_city: str = "Nairobi"
    default_description: str = "Donation for KalumaBoy Initiative"
    gateway_timeout_seconds: float = 30.0
    gateway_max_retries: int = 2
    gateway_backoff_seconds: float = 0.5
    database_url: str = "sqlite:///./pesaflow.db"
    redis_url: str | None = None
    record_store_backend: Literal["sql", "http"] = "sql"
    record_store_save_url: str = ""
    record_store_receipt_url: str = ""
    allowed_origins: list[str] = ["http://localhost:3000"]
    startup_config_keys: list[str] = [
        "PESAPAL_ENV",
        "PESAPAL_CONSUMER_KEY",
        "PESAPAL_CONSUMER_SECRET",
        "PESAPAL_IPN_ID",
        "APP_URL",
        "RECEIPT_BASE_URL",
        "RECORD_STORE_BACKEND",
        "DATABASE_URL",
        "REDIS_URL",
    ]
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def gateway_config(self) -> GatewayConfig:
        """Build the explicit config struct consumed by the services."""

        app_url = self.app_url.rstrip("/")
        return GatewayConfig(
            environment=self.pesapal_env,
            credential=Credential(
                consumer_key=self.pesapal_consumer_key,
                consumer_secret=self.pesapal_consumer_secret,
            ),
            callback_url=f"{app_url}/api/pesapal/verify-payment",
            notification_url=f"{app_url}/api/pesapal/ipn",
            notification_type=self.pesapal_ipn_notification_type,
            receipt_base_url=self.receipt_base_url,
            merchant_reference_prefix=self.merchant_reference_prefix,
            default_currency=self.default_currency,
            default_language=self.default_language,
            default_country_code=self.default_country_code,
            default_city=self.default_city,
            default_description=self.default_description,
            timeout_seconds=self.gateway_timeout_seconds,
            max_retries=self.gateway_max_retries,
            backoff_seconds=self.gateway_backoff_seconds,
        )


settings = CommonSettings()
