from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IDENTITY_TOKEN_SECRET = "plantasy-dev-identity-secret-change-me"
DEFAULT_SUPER_ADMIN_API_KEY = "pl-super-admin-dev-key"
DEFAULT_EDITOR_API_KEY = "pl-editor-dev-key"
DEFAULT_SUPPORT_API_KEY = "pl-support-dev-key"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="PL_", extra="ignore")

    app_name: str = "Plantasy"
    env: str = "dev"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    database_url: str = "sqlite+pysqlite:///./plantasy.db"

    # Payment gateway: live | fake
    razorpay_mode: str = "live"
    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None
    razorpay_api_base_url: str = "https://api.razorpay.com"
    razorpay_script_url: str = "https://checkout.razorpay.com/v1/checkout.js"
    razorpay_probe_script: bool = True
    razorpay_timeout_seconds: int = 15
    checkout_display_name: str = "Plantasy"
    checkout_theme_color: str = "#BF6D40"
    currency: str = "INR"
    # In-memory checkout attempts: settled ones are dropped after the first TTL,
    # unsettled ones are expired as failed after the second.
    checkout_attempt_ttl_seconds: int = 900
    checkout_pending_ttl_seconds: int = 3600

    # Backend proxy in front of the gateway: http | inprocess
    payment_proxy_mode: str = "http"
    backend_api_base_url: str = "http://localhost:5000"

    delhivery_api_key: str | None = None
    delhivery_base_url: str = "https://ltl-clients-api-dev.delhivery.com"
    delhivery_use_mock: bool = True
    delhivery_flat_charge: Decimal = Decimal("50")
    delhivery_timeout_seconds: int = 10

    tax_rate: Decimal = Field(default=Decimal("0.05"), description="Applied to the cart subtotal")

    auth_enabled: bool = True
    identity_token_secret: str = DEFAULT_IDENTITY_TOKEN_SECRET
    identity_token_ttl_seconds: int = 3600
    super_admin_api_key: str = DEFAULT_SUPER_ADMIN_API_KEY
    editor_api_key: str = DEFAULT_EDITOR_API_KEY
    support_api_key: str = DEFAULT_SUPPORT_API_KEY

    # Invoice/receipt archive: minio | local
    object_store_backend: str = "minio"
    object_store_dir: Path = Path("/tmp/plantasy/objects")
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "plantasy"
    minio_secure: bool = False

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        insecure_items: list[str] = []
        if self.identity_token_secret == DEFAULT_IDENTITY_TOKEN_SECRET:
            insecure_items.append("PL_IDENTITY_TOKEN_SECRET")
        if self.super_admin_api_key == DEFAULT_SUPER_ADMIN_API_KEY:
            insecure_items.append("PL_SUPER_ADMIN_API_KEY")
        if self.editor_api_key == DEFAULT_EDITOR_API_KEY:
            insecure_items.append("PL_EDITOR_API_KEY")
        if self.support_api_key == DEFAULT_SUPPORT_API_KEY:
            insecure_items.append("PL_SUPPORT_API_KEY")

        if insecure_items:
            raise ValueError(
                "insecure default secrets are not allowed outside dev mode; set env vars: "
                + ", ".join(sorted(insecure_items))
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
