from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global settings for the Labo billing API.
    Values are read from the environment and from the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "Labo Billing API"
    api_v1_str: str = "/api/v1"
    debug: bool = False

    # Security / JWT
    secret_key: str = "changeme"
    access_token_expire_minutes: int = 60
    refresh_token_expire_minutes: int = 10080
    algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./dev.db"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Public app (browser redirects after payment)
    public_app_url: str = "http://localhost:3000"
    subscription_page_path: str = "/factory/subscription"

    # VNPay gateway
    vnpay_tmn_code: str = "LABO0001"
    vnpay_hash_secret: str = "changeme"
    vnpay_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    vnpay_return_url: str = "http://localhost:8000/api/v1/billing/vnpay-return"
    vnpay_version: str = "2.1.0"
    vnpay_locale: str = "vn"
    vnpay_currency: str = "VND"
    vnpay_order_type: str = "subscription"
    vnpay_utc_offset_hours: int = 7

    # Billing
    billing_max_amount: int = 100_000_000
    billing_trial_days: int = 30
    checkout_rate_limit: str = "5/minute"
    rate_limit_storage_uri: str = "memory://"

    # Bank transfer (manual reconciliation)
    bank_bin: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_no: Optional[str] = None
    bank_account_holder: Optional[str] = None
    bank_transfer_note_prefix: str = "LABO"
    vietqr_image_base_url: str = "https://img.vietqr.io/image"

    def subscription_redirect_base(self) -> str:
        """Absolute URL of the factory subscription page used after payment."""
        base = (self.public_app_url or "").strip().rstrip("/")
        path = "/" + (self.subscription_page_path or "").strip().lstrip("/")
        return f"{base}{path}"


@lru_cache
def get_settings() -> Settings:
    """Return the cached global settings instance."""
    return Settings()


settings = get_settings()
