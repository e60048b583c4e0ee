"""Cart engine configuration"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class PricingConfig(BaseModel):
    """Pricing knobs consumed by the price calculator"""
    free_delivery_threshold: Decimal = Decimal("100")
    standard_delivery_charge: Decimal = Decimal("5")
    express_delivery_charge: Decimal = Decimal("15")
    vat_rate: Decimal = Decimal("0.05")
    default_currency: str = "AED"

    model_config = {"frozen": True}


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_prefix="GROCERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Business configuration (AED market)
    default_currency: str = "AED"
    vat_rate: Decimal = Decimal("0.05")
    free_delivery_threshold: Decimal = Decimal("100")
    max_cart_items: int = 50

    # Delivery configuration
    standard_delivery_charge: Decimal = Decimal("5")
    express_delivery_charge: Decimal = Decimal("15")

    # Whether clear() keeps an applied coupon until it is explicitly removed
    keep_coupon_on_clear: bool = False

    # Remote cart service
    remote_cart_base_url: str = "http://localhost:8001"
    remote_timeout_seconds: float = 30.0
    remote_auth_token: Optional[str] = None

    # Sync behaviour
    push_debounce_seconds: float = 0.5
    push_max_attempts: int = 4
    push_retry_base_delay: float = 0.5
    push_retry_max_delay: float = 8.0
    checkout_sync_max_age_seconds: int = 300

    log_level: str = "INFO"

    def pricing(self) -> PricingConfig:
        """Get the pricing subset of the settings"""
        return PricingConfig(
            free_delivery_threshold=self.free_delivery_threshold,
            standard_delivery_charge=self.standard_delivery_charge,
            express_delivery_charge=self.express_delivery_charge,
            vat_rate=self.vat_rate,
            default_currency=self.default_currency,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
