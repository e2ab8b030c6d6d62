from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from repo root if present
ENV_PATH = Path(__file__).resolve().parents[3] / ".env"
if ENV_PATH.exists():
    load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    """Storefront cart client settings (loaded from env).

    Storage:
      - "cart_store_backend" picks where the cart snapshot lives (file|redis|memory).
      - "cart_storage_key" is the single named record holding the item array.

    Sync:
      - "remote_sync_enabled" toggles pull/push against the storefront API.
      - "startup_pull_wait_seconds" is how long start() waits for the remote cart
        before the first render; later results are discarded.
    """

    # --- service ---
    service_name: str = Field(default="storefront-cart", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")
    environment: str = Field(default="dev", description="Environment name (dev/staging/prod)")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="text|json")

    # --- Storefront API (remote cart + product feed) ---
    api_base_url: str = Field(default="http://localhost:8000", description="Storefront API base URL")
    remote_sync_enabled: bool = Field(default=True, description="Pull/push the cart to the storefront API")
    remote_timeout_seconds: float = Field(default=5.0, gt=0, description="Per-request HTTP timeout")
    remote_pull_attempts: int = Field(default=2, ge=1, description="Attempts for the startup pull")
    startup_pull_wait_seconds: float = Field(
        default=2.0, ge=0, description="How long start() waits for the remote cart"
    )

    # --- Local cart storage ---
    cart_store_backend: str = Field(default="file", description="file|redis|memory")
    cart_storage_key: str = Field(default="cart-storage", description="Named record for the cart snapshot")
    cart_store_dir: Path = Field(default=Path("workspace/.storefront"), description="Directory for the file backend")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    redis_key_prefix: str = Field(default="storefront:", description="Prefix for redis keys")
    cart_ttl_seconds: int = Field(default=0, ge=0, description="Redis TTL for the snapshot (0 = no expiry)")

    # --- Pricing display ---
    currency: str = Field(default="USD", description="Display currency code")
    shipping_flat_fee: Decimal = Field(default=Decimal("5.00"), ge=0, description="Flat shipping for non-empty carts")
    tax_rate: Decimal = Field(default=Decimal("0.08"), ge=0, le=1, description="Estimated tax rate")

    # --- Reference API ---
    products_page_size: int = Field(default=6, ge=1, description="Products per page served by /api/products")
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    # pydantic-settings v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def effective_store_backend(self) -> str:
        """Normalized backend name; unknown values fall back to the file store."""
        backend = (self.cart_store_backend or "").strip().lower()
        return backend if backend in {"file", "redis", "memory"} else "file"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
