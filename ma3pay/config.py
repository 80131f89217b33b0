"""Application settings loaded from environment variables."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class RouteConfig(BaseModel):
    """One priced route entry in the configured catalog."""

    id: str
    name: str
    standard_price: Decimal
    peak_price: Decimal


DEFAULT_ROUTES: list[RouteConfig] = [
    RouteConfig(id="R1", name="Town - Kapsoya", standard_price=Decimal("50"), peak_price=Decimal("70")),
    RouteConfig(id="R2", name="Town - Langas", standard_price=Decimal("60"), peak_price=Decimal("80")),
    RouteConfig(id="R3", name="Town - Moi University", standard_price=Decimal("80"), peak_price=Decimal("100")),
    RouteConfig(id="R4", name="Town - Huruma", standard_price=Decimal("50"), peak_price=Decimal("60")),
    RouteConfig(id="R5", name="Town - Kimumu", standard_price=Decimal("70"), peak_price=Decimal("90")),
    RouteConfig(id="R6", name="Town - Iten", standard_price=Decimal("150"), peak_price=Decimal("200")),
]


class Settings(BaseSettings):
    """Application configuration.

    Values are read from environment variables (or a `.env` file).
    ``ROUTES`` may be given as a JSON list of route objects.
    """

    # Wallet service
    wallet_api_url: str = "http://localhost:5000"
    wallet_api_token: str = ""
    wallet_http_timeout_seconds: float = 15.0

    # App
    app_name: str = "Ma3Pay Core"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"
    enable_scheduler: bool = True
    currency: str = "KES"

    # Scheduling
    timezone: str = "Africa/Nairobi"
    wallet_refresh_interval_seconds: int = 30

    # Top-up confirmation
    topup_poll_interval_seconds: float = 3.0
    topup_max_attempts: int = 10
    topup_confirmation_epsilon: Decimal = Decimal("0.01")

    # Reconciliation
    reconciliation_match_window_seconds: int = 600
    reconciliation_grace_seconds: int = 300

    # Fares
    peak_hours: str = "06:00-09:00,16:30-19:30"
    routes: list[RouteConfig] = DEFAULT_ROUTES

    @property
    def origins_list(self) -> list[str]:
        """Parse comma-separated ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
