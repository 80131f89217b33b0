"""Route catalog and fare quote schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, model_validator


class Route(BaseModel):
    """A priced transit route. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    standard_price: Decimal
    peak_price: Decimal

    @model_validator(mode="after")
    def _check_price_tiers(self) -> "Route":
        if self.standard_price <= 0:
            raise ValueError(f"Route {self.id}: standard_price must be positive")
        if self.peak_price < self.standard_price:
            raise ValueError(f"Route {self.id}: peak_price must be >= standard_price")
        return self


class FareQuote(BaseModel):
    """The price owed for one payment attempt on a route."""

    model_config = ConfigDict(frozen=True)

    route: Route
    price: Decimal
    peak: bool = False
    computed_at: datetime

    @model_validator(mode="after")
    def _check_price_tier(self) -> "FareQuote":
        expected = self.route.peak_price if self.peak else self.route.standard_price
        if self.price != expected:
            raise ValueError(
                f"Quote for route {self.route.id}: price {self.price} is not the "
                f"{'peak' if self.peak else 'standard'} price {expected}"
            )
        return self


class FareContext(BaseModel):
    """Conditions a fare is resolved against."""

    model_config = ConfigDict(frozen=True)

    at: datetime
    peak: bool = False
