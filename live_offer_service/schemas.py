from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

# ===============================
# Live Offer Schemas
# ===============================

class OfferStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"

class PerksType(str, Enum):
    NONE = "none"
    SIGNED = "signed"
    LIMITED_DESIGN = "limited_design"

class WorkSummary(BaseModel):
    title: Optional[str] = None
    price: Optional[int] = None

class LiveOffer(BaseModel):
    id: str
    work_id: str
    creator_id: Optional[str] = None
    live_event_id: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    status: OfferStatus = OfferStatus.PUBLISHED
    price_override: Optional[int] = None
    currency: str = "jpy"
    stock_total: int = Field(0, ge=0)
    stock_reserved: int = Field(0, ge=0)
    stock_sold: int = Field(0, ge=0)
    per_user_limit: Optional[int] = None
    perks_type: PerksType = PerksType.NONE
    perks: Dict[str, Any] = Field(default_factory=dict)
    image_preview_path: Optional[str] = None
    variant_preview_path: Optional[str] = None
    works: Optional[WorkSummary] = None

    class Config:
        extra = "ignore"

    @field_validator("stock_total", "stock_reserved", "stock_sold", mode="before")
    @classmethod
    def null_stock_is_zero(cls, value):
        return 0 if value is None else value

    @field_validator("perks", mode="before")
    @classmethod
    def null_perks_is_empty(cls, value):
        return {} if value is None else value

    @computed_field
    @property
    def available(self) -> int:
        return max(0, self.stock_total - self.stock_reserved - self.stock_sold)

    @computed_field
    @property
    def price(self) -> int:
        if self.price_override is not None:
            return self.price_override
        if self.works and self.works.price:
            return self.works.price
        return 0

class StockChange(BaseModel):
    """Realtime row notification for the live_offers table."""
    event: str
    table: str
    new: Dict[str, Any]

# ===============================
# Checkout Schemas
# ===============================

class ReservationOutcome(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    EXPIRED = "expired"

class ReservationAttempt(BaseModel):
    offer_id: str
    requested_at: datetime
    outcome: ReservationOutcome = ReservationOutcome.PENDING

class CheckoutIntent(BaseModel):
    client_secret: str

class CheckoutStatus(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"

class CheckoutOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DENIED = "denied"

class CheckoutState(BaseModel):
    state: CheckoutStatus
    outcome: Optional[CheckoutOutcome] = None
    offer_id: Optional[str] = None
    work_id: Optional[str] = None
    client_secret: Optional[str] = None
    error: Optional[str] = None

class PaymentFailure(BaseModel):
    message: Optional[str] = None
