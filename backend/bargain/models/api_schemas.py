"""
Pydantic schemas for bargaining.

WHAT: Request payloads and the read views returned by the session service
WHY: HTTP responses and realtime event payloads share one serialization
HOW: Pydantic v2 models; views are built from ORM rows inside the unit of work
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


SessionStatusValue = Literal["active", "accepted", "rejected", "expired"]
SenderValue = Literal["buyer", "seller"]


# ========== Requests ==========

class CreateSessionRequest(BaseModel):
    """Open (or resume) a bargaining session for a product."""
    product_id: str = Field(..., min_length=1, max_length=100, description="Catalog product ID")
    initial_offer: Optional[float] = Field(default=None, gt=0, description="Optional opening offer")


class AppendMessageRequest(BaseModel):
    """Chat message, optionally carrying a price offer."""
    text: str = Field(..., max_length=2000, description="Message content")
    is_offer: bool = Field(default=False, description="Whether the message proposes a price")
    offer_amount: Optional[float] = Field(default=None, description="Proposed price when is_offer")

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message text is required")
        return v.strip()

    @model_validator(mode="after")
    def offer_amount_iff_offer(self):
        """offer_amount must accompany is_offer and only is_offer."""
        if self.is_offer and self.offer_amount is None:
            raise ValueError("offer_amount is required when is_offer is true")
        if not self.is_offer and self.offer_amount is not None:
            raise ValueError("offer_amount is only allowed when is_offer is true")
        return self


class UpdateStatusRequest(BaseModel):
    """Seller decision on a session."""
    status: Literal["accepted", "rejected"] = Field(..., description="Terminal status to apply")


# ========== Views ==========

class MessageView(BaseModel):
    """One entry of a session's message log."""
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    sequence: int
    sender: SenderValue
    text: str
    is_offer: bool
    offer_amount: Optional[float] = None
    timestamp: datetime


class SessionSummary(BaseModel):
    """Session header without the message log (list endpoints)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    product_title: str
    buyer_id: str
    seller_id: str
    initial_price: float
    current_price: float
    status: SessionStatusValue
    buyer_turns: int
    seller_turns: int
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class SessionView(SessionSummary):
    """Full session including the chronological message log and the price window."""
    floor_price: float
    max_turns_per_participant: int
    messages: List[MessageView] = Field(default_factory=list)


class StatusUpdatedEvent(BaseModel):
    """Payload of the `status_updated` realtime event."""
    session_id: str
    status: SessionStatusValue
    current_price: float
    updated_at: datetime


class CartLineView(BaseModel):
    """Line handed to the cart/order sink for an accepted bargain."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    buyer_id: str
    product_id: str
    bargain_session_id: str
    quantity: int
    bargained_price: float
    added_at: datetime
