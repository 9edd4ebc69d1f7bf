"""
ORM models for the bargaining session store and its collaborators.

WHAT: SQLAlchemy tables for sessions, their message log, catalog products and cart lines
WHY: The session store is the single durable source of negotiation state
HOW: Declarative models with CHECK/UNIQUE constraints guarding the invariants
"""

import enum
from uuid import uuid4

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text,
    ForeignKey, CheckConstraint, UniqueConstraint, Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from .database import Base
from ..utils.time import utcnow


class SessionStatus(str, enum.Enum):
    """Bargaining session status values."""
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ParticipantRole(str, enum.Enum):
    """Role of a principal relative to one session."""
    BUYER = "buyer"
    SELLER = "seller"
    NONE = "none"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class BargainSession(Base):
    """
    One buyer-seller-product negotiation.

    WHAT: Participants, price reference, running price, status and expiry
    WHY: Aggregate root for the append-only message log
    HOW: Turn counters live on the row so limits are checked without scanning the log
    """
    __tablename__ = "bargain_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    product_id = Column(String(100), nullable=False)
    product_title = Column(String(200), nullable=False, default="")
    buyer_id = Column(String(100), nullable=False)
    seller_id = Column(String(100), nullable=False)
    initial_price = Column(Float, nullable=False)
    current_price = Column(Float, nullable=False)
    status = Column(
        SQLEnum(SessionStatus, values_callable=_enum_values, name="session_status"),
        nullable=False,
        default=SessionStatus.ACTIVE
    )
    buyer_turns = Column(Integer, nullable=False, default=0)
    seller_turns = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    messages = relationship(
        "BargainMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="BargainMessage.sequence"
    )

    __table_args__ = (
        CheckConstraint("initial_price > 0", name="check_initial_price_positive"),
        CheckConstraint("current_price > 0", name="check_current_price_positive"),
        CheckConstraint("buyer_turns >= 0 AND seller_turns >= 0", name="check_turns_non_negative"),
        CheckConstraint("buyer_id != seller_id", name="check_distinct_participants"),
        Index("idx_session_buyer_product_status", "buyer_id", "product_id", "status"),
        Index("idx_session_seller", "seller_id"),
        Index("idx_session_status_expiry", "status", "expires_at"),
    )

    def __repr__(self):
        return f"<BargainSession(id={self.id}, product={self.product_id}, status={self.status})>"


class BargainMessage(Base):
    """
    Message table - the append-only negotiation log.

    `sequence` is the 0-based position inside the session and is unique per
    session, so insertion order cannot be ambiguous.
    """
    __tablename__ = "bargain_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(36), ForeignKey("bargain_sessions.id", ondelete="CASCADE"), nullable=False
    )
    sequence = Column(Integer, nullable=False)
    sender = Column(
        SQLEnum(ParticipantRole, values_callable=_enum_values, name="message_sender"),
        nullable=False
    )
    text = Column(Text, nullable=False)
    is_offer = Column(Boolean, nullable=False, default=False)
    offer_amount = Column(Float, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    session = relationship("BargainSession", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="unique_session_sequence"),
        CheckConstraint("sender IN ('buyer', 'seller')", name="check_sender_participant"),
        CheckConstraint(
            "(is_offer = 1 AND offer_amount IS NOT NULL AND offer_amount > 0) OR "
            "(is_offer = 0 AND offer_amount IS NULL)",
            name="check_offer_amount_iff_offer"
        ),
        CheckConstraint("length(text) > 0", name="check_text_not_empty"),
    )

    def __repr__(self):
        return f"<BargainMessage(session={self.session_id}, seq={self.sequence}, sender={self.sender})>"


class CatalogProduct(Base):
    """
    Catalog product as seen by bargaining (read-only from this service).

    WHAT: Listing price, title, owning seller and bargaining flags
    WHY: Session creation captures the reference price from here
    HOW: Owned by the catalog; the session service only reads it
    """
    __tablename__ = "catalog_products"

    id = Column(String(100), primary_key=True)
    title = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    seller_id = Column(String(100), nullable=False)
    allow_bargaining = Column(Boolean, nullable=False, default=True)
    auto_bargain = Column(Boolean, nullable=False, default=False)  # scripted seller replies

    __table_args__ = (
        CheckConstraint("price > 0", name="check_catalog_price_positive"),
    )

    def __repr__(self):
        return f"<CatalogProduct(id={self.id}, title={self.title}, price={self.price})>"


class CartLine(Base):
    """Cart line committed from an accepted bargain (the order sink's inbox)."""
    __tablename__ = "cart_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_id = Column(String(100), nullable=False)
    product_id = Column(String(100), nullable=False)
    bargain_session_id = Column(
        String(36), ForeignKey("bargain_sessions.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    quantity = Column(Integer, nullable=False, default=1)
    bargained_price = Column(Float, nullable=False)
    added_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_cart_quantity_positive"),
        CheckConstraint("bargained_price > 0", name="check_bargained_price_positive"),
        Index("idx_cart_buyer", "buyer_id"),
    )

    def __repr__(self):
        return f"<CartLine(buyer={self.buyer_id}, product={self.product_id}, price=${self.bargained_price})>"
