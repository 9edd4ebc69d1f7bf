"""
Session store queries.

WHAT: Read/write helpers over bargain_sessions and bargain_messages
WHY: Keep SQL in one place; the session service is its only writer
HOW: Plain functions taking an open SQLAlchemy session (unit of work owned by the caller)
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession, selectinload

from .models import BargainSession, BargainMessage, SessionStatus, ParticipantRole


def get_session(db: DBSession, session_id: str, with_messages: bool = True) -> Optional[BargainSession]:
    """Load a session by id, optionally eager-loading its message log."""
    stmt = select(BargainSession).where(BargainSession.id == session_id)
    if with_messages:
        stmt = stmt.options(selectinload(BargainSession.messages))
    return db.execute(stmt).scalar_one_or_none()


def find_active_session(db: DBSession, buyer_id: str, product_id: str) -> Optional[BargainSession]:
    """Most recent active session for a (buyer, product) pair."""
    stmt = (
        select(BargainSession)
        .options(selectinload(BargainSession.messages))
        .where(
            BargainSession.buyer_id == buyer_id,
            BargainSession.product_id == product_id,
            BargainSession.status == SessionStatus.ACTIVE,
        )
        .order_by(BargainSession.created_at.desc())
    )
    return db.execute(stmt).scalars().first()


def list_sessions_for_buyer(db: DBSession, buyer_id: str) -> List[BargainSession]:
    stmt = (
        select(BargainSession)
        .where(BargainSession.buyer_id == buyer_id)
        .order_by(BargainSession.updated_at.desc())
    )
    return list(db.execute(stmt).scalars())


def list_sessions_for_seller(db: DBSession, seller_id: str) -> List[BargainSession]:
    stmt = (
        select(BargainSession)
        .where(BargainSession.seller_id == seller_id)
        .order_by(BargainSession.updated_at.desc())
    )
    return list(db.execute(stmt).scalars())


def add_session(db: DBSession, session: BargainSession) -> BargainSession:
    db.add(session)
    db.flush()
    return session


def append_message(
    db: DBSession,
    session: BargainSession,
    sender: ParticipantRole,
    text: str,
    is_offer: bool,
    offer_amount: Optional[float],
    timestamp: datetime
) -> BargainMessage:
    """
    Append one message and apply its effects to the session row.

    The caller has already validated the message; this only writes. The turn
    counter for the sender and, for offers, current_price are updated in the
    same flush as the message row.
    """
    message = BargainMessage(
        session_id=session.id,
        sequence=len(session.messages),
        sender=sender,
        text=text,
        is_offer=is_offer,
        offer_amount=offer_amount if is_offer else None,
        timestamp=timestamp
    )
    session.messages.append(message)

    if sender == ParticipantRole.BUYER:
        session.buyer_turns += 1
    else:
        session.seller_turns += 1
    if is_offer:
        session.current_price = offer_amount
    session.updated_at = timestamp

    db.flush()
    return message


def set_status(db: DBSession, session: BargainSession, status: SessionStatus, timestamp: datetime):
    session.status = status
    session.updated_at = timestamp
    db.flush()


def find_overdue_session_ids(db: DBSession, now: datetime) -> List[str]:
    """IDs of sessions still marked active whose expires_at has passed."""
    stmt = (
        select(BargainSession.id)
        .where(
            BargainSession.status == SessionStatus.ACTIVE,
            BargainSession.expires_at <= now,
        )
        .order_by(BargainSession.expires_at)
    )
    return list(db.execute(stmt).scalars())
