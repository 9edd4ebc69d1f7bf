"""
Bargaining session service.

WHAT: Create sessions, append messages/offers, apply seller decisions, hand off accepted prices
WHY: Sole writer of the session store; every rule of the protocol is enforced here
HOW: One unit of work per operation under a per-session lock, views returned to callers
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from ..core import session_store
from ..core.config import settings
from ..core.database import get_db
from ..core.locks import KeyedLocks
from ..core.models import BargainSession, BargainMessage, SessionStatus, ParticipantRole
from ..core.security import Principal
from ..models.api_schemas import (
    CartLineView,
    MessageView,
    SessionSummary,
    SessionView,
    StatusUpdatedEvent,
)
from ..utils.exceptions import (
    ForbiddenException,
    InvalidOfferException,
    InvalidStateException,
    ProductNotFoundException,
    SessionNotFoundException,
    TurnLimitExceededException,
    ValidationException,
)
from ..utils.logger import get_logger
from ..utils.time import utcnow
from .catalog import Catalog, SqlCatalog
from .order_sink import OrderSink, SqlCartSink
from .price_policy import display_floor, is_valid_offer
from .transcript_log import save_transcript

logger = get_logger(__name__)

# Status state machine. Terminal states have no outgoing transitions.
TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.ACCEPTED, SessionStatus.REJECTED, SessionStatus.EXPIRED}),
    SessionStatus.ACCEPTED: frozenset(),
    SessionStatus.REJECTED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}

# Statuses a seller may set explicitly; expiry is time-triggered only
SELLER_DECISIONS = {"accepted": SessionStatus.ACCEPTED, "rejected": SessionStatus.REJECTED}

GREETING_TEXT = "Hi! I'm interested in this product. Is the price negotiable?"


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return SessionStatus(target) in TRANSITIONS[SessionStatus(current)]


def resolve_participant_role(session: BargainSession, principal_id: str) -> ParticipantRole:
    """
    Typed role of a principal within one session.

    Resolved once per operation from the session's participant fields.
    """
    if principal_id == session.buyer_id:
        return ParticipantRole.BUYER
    if principal_id == session.seller_id:
        return ParticipantRole.SELLER
    return ParticipantRole.NONE


def message_view(message: BargainMessage) -> MessageView:
    return MessageView(
        session_id=message.session_id,
        sequence=message.sequence,
        sender=_value(message.sender),
        text=message.text,
        is_offer=message.is_offer,
        offer_amount=message.offer_amount,
        timestamp=message.timestamp,
    )


def _summary_fields(session: BargainSession) -> dict:
    return dict(
        id=session.id,
        product_id=session.product_id,
        product_title=session.product_title,
        buyer_id=session.buyer_id,
        seller_id=session.seller_id,
        initial_price=session.initial_price,
        current_price=session.current_price,
        status=_value(session.status),
        buyer_turns=session.buyer_turns,
        seller_turns=session.seller_turns,
        created_at=session.created_at,
        updated_at=session.updated_at,
        expires_at=session.expires_at,
    )


class SessionService:
    """
    Orchestrates the bargaining protocol.

    WHAT: createSession / getSession / list / appendMessage / updateStatus / commitToCart
    WHY: Keep authorization, turn limits, price policy and status rules in one writer
    HOW: Per-session KeyedLocks around a get_db() unit of work; lazy expiry on every read
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        order_sink: Optional[OrderSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog or SqlCatalog()
        self.order_sink = order_sink or SqlCartSink()
        self.clock = clock
        self._session_locks = KeyedLocks()
        self._create_locks = KeyedLocks()

    # Limits are read on each call so configuration changes apply without a restart
    @property
    def max_turns(self) -> int:
        return settings.MAX_TURNS_PER_PARTICIPANT

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=settings.SESSION_TTL_HOURS)

    # ---------- views ----------

    def _session_view(self, session: BargainSession) -> SessionView:
        return SessionView(
            **_summary_fields(session),
            floor_price=display_floor(session.initial_price),
            max_turns_per_participant=self.max_turns,
            messages=[message_view(m) for m in session.messages],
        )

    # ---------- expiry ----------

    def _apply_expiry(self, session: BargainSession, now: datetime) -> bool:
        """
        Read-time expiry check.

        Returns:
            True if this call moved the session from active to expired
        """
        if _value(session.status) == SessionStatus.ACTIVE.value and now >= session.expires_at:
            session.status = SessionStatus.EXPIRED
            session.updated_at = now
            logger.info(f"Session {session.id} expired (expires_at={session.expires_at.isoformat()})")
            return True
        return False

    def _reject_expired(self, db, session: BargainSession):
        """
        Commit an expiry found by a mutation, then refuse the mutation.

        The raised error carries the status event so the caller can announce
        the transition to the session's room.
        """
        db.commit()
        view = self._session_view(session)
        save_transcript(view)
        raise InvalidStateException(session.id, view.status, expiry=status_event(view))

    # ---------- operations ----------

    def create_session(
        self,
        principal: Principal,
        product_id: str,
        initial_offer: Optional[float] = None
    ) -> Tuple[SessionView, bool]:
        view, created, _ = self.open_session(principal, product_id, initial_offer)
        return view, created

    def open_session(
        self,
        principal: Principal,
        product_id: str,
        initial_offer: Optional[float] = None
    ) -> Tuple[SessionView, bool, Optional[StatusUpdatedEvent]]:
        """
        Open a bargaining session, or return the buyer's active one for the product.

        WHAT: Idempotent per (buyer, product) while a session is active
        WHY: A buyer re-opening the chat must resume, not fork, the negotiation
        HOW: Catalog lookup, then find-or-create under a (buyer, product) lock

        Args:
            principal: Caller; must hold a buyer account
            product_id: Catalog product to bargain over
            initial_offer: Optional opening offer, seeded only if valid

        Returns:
            (session view, created flag, status event of a previous session this
            call found overdue and expired, or None)

        Raises:
            ProductNotFoundException: product is not in the catalog
            ForbiddenException: caller is not a buyer, owns the product, or bargaining is disabled
        """
        if principal.role != "buyer":
            raise ForbiddenException("Only buyers can open a bargaining session")

        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundException(product_id)
        if product.seller_id == principal.id:
            raise ForbiddenException("You cannot bargain on your own product")
        if not product.allow_bargaining:
            raise ForbiddenException(
                "This product does not allow bargaining", details={"product_id": product_id}
            )

        expired_view = None
        with self._create_locks.hold(f"{principal.id}:{product_id}"):
            with get_db() as db:
                now = self.clock()
                existing = session_store.find_active_session(db, principal.id, product_id)
                if existing is not None and self._apply_expiry(existing, now):
                    db.flush()
                    expired_view = self._session_view(existing)
                    existing = None

                if existing is not None:
                    logger.info(f"Existing bargaining session {existing.id} returned for buyer {principal.id}")
                    return self._session_view(existing), False, None

                session = session_store.add_session(db, BargainSession(
                    product_id=product.product_id,
                    product_title=product.title,
                    buyer_id=principal.id,
                    seller_id=product.seller_id,
                    initial_price=product.price,
                    current_price=product.price,
                    status=SessionStatus.ACTIVE,
                    buyer_turns=0,
                    seller_turns=0,
                    created_at=now,
                    updated_at=now,
                    expires_at=now + self.ttl,
                ))

                if initial_offer is not None and is_valid_offer(initial_offer, product.price):
                    session_store.append_message(
                        db, session, ParticipantRole.BUYER,
                        text=f"I'd like to offer ${initial_offer:.2f} for this product.",
                        is_offer=True, offer_amount=initial_offer, timestamp=now
                    )
                else:
                    if initial_offer is not None:
                        logger.warning(
                            f"Opening offer ${initial_offer:.2f} for product {product_id} outside "
                            f"[{display_floor(product.price):.2f}, {product.price:.2f}); seeding greeting"
                        )
                    session_store.append_message(
                        db, session, ParticipantRole.BUYER,
                        text=GREETING_TEXT, is_offer=False, offer_amount=None, timestamp=now
                    )

                view = self._session_view(session)

        if expired_view is not None:
            save_transcript(expired_view)
        logger.info(
            f"Created bargaining session {view.id} for product {product_id} "
            f"(buyer={principal.id}, seller={view.seller_id}, price=${view.initial_price:.2f})"
        )
        return view, True, status_event(expired_view) if expired_view is not None else None

    def get_session(self, session_id: str, principal: Principal) -> SessionView:
        """
        Fetch a session with its messages in chronological order.

        Raises:
            SessionNotFoundException, ForbiddenException
        """
        view, _ = self.read_session(session_id, principal)
        return view

    def read_session(
        self,
        session_id: str,
        principal: Principal
    ) -> Tuple[SessionView, Optional[StatusUpdatedEvent]]:
        """get_session, plus the status event when this read expired the session."""
        expired = False
        with self._session_locks.hold(session_id):
            with get_db() as db:
                session = session_store.get_session(db, session_id)
                if session is None:
                    raise SessionNotFoundException(session_id)
                if resolve_participant_role(session, principal.id) == ParticipantRole.NONE:
                    raise ForbiddenException("Not authorized to access this bargaining session")
                expired = self._apply_expiry(session, self.clock())
                view = self._session_view(session)

        if expired:
            save_transcript(view)
        return view, status_event(view) if expired else None

    def peek_session(self, session_id: str) -> SessionView:
        """Unauthorized read for trusted in-process collaborators (scripted seller)."""
        with get_db() as db:
            session = session_store.get_session(db, session_id)
            if session is None:
                raise SessionNotFoundException(session_id)
            return self._session_view(session)

    def _list(self, rows: List[BargainSession]) -> List[SessionSummary]:
        now = self.clock()
        summaries = []
        for row in rows:
            # Listing must not show an overdue session as active
            if _value(row.status) == SessionStatus.ACTIVE.value and now >= row.expires_at:
                fields = _summary_fields(row)
                fields["status"] = SessionStatus.EXPIRED.value
                summaries.append(SessionSummary(**fields))
            else:
                summaries.append(SessionSummary(**_summary_fields(row)))
        return summaries

    def list_for_buyer(self, buyer_id: str) -> List[SessionSummary]:
        """All sessions where the principal is the buyer, most recently updated first."""
        with get_db() as db:
            return self._list(session_store.list_sessions_for_buyer(db, buyer_id))

    def list_for_seller(self, seller_id: str) -> List[SessionSummary]:
        """All sessions where the principal is the seller, most recently updated first."""
        with get_db() as db:
            return self._list(session_store.list_sessions_for_seller(db, seller_id))

    def append_message(
        self,
        session_id: str,
        principal: Principal,
        text: Optional[str],
        is_offer: bool = False,
        offer_amount: Optional[float] = None
    ) -> MessageView:
        """
        Append a chat message or offer to a session.

        Checks run in a fixed order: not found, forbidden, invalid state,
        turn limit, invalid offer. The offer window is always anchored to the
        session's initial price, never to the running current price.

        Args:
            session_id: Session to append to
            principal: Author; must be the session's buyer or seller
            text: Non-empty message content
            is_offer: Whether the message proposes a price
            offer_amount: Proposed price, required iff is_offer

        Returns:
            The appended message

        Raises:
            ValidationException, SessionNotFoundException, ForbiddenException,
            InvalidStateException, TurnLimitExceededException, InvalidOfferException
        """
        text = (text or "").strip()
        if not text:
            raise ValidationException(
                "Message text is required", [{"field": "text", "error": "must not be empty"}]
            )
        if is_offer and offer_amount is None:
            raise ValidationException(
                "offer_amount is required when is_offer is true",
                [{"field": "offer_amount", "error": "required for offers"}]
            )
        if not is_offer and offer_amount is not None:
            raise ValidationException(
                "offer_amount is only allowed on offers",
                [{"field": "offer_amount", "error": "must be omitted when is_offer is false"}]
            )

        with self._session_locks.hold(session_id):
            with get_db() as db:
                session = session_store.get_session(db, session_id)
                if session is None:
                    raise SessionNotFoundException(session_id)

                role = resolve_participant_role(session, principal.id)
                if role == ParticipantRole.NONE:
                    raise ForbiddenException("Not authorized to add messages to this bargaining session")

                now = self.clock()
                if self._apply_expiry(session, now):
                    self._reject_expired(db, session)
                if _value(session.status) != SessionStatus.ACTIVE.value:
                    raise InvalidStateException(session_id, _value(session.status))

                used = session.buyer_turns if role == ParticipantRole.BUYER else session.seller_turns
                if used >= self.max_turns:
                    raise TurnLimitExceededException(session_id, role.value, self.max_turns)

                if is_offer and not is_valid_offer(offer_amount, session.initial_price):
                    raise InvalidOfferException(
                        offer_amount, display_floor(session.initial_price), session.initial_price
                    )

                message = session_store.append_message(
                    db, session, role,
                    text=text, is_offer=is_offer, offer_amount=offer_amount, timestamp=now
                )
                view = message_view(message)

        logger.info(
            f"Session {session_id}: {view.sender} message #{view.sequence}"
            + (f" with offer ${view.offer_amount:.2f}" if view.is_offer else "")
        )
        return view

    def update_status(self, session_id: str, principal: Principal, new_status: str) -> SessionView:
        """
        Seller accepts or rejects a session.

        On accepted, the final price is the session's current price.

        Raises:
            ValidationException: new_status is not accepted/rejected
            SessionNotFoundException, ForbiddenException, InvalidStateException
        """
        target = SELLER_DECISIONS.get(_value(new_status))
        if target is None:
            raise ValidationException(
                "Status must be 'accepted' or 'rejected'",
                [{"field": "status", "error": f"unsupported value {new_status!r}"}]
            )

        with self._session_locks.hold(session_id):
            with get_db() as db:
                session = session_store.get_session(db, session_id)
                if session is None:
                    raise SessionNotFoundException(session_id)

                role = resolve_participant_role(session, principal.id)
                if role == ParticipantRole.NONE:
                    raise ForbiddenException("Not authorized to update this bargaining session")
                if role != ParticipantRole.SELLER:
                    raise ForbiddenException("Only the seller can update the bargain status")

                now = self.clock()
                if self._apply_expiry(session, now):
                    self._reject_expired(db, session)
                if not can_transition(session.status, target):
                    raise InvalidStateException(session_id, _value(session.status))

                session_store.set_status(db, session, target, now)
                view = self._session_view(session)

        if view.status == "accepted":
            logger.info(f"Session {session_id} accepted at final price ${view.current_price:.2f}")
        else:
            logger.info(f"Session {session_id} rejected by seller {principal.id}")
        save_transcript(view)
        return view

    def commit_to_cart(self, session_id: str, principal: Principal) -> CartLineView:
        """
        Hand an accepted session's current price to the cart/order sink.

        Raises:
            SessionNotFoundException
            ForbiddenException: caller is not the session's buyer
            InvalidStateException: session is not accepted
        """
        with self._session_locks.hold(session_id):
            with get_db() as db:
                session = session_store.get_session(db, session_id, with_messages=False)
                if session is None:
                    raise SessionNotFoundException(session_id)
                if resolve_participant_role(session, principal.id) != ParticipantRole.BUYER:
                    raise ForbiddenException("Only the buyer can add a bargained product to the cart")
                if _value(session.status) != SessionStatus.ACCEPTED.value:
                    raise InvalidStateException(
                        session_id, _value(session.status),
                        message=f"Only accepted bargains can be added to the cart (status: {_value(session.status)})"
                    )
                buyer_id, product_id, final_price = session.buyer_id, session.product_id, session.current_price

            return self.order_sink.commit_final_price(buyer_id, product_id, session_id, final_price)

    def expire_stale(self) -> List[StatusUpdatedEvent]:
        """
        Persist expiry for every overdue active session.

        Returns:
            One status event per session expired by this call
        """
        now = self.clock()
        with get_db() as db:
            overdue_ids = session_store.find_overdue_session_ids(db, now)

        events = []
        for session_id in overdue_ids:
            with self._session_locks.hold(session_id):
                with get_db() as db:
                    session = session_store.get_session(db, session_id)
                    if session is None or not self._apply_expiry(session, now):
                        continue
                    view = self._session_view(session)
            save_transcript(view)
            events.append(status_event(view))

        if events:
            logger.info(f"Expired {len(events)} overdue bargaining sessions")
        return events


def status_event(view: SessionView) -> StatusUpdatedEvent:
    return StatusUpdatedEvent(
        session_id=view.id,
        status=view.status,
        current_price=view.current_price,
        updated_at=view.updated_at,
    )


# Singleton instance
session_service = SessionService()
