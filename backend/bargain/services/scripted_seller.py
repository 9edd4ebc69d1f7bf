"""
Scripted seller for auto-bargaining products.

WHAT: Answer buyer messages on behalf of the seller of an auto_bargain product
WHY: Listings can opt into instant negotiation without the seller being online
HOW: Acts as an ordinary seller client of the session service, so turn limits and
     price rules apply to it exactly as to a human seller
"""

from typing import List, Optional

from ..core.security import Principal
from ..models.api_schemas import MessageView, SessionView
from ..models.events import BargainEvent, MESSAGE_RECEIVED, STATUS_UPDATED
from ..utils.exceptions import BusinessException
from ..utils.logger import get_logger
from .catalog import Catalog, SqlCatalog
from .price_policy import counter_offer, extract_offer_amount, floor_price
from .session_service import SessionService, session_service, status_event

logger = get_logger(__name__)


class ScriptedSeller:
    """
    Rule-based seller replies.

    - buyer offer (already validated against the floor) -> accept
    - amount mentioned below the floor -> counter offer, or reject on the last turn
    - anything else -> ask for a concrete dollar offer
    """

    def __init__(self, service: Optional[SessionService] = None, catalog: Optional[Catalog] = None):
        self.service = service or session_service
        self.catalog = catalog or SqlCatalog()

    def _should_act(self, session: SessionView) -> bool:
        if session.status != "active":
            return False
        if session.seller_turns >= session.max_turns_per_participant:
            logger.debug(f"Scripted seller out of turns in session {session.id}")
            return False
        product = self.catalog.get_product(session.product_id)
        return product is not None and product.auto_bargain

    def respond(self, session_id: str, trigger: MessageView) -> List[BargainEvent]:
        """
        React to one buyer message.

        Args:
            session_id: Session the trigger was appended to
            trigger: The buyer message just committed

        Returns:
            Committed events to broadcast, in log order
        """
        if trigger.sender != "buyer":
            return []

        session = self.service.peek_session(session_id)
        if not self._should_act(session):
            return []

        seller = Principal(id=session.seller_id, role="seller")
        last_turn = session.seller_turns + 1 >= session.max_turns_per_participant
        events: List[BargainEvent] = []

        try:
            if trigger.is_offer:
                reply = self.service.append_message(
                    session_id, seller,
                    text=f"Deal! I accept your offer of ${trigger.offer_amount:.2f}."
                )
                events.append(BargainEvent.from_model(session_id, MESSAGE_RECEIVED, reply))
                closed = self.service.update_status(session_id, seller, "accepted")
                events.append(BargainEvent.from_model(session_id, STATUS_UPDATED, status_event(closed)))
                return events

            mentioned = extract_offer_amount(trigger.text)
            if mentioned is not None and mentioned < floor_price(session.initial_price):
                if last_turn:
                    reply = self.service.append_message(
                        session_id, seller,
                        text=f"Sorry, I can't go below ${session.floor_price:.2f}. I'll have to pass."
                    )
                    events.append(BargainEvent.from_model(session_id, MESSAGE_RECEIVED, reply))
                    closed = self.service.update_status(session_id, seller, "rejected")
                    events.append(BargainEvent.from_model(session_id, STATUS_UPDATED, status_event(closed)))
                    return events

                counter = counter_offer(mentioned, session.initial_price)
                reply = self.service.append_message(
                    session_id, seller,
                    text=f"${mentioned:.2f} is too low for me. How about ${counter:.2f}?",
                    is_offer=True,
                    offer_amount=counter
                )
                events.append(BargainEvent.from_model(session_id, MESSAGE_RECEIVED, reply))
                return events

            reply = self.service.append_message(
                session_id, seller,
                text=f"Thanks for your interest in {session.product_title}! "
                     f"Send me an offer in dollars and I'll consider it."
            )
            events.append(BargainEvent.from_model(session_id, MESSAGE_RECEIVED, reply))
        except BusinessException as e:
            # A concurrent human write can close the session between peek and reply
            logger.warning(f"Scripted seller skipped reply in session {session_id}: {e.code} - {e.message}")

        return events


# Singleton instance
scripted_seller = ScriptedSeller()
