"""
Write-then-broadcast dispatcher.

WHAT: Single entry point used by both the HTTP routes and the realtime gateway
WHY: Room members must see events in the same order as the message log, whichever
     transport carried the write
HOW: Per-session asyncio lock held across the (threadpool) service call and the
     fan-out of its committed result
"""

from typing import List, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from ..core.locks import AsyncKeyedLocks
from ..core.security import Principal
from ..models.api_schemas import CartLineView, MessageView, SessionSummary, SessionView, StatusUpdatedEvent
from ..models.events import BargainEvent, MESSAGE_RECEIVED, STATUS_UPDATED
from ..services.scripted_seller import ScriptedSeller, scripted_seller
from ..services.session_service import SessionService, session_service, status_event
from ..utils.exceptions import InvalidStateException
from ..utils.logger import get_logger
from .gateway import RealtimeGateway, gateway

logger = get_logger(__name__)


class BargainDispatcher:
    """Runs session service operations and publishes what they committed."""

    def __init__(
        self,
        service: Optional[SessionService] = None,
        realtime: Optional[RealtimeGateway] = None,
        seller: Optional[ScriptedSeller] = None
    ):
        self.service = service or session_service
        self.realtime = realtime or gateway
        self.seller = seller or scripted_seller
        self._locks = AsyncKeyedLocks()

    async def _scripted_reply(self, session_id: str, trigger: MessageView) -> bool:
        """Caller must hold the session's lock. Returns True if the seller wrote anything."""
        events = await run_in_threadpool(self.seller.respond, session_id, trigger)
        if events:
            await self.realtime.broadcast(events)
        return bool(events)

    async def _announce_expiry(self, expiry: Optional[StatusUpdatedEvent]):
        """Caller must hold the session's lock."""
        if expiry is not None:
            await self.realtime.broadcast([BargainEvent.from_model(expiry.session_id, STATUS_UPDATED, expiry)])

    # ---------- reads ----------

    async def get_session(self, session_id: str, principal: Principal) -> SessionView:
        """Read a session; if this read expired it, tell the room."""
        async with self._locks.hold(session_id):
            view, expiry = await run_in_threadpool(self.service.read_session, session_id, principal)
            await self._announce_expiry(expiry)
        return view

    async def list_for_buyer(self, buyer_id: str) -> List[SessionSummary]:
        return await run_in_threadpool(self.service.list_for_buyer, buyer_id)

    async def list_for_seller(self, seller_id: str) -> List[SessionSummary]:
        return await run_in_threadpool(self.service.list_for_seller, seller_id)

    # ---------- writes ----------

    async def create_session(
        self,
        principal: Principal,
        product_id: str,
        initial_offer: Optional[float] = None
    ) -> Tuple[SessionView, bool]:
        view, created, expiry = await run_in_threadpool(
            self.service.open_session, principal, product_id, initial_offer
        )
        if expiry is not None:
            async with self._locks.hold(expiry.session_id):
                await self._announce_expiry(expiry)
        if created and view.messages:
            async with self._locks.hold(view.id):
                if await self._scripted_reply(view.id, view.messages[-1]):
                    view = await run_in_threadpool(self.service.peek_session, view.id)
        return view, created

    async def append_message(
        self,
        session_id: str,
        principal: Principal,
        text: str,
        is_offer: bool = False,
        offer_amount: Optional[float] = None
    ) -> MessageView:
        """
        Append, broadcast message_received, then let a scripted seller answer.

        The service call rejects before anything is broadcast, so a failed
        write never reaches the room. The one exception is an expiry the
        rejected call itself committed, which is announced as status_updated.
        """
        async with self._locks.hold(session_id):
            try:
                message = await run_in_threadpool(
                    self.service.append_message, session_id, principal, text, is_offer, offer_amount
                )
            except InvalidStateException as e:
                await self._announce_expiry(e.expiry)
                raise
            await self.realtime.broadcast([BargainEvent.from_model(session_id, MESSAGE_RECEIVED, message)])
            if message.sender == "buyer":
                await self._scripted_reply(session_id, message)
        return message

    async def update_status(self, session_id: str, principal: Principal, new_status: str) -> SessionView:
        async with self._locks.hold(session_id):
            try:
                view = await run_in_threadpool(self.service.update_status, session_id, principal, new_status)
            except InvalidStateException as e:
                await self._announce_expiry(e.expiry)
                raise
            await self.realtime.broadcast([
                BargainEvent.from_model(session_id, STATUS_UPDATED, status_event(view))
            ])
        return view

    async def commit_to_cart(self, session_id: str, principal: Principal) -> CartLineView:
        return await run_in_threadpool(self.service.commit_to_cart, session_id, principal)

    async def expire_stale(self) -> int:
        """
        Persist overdue expiries and notify their rooms.

        Returns:
            Number of sessions expired
        """
        events = await run_in_threadpool(self.service.expire_stale)
        for event in events:
            async with self._locks.hold(event.session_id):
                await self._announce_expiry(event)
        return len(events)


# Singleton instance
dispatcher = BargainDispatcher()
