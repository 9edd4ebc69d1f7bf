"""
Bargaining session endpoints.

WHAT: Create, list, read, message and close bargaining sessions; commit accepted prices to the cart
WHY: HTTP surface for clients that do not hold a realtime connection
HOW: FastAPI router delegating to the dispatcher, so HTTP writes are broadcast like realtime ones
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from ....core.security import Principal, get_current_principal, require_buyer, require_seller
from ....models.api_schemas import (
    AppendMessageRequest,
    CartLineView,
    CreateSessionRequest,
    MessageView,
    SessionSummary,
    SessionView,
    UpdateStatusRequest,
)
from ....realtime.dispatcher import dispatcher
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/bargains", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def create_bargain(
    request: CreateSessionRequest,
    response: Response,
    principal: Principal = Depends(require_buyer)
):
    """
    Open a bargaining session, or resume the active one.

    WHAT: createSession for the calling buyer
    WHY: A product page's "bargain" button is safe to press twice
    HOW: 201 when a session was created, 200 when the active one is returned

    Returns:
        Full session view including the seed message
    """
    view, created = await dispatcher.create_session(principal, request.product_id, request.initial_offer)
    if not created:
        response.status_code = status.HTTP_200_OK
    return view


@router.get("/bargains/buyer", response_model=List[SessionSummary])
async def list_buyer_bargains(principal: Principal = Depends(require_buyer)):
    """Sessions where the caller is the buyer, most recently updated first."""
    return await dispatcher.list_for_buyer(principal.id)


@router.get("/bargains/seller", response_model=List[SessionSummary])
async def list_seller_bargains(principal: Principal = Depends(require_seller)):
    """Sessions where the caller is the seller, most recently updated first."""
    return await dispatcher.list_for_seller(principal.id)


@router.get("/bargains/{session_id}", response_model=SessionView)
async def get_bargain(session_id: str, principal: Principal = Depends(get_current_principal)):
    """Session with its chronological message log. Participants only."""
    return await dispatcher.get_session(session_id, principal)


@router.post(
    "/bargains/{session_id}/messages",
    response_model=MessageView,
    status_code=status.HTTP_201_CREATED
)
async def append_bargain_message(
    session_id: str,
    request: AppendMessageRequest,
    principal: Principal = Depends(get_current_principal)
):
    """
    Send a chat message or offer.

    Errors:
        404 unknown session, 403 not a participant, 409 session closed,
        429 out of turns, 422 offer outside the allowed window
    """
    return await dispatcher.append_message(
        session_id, principal, request.text, request.is_offer, request.offer_amount
    )


@router.put("/bargains/{session_id}/status", response_model=SessionView)
async def update_bargain_status(
    session_id: str,
    request: UpdateStatusRequest,
    principal: Principal = Depends(get_current_principal)
):
    """Seller accepts or rejects. Accepting fixes the final price at the session's current price."""
    return await dispatcher.update_status(session_id, principal, request.status)


@router.post(
    "/bargains/{session_id}/cart",
    response_model=CartLineView,
    status_code=status.HTTP_201_CREATED
)
async def commit_bargain_to_cart(session_id: str, principal: Principal = Depends(get_current_principal)):
    """Add an accepted bargain to the buyer's cart at the negotiated price."""
    line = await dispatcher.commit_to_cart(session_id, principal)
    logger.info(f"Buyer {principal.id} committed session {session_id} to cart")
    return line
