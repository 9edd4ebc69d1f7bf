"""
Realtime WebSocket endpoint.

WHAT: /ws/bargains, the live channel for bargaining rooms
WHY: Participants receive messages and status changes without polling
HOW: Hands the socket to the gateway together with the shared dispatcher
"""

from fastapi import APIRouter, WebSocket

from ....realtime.dispatcher import dispatcher
from ....realtime.gateway import gateway

router = APIRouter()


@router.websocket("/ws/bargains")
async def bargains_socket(websocket: WebSocket):
    await gateway.serve(websocket, dispatcher)
