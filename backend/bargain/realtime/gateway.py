"""
Realtime gateway.

WHAT: Authenticates WebSocket clients, routes their frames, fans out committed events
WHY: Participants watching a session see every message and status change live
HOW: One receive loop per connection; writes go through the dispatcher, which
     calls back into broadcast() after each commit
"""

import json
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..core.security import decode_access_token, extract_bearer
from ..models.events import (
    BargainEvent,
    JOIN_ROOM,
    LEAVE_ROOM,
    OPERATION_ERROR,
    PARTICIPANT_JOINED,
    REFRESH_TOKEN,
    ROOM_JOINED,
    ROOM_LEFT,
    SUBMIT_MESSAGE,
    SUBMIT_STATUS,
    TOKEN_REFRESHED,
    RefreshTokenPayload,
    RoomPayload,
    SubmitMessagePayload,
    SubmitStatusPayload,
)
from ..utils.exceptions import (
    AuthenticationException,
    BusinessException,
    CapacityExceededException,
    ForbiddenException,
    ValidationException,
)
from ..utils.logger import get_logger
from .registry import Connection, RoomRegistry

logger = get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# Close code for "try again later" (RFC 6455 1013)
WS_TRY_AGAIN_LATER = 1013


def _parse(model: Type[PayloadT], data: Any) -> PayloadT:
    """Validate a frame's data object, reporting failures as VALIDATION_ERROR."""
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        field_errors = [
            {"field": ".".join(str(part) for part in err.get("loc", ())) or "data", "error": err.get("msg")}
            for err in e.errors()
        ]
        raise ValidationException("Invalid event payload", field_errors)


class RealtimeGateway:
    """WebSocket front door for bargaining sessions."""

    def __init__(self, registry: Optional[RoomRegistry] = None):
        self.registry = registry or RoomRegistry()

    # ---------- outbound ----------

    async def broadcast(self, events: Iterable[BargainEvent]):
        """
        Deliver committed events to every connection in each event's room.

        Connections whose send fails are treated as dead and dropped.
        """
        for event in events:
            for connection in self.registry.members(event.session_id):
                try:
                    await connection.send(event.event, event.data)
                except Exception as e:
                    logger.info(f"Dropping dead {connection} during fan-out: {e!r}")
                    self.registry.unregister(connection)

    async def send_error(
        self,
        connection: Connection,
        exc: BusinessException,
        event: Optional[str] = None,
        session_id: Optional[str] = None
    ):
        """operation_error is only ever delivered to the originating connection."""
        data = exc.to_dict()
        data["event"] = event
        data["session_id"] = session_id
        try:
            await connection.send(OPERATION_ERROR, data)
        except Exception as e:
            logger.info(f"Could not deliver operation_error to {connection}: {e!r}")

    # ---------- connection lifecycle ----------

    async def serve(self, websocket: WebSocket, dispatcher):
        """
        Run one client connection to completion.

        WHAT: Authenticate, register, then loop over client frames until disconnect
        WHY: A missing or invalid credential must never reach a room
        HOW: Close with 1008 before accept on auth failure; 1013 when at capacity

        Args:
            websocket: Incoming connection
            dispatcher: BargainDispatcher executing the writes
        """
        token = websocket.query_params.get("token") or extract_bearer(websocket.headers.get("authorization"))
        try:
            principal = decode_access_token(token)
        except AuthenticationException as e:
            logger.warning(f"Realtime connection rejected: {e.message}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return

        connection = Connection(websocket, principal)
        try:
            self.registry.register(connection)
        except CapacityExceededException as e:
            logger.warning(f"Realtime connection rejected for {principal.id}: {e.message}")
            await websocket.close(code=WS_TRY_AGAIN_LATER, reason=e.message)
            return

        await websocket.accept()
        logger.info(f"Realtime connection opened: {connection} ({principal.role})")

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
                raw = message.get("text")
                if raw is None:
                    await self.send_error(connection, ValidationException(
                        "Binary frames are not supported; send JSON text",
                        [{"field": "frame", "error": "expected a text frame"}]
                    ))
                    continue
                await self._handle_frame(connection, raw, dispatcher)
        except WebSocketDisconnect:
            logger.info(f"Realtime connection closed: {connection}")
        finally:
            self.registry.unregister(connection)

    async def _handle_frame(self, connection: Connection, raw: str, dispatcher):
        event = None
        session_id = None
        try:
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                raise ValidationException("Frame is not valid JSON")
            if not isinstance(payload, dict):
                raise ValidationException("Frame must be a JSON object with 'event' and 'data'")

            event = payload.get("event")
            data = payload.get("data")
            if isinstance(data, dict):
                session_id = data.get("session_id")

            if event == REFRESH_TOKEN:
                await self._refresh_token(connection, data)
                return

            if connection.principal.is_expired():
                raise AuthenticationException("Bearer token has expired", code="TOKEN_EXPIRED")

            if event == JOIN_ROOM:
                await self._join_room(connection, _parse(RoomPayload, data), dispatcher)
            elif event == LEAVE_ROOM:
                room = _parse(RoomPayload, data)
                self.registry.leave(connection, room.session_id)
                await connection.send(ROOM_LEFT, {"session_id": room.session_id})
            elif event == SUBMIT_MESSAGE:
                request = _parse(SubmitMessagePayload, data)
                await dispatcher.append_message(
                    request.session_id, connection.principal,
                    request.text, request.is_offer, request.offer_amount
                )
            elif event == SUBMIT_STATUS:
                request = _parse(SubmitStatusPayload, data)
                await dispatcher.update_status(request.session_id, connection.principal, request.status)
            else:
                raise ValidationException(
                    f"Unknown event: {event!r}",
                    [{"field": "event", "error": "unsupported event"}]
                )
        except BusinessException as e:
            logger.warning(f"Realtime {event} from {connection} failed: {e.code} - {e.message}")
            await self.send_error(connection, e, event, session_id if isinstance(session_id, str) else None)
        except WebSocketDisconnect:
            raise
        except Exception as e:
            logger.error(f"Unexpected error handling realtime {event} from {connection}: {e}", exc_info=True)
            await self.send_error(
                connection,
                BusinessException("An unexpected error occurred", code="INTERNAL_ERROR"),
                event,
                session_id if isinstance(session_id, str) else None
            )

    async def _join_room(self, connection: Connection, room: RoomPayload, dispatcher):
        # Authorization for the room is the same as for reading the session
        session = await dispatcher.get_session(room.session_id, connection.principal)
        self.registry.join(connection, room.session_id)

        role = "buyer" if connection.principal.id == session.buyer_id else "seller"
        await connection.send(ROOM_JOINED, {
            "session_id": room.session_id,
            "session": session.model_dump(mode="json"),
        })
        notice: Dict[str, Any] = {
            "session_id": room.session_id,
            "principal_id": connection.principal.id,
            "role": role,
        }
        for member in self.registry.members(room.session_id):
            if member is connection:
                continue
            try:
                await member.send(PARTICIPANT_JOINED, notice)
            except Exception as e:
                logger.info(f"Dropping dead {member} during fan-out: {e!r}")
                self.registry.unregister(member)

    async def _refresh_token(self, connection: Connection, data: Any):
        request = _parse(RefreshTokenPayload, data)
        principal = decode_access_token(request.token)
        if principal.id != connection.principal.id:
            raise ForbiddenException("Refreshed token belongs to a different principal")
        connection.principal = principal
        await connection.send(TOKEN_REFRESHED, {
            "principal_id": principal.id,
            "expires_at": principal.expires_at.isoformat() if principal.expires_at else None,
        })

    def stats(self) -> dict:
        return self.registry.stats()


# Singleton instance
gateway = RealtimeGateway()
