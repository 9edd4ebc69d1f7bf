"""
Realtime event envelopes.

WHAT: Event names, the envelope carried to room members, and client frame payloads
WHY: Services report what changed; the gateway only forwards
HOW: Small dataclass with a JSON-ready payload
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field

from .api_schemas import AppendMessageRequest, UpdateStatusRequest

MESSAGE_RECEIVED = "message_received"
STATUS_UPDATED = "status_updated"
OPERATION_ERROR = "operation_error"
ROOM_JOINED = "room_joined"
ROOM_LEFT = "room_left"
PARTICIPANT_JOINED = "participant_joined"

BroadcastEventName = Literal["message_received", "status_updated"]


@dataclass
class BargainEvent:
    """A committed state change to fan out to a session's room."""
    session_id: str
    event: BroadcastEventName
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, session_id: str, event: BroadcastEventName, model: BaseModel) -> "BargainEvent":
        return cls(session_id=session_id, event=event, data=model.model_dump(mode="json"))


def frame(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Wire format of every server->client message."""
    return {"event": event, "data": data}


# ========== Client -> server ==========

JOIN_ROOM = "join_room"
LEAVE_ROOM = "leave_room"
SUBMIT_MESSAGE = "submit_message"
SUBMIT_STATUS = "submit_status"
REFRESH_TOKEN = "refresh_token"
TOKEN_REFRESHED = "token_refreshed"


class RoomPayload(BaseModel):
    session_id: str = Field(..., min_length=1)


class SubmitMessagePayload(AppendMessageRequest):
    session_id: str = Field(..., min_length=1)


class SubmitStatusPayload(UpdateStatusRequest):
    session_id: str = Field(..., min_length=1)


class RefreshTokenPayload(BaseModel):
    token: str = Field(..., min_length=1)
