from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

MESSAGE_MARKER = "@post-me"

Identifier = Union[str, int]


class MessageAction(str, Enum):
    HANDSHAKE_REQUEST = "handshake-request"
    HANDSHAKE_RESPONSE = "handshake-response"
    CALL = "call"
    RESPONSE = "response"
    EVENT = "event"


def new_session_id() -> str:
    return f"ses_{uuid4().hex[:12]}"


class WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["@post-me"] = MESSAGE_MARKER
    action: str
    session_id: Identifier = Field(alias="sessionId")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class HandshakeRequest(WireMessage):
    action: Literal["handshake-request"] = "handshake-request"


class HandshakeResponse(WireMessage):
    action: Literal["handshake-response"] = "handshake-response"


class CallMessage(WireMessage):
    action: Literal["call"] = "call"
    request_id: Identifier = Field(alias="requestId")
    method_name: str = Field(alias="methodName", min_length=1)
    args: List[Any] = Field(default_factory=list)


class ResponseMessage(WireMessage):
    action: Literal["response"] = "response"
    request_id: Identifier = Field(alias="requestId")
    result: Any = None
    error: Any = None


class EventMessage(WireMessage):
    action: Literal["event"] = "event"
    event_name: str = Field(alias="eventName", min_length=1)
    payload: Any = None


_MESSAGE_TYPES: Dict[str, Type[WireMessage]] = {
    MessageAction.HANDSHAKE_REQUEST.value: HandshakeRequest,
    MessageAction.HANDSHAKE_RESPONSE.value: HandshakeResponse,
    MessageAction.CALL.value: CallMessage,
    MessageAction.RESPONSE.value: ResponseMessage,
    MessageAction.EVENT.value: EventMessage,
}


def parse_message(data: Any) -> Optional[WireMessage]:
    """Return the typed message, or None for foreign or malformed traffic."""
    if not isinstance(data, dict) or data.get("type") != MESSAGE_MARKER:
        return None
    model = _MESSAGE_TYPES.get(str(data.get("action")))
    if model is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.debug("Dropping malformed message action=%s error=%s", data.get("action"), exc)
        return None


def serialize_error(exc: BaseException) -> Dict[str, str]:
    return {"name": type(exc).__name__, "message": str(exc)}
