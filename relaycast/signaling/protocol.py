"""
Signaling wire protocol.

Every frame is a JSON object with a ``type`` discriminator. Each type maps to
one message class below; ``decode_message`` validates the shape and raises
``ProtocolError`` for anything it does not recognize.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from relaycast.core.exceptions import ProtocolError


class Role(str, Enum):
    MASTER = "MASTER"
    VIEWER = "VIEWER"


@dataclass(frozen=True)
class PeerInfo:
    id: str
    role: Role

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: Any) -> "PeerInfo":
        if not isinstance(data, dict):
            raise ProtocolError("Peer info must be an object", {"peer": data})
        return cls(id=_require_str(data, "id"), role=_parse_role(data.get("role")))


@dataclass(frozen=True)
class Register:
    type = "register"

    role: Role
    client_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "role": self.role.value, "clientId": self.client_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Register":
        return cls(role=_parse_role(data.get("role")), client_id=_require_str(data, "clientId"))


@dataclass(frozen=True)
class Registered:
    type = "registered"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registered":
        return cls()


@dataclass(frozen=True)
class PeerJoined:
    type = "peer-joined"

    peer: PeerInfo

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "peer": self.peer.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PeerJoined":
        return cls(peer=PeerInfo.from_dict(data.get("peer")))


@dataclass(frozen=True)
class PeerLeft:
    type = "peer-left"

    peer: PeerInfo

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "peer": self.peer.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PeerLeft":
        return cls(peer=PeerInfo.from_dict(data.get("peer")))


@dataclass(frozen=True)
class _Relayed:
    """Directed message the hub forwards verbatim to ``to``."""

    payload: Any = None
    to: Optional[str] = None
    sender: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "payload": self.payload, "from": self.sender}
        if self.to is not None:
            data["to"] = self.to
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], strict: bool = True):
        sender = data.get("from")
        if strict:
            sender = _optional_str(data, "from")
        elif not isinstance(sender, str):
            sender = None
        return cls(
            payload=data.get("payload"),
            to=_optional_str(data, "to"),
            sender=sender,
        )


@dataclass(frozen=True)
class Offer(_Relayed):
    type = "offer"


@dataclass(frozen=True)
class Answer(_Relayed):
    type = "answer"


@dataclass(frozen=True)
class IceCandidate(_Relayed):
    type = "ice-candidate"


Message = Union[Register, Registered, PeerJoined, PeerLeft, Offer, Answer, IceCandidate]

MESSAGE_TYPES = {
    cls.type: cls
    for cls in (Register, Registered, PeerJoined, PeerLeft, Offer, Answer, IceCandidate)
}

RELAYED_TYPES = (Offer, Answer, IceCandidate)


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"Field '{key}' must be a non-empty string", {"value": value})
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string", {"value": value})
    return value


def _parse_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ProtocolError("Unknown role", {"role": value})


def decode_message(raw: Union[str, bytes], strict: bool = True) -> Message:
    """Parse one wire frame into its message class.

    With ``strict`` off, relayed messages only need a usable ``to``; any
    other field is left for the receiving endpoint to judge.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise ProtocolError("Frame is not valid JSON", {"error": str(e)})

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object", {"frame_type": type(data).__name__})

    message_type = data.get("type")
    message_cls = MESSAGE_TYPES.get(message_type)
    if message_cls is None:
        raise ProtocolError("Unknown message type", {"type": message_type})

    if message_cls in RELAYED_TYPES:
        return message_cls.from_dict(data, strict=strict)
    return message_cls.from_dict(data)


def encode_message(message: Message) -> str:
    """Serialize a message class to its wire frame."""
    return json.dumps(message.to_dict())
