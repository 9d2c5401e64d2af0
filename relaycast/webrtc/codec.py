"""
Conversion between aiortc session objects and signaling payloads.

Payloads use the browser shapes: ``{"type", "sdp"}`` for descriptions and
``{"candidate", "sdpMid", "sdpMLineIndex"}`` for ICE candidates.
"""
from typing import Any, Dict, Optional

from aiortc import RTCIceCandidate, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from relaycast.core.exceptions import NegotiationError

CANDIDATE_PREFIX = "candidate:"


def description_to_payload(description: RTCSessionDescription) -> Dict[str, Any]:
    return {"type": description.type, "sdp": description.sdp}


def payload_to_description(payload: Any, expected_type: str) -> RTCSessionDescription:
    """Validate a description payload and build the aiortc object."""
    if not isinstance(payload, dict):
        raise NegotiationError("Session description must be an object", {
            "payload_type": type(payload).__name__
        })

    for field in ('type', 'sdp'):
        if field not in payload:
            raise NegotiationError("Session description missing required field", {
                "field": field,
                "payload_keys": list(payload.keys())
            })

    if payload['type'] != expected_type:
        raise NegotiationError("Invalid session description type", {
            "expected": expected_type,
            "received": payload['type']
        })

    if not isinstance(payload['sdp'], str) or not payload['sdp']:
        raise NegotiationError("Session description has no SDP")

    return RTCSessionDescription(sdp=payload['sdp'], type=payload['type'])


def candidate_to_payload(candidate: RTCIceCandidate) -> Dict[str, Any]:
    return {
        "candidate": CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex
    }


def payload_to_candidate(payload: Any) -> Optional[RTCIceCandidate]:
    """Build an aiortc candidate. Returns None for an end-of-candidates marker."""
    if not payload:
        return None
    if not isinstance(payload, dict):
        raise NegotiationError("ICE candidate must be an object", {
            "payload_type": type(payload).__name__
        })

    line = payload.get("candidate")
    if not line:
        return None
    if not isinstance(line, str):
        raise NegotiationError("ICE candidate line must be a string")
    if line.startswith(CANDIDATE_PREFIX):
        line = line[len(CANDIDATE_PREFIX):]

    try:
        candidate = candidate_from_sdp(line)
    except (AssertionError, IndexError, ValueError) as e:
        raise NegotiationError("Unparseable ICE candidate", {"candidate": line, "error": str(e)})

    candidate.sdpMid = payload.get("sdpMid")
    candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
    return candidate
