import json

import pytest

from relaycast.core.exceptions import ProtocolError
from relaycast.signaling.protocol import (
    Answer,
    IceCandidate,
    Offer,
    PeerInfo,
    PeerJoined,
    PeerLeft,
    Register,
    Registered,
    Role,
    decode_message,
    encode_message,
)


def test_decode_register():
    message = decode_message('{"type": "register", "role": "MASTER", "clientId": "MASTER-1"}')

    assert message == Register(role=Role.MASTER, client_id="MASTER-1")


def test_decode_peer_events():
    joined = decode_message('{"type": "peer-joined", "peer": {"id": "V", "role": "VIEWER"}}')
    left = decode_message('{"type": "peer-left", "peer": {"id": "V", "role": "VIEWER"}}')

    assert joined == PeerJoined(peer=PeerInfo(id="V", role=Role.VIEWER))
    assert left == PeerLeft(peer=PeerInfo(id="V", role=Role.VIEWER))


def test_decode_relayed_messages_keep_payload_and_addresses():
    offer = decode_message('{"type": "offer", "payload": {"sdp": "x"}, "to": "V", "from": "M"}')
    answer = decode_message('{"type": "answer", "payload": {"sdp": "y"}, "to": "M", "from": "V"}')
    candidate = decode_message('{"type": "ice-candidate", "payload": null, "to": "M"}')

    assert offer == Offer(payload={"sdp": "x"}, to="V", sender="M")
    assert answer == Answer(payload={"sdp": "y"}, to="M", sender="V")
    assert candidate == IceCandidate(payload=None, to="M", sender=None)


def test_encode_uses_wire_field_names():
    assert json.loads(encode_message(Registered())) == {"type": "registered"}
    assert json.loads(encode_message(Register(role=Role.VIEWER, client_id="V"))) == {
        "type": "register", "role": "VIEWER", "clientId": "V"
    }
    assert json.loads(encode_message(Offer(payload={"sdp": "x"}, to="V", sender="M"))) == {
        "type": "offer", "payload": {"sdp": "x"}, "to": "V", "from": "M"
    }


@pytest.mark.parametrize("raw", [
    "{",
    "null",
    '"register"',
    '{"role": "MASTER"}',
    '{"type": "hello"}',
    '{"type": "register", "role": "OBSERVER", "clientId": "x"}',
    '{"type": "register", "role": "VIEWER", "clientId": ""}',
    '{"type": "peer-joined", "peer": "V"}',
    '{"type": "offer", "to": 5}',
    '{"type": "offer", "to": "V", "from": 7}',
    pytest.param("[" * 100000, id="deeply-nested"),
])
def test_decode_rejects_malformed_frames(raw):
    with pytest.raises(ProtocolError):
        decode_message(raw)


def test_lenient_decode_only_needs_a_target():
    offer = decode_message('{"type": "offer", "payload": {}, "to": "V", "from": 7}', strict=False)

    assert offer.to == "V"
    assert offer.sender is None

    with pytest.raises(ProtocolError):
        decode_message('{"type": "offer", "to": 5}', strict=False)
