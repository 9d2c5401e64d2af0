"""
Signaling module for relaycast.
Wire protocol, membership registry and the relay hub.
"""

from .protocol import Role, PeerInfo, decode_message, encode_message
from .registry import RelayRegistry, Registration
from .hub import SignalingHub

__all__ = [
    'Role',
    'PeerInfo',
    'decode_message',
    'encode_message',
    'RelayRegistry',
    'Registration',
    'SignalingHub'
]
