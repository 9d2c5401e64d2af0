"""
WebRTC module for relaycast endpoints.
Signaling channel, per-peer negotiation and media containers.
"""

from .channel import SignalingChannel, ChannelState
from .orchestrator import NegotiationOrchestrator, PeerSession, PeerState
from .media import MediaStream, open_capture

__all__ = [
    'SignalingChannel',
    'ChannelState',
    'NegotiationOrchestrator',
    'PeerSession',
    'PeerState',
    'MediaStream',
    'open_capture'
]
