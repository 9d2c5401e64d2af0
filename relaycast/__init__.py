"""
relaycast: one broadcaster, many viewers, peer-to-peer media over WebRTC
with a small signaling relay.
"""

__version__ = "0.1.0"
