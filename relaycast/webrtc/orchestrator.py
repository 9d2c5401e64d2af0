"""
Per-endpoint negotiation: one offer/answer state machine per remote peer.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

from aiortc import RTCPeerConnection

from relaycast.core.config import ServerConfig
from relaycast.core.events import ListenerRegistry
from relaycast.core.exceptions import NegotiationError
from relaycast.core.logging import debug_log
from relaycast.signaling.protocol import PeerInfo, Role
from relaycast.webrtc.channel import SignalingChannel
from relaycast.webrtc.codec import (
    candidate_to_payload,
    description_to_payload,
    payload_to_candidate,
    payload_to_description,
)
from relaycast.webrtc.media import MediaStream


class PeerState(str, Enum):
    IDLE = "idle"
    OFFER_SENT = "offer-sent"
    ANSWER_SENT = "answer-sent"
    CONNECTED = "connected"
    CLOSED = "closed"


CONNECTED_ICE_STATES = ("connected", "completed")
TERMINAL_ICE_STATES = ("disconnected", "failed", "closed")


@dataclass(eq=False)
class PeerSession:
    """Negotiation record for one remote peer."""

    peer_id: str
    pc: Any
    state: PeerState = PeerState.IDLE
    remote_stream: MediaStream = field(default_factory=MediaStream)
    attached_track_ids: Set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def has_local_tracks(self) -> bool:
        return bool(self.attached_track_ids)


class NegotiationOrchestrator(ListenerRegistry):
    """Drives offer/answer/ICE exchange with every remote peer of one endpoint.

    A MASTER offers to each VIEWER that joins; a VIEWER answers each offer it
    receives. Steps for one peer run one at a time under that peer's lock,
    while steps for different peers interleave at their await points.
    Teardown never waits for an in-flight step.

    Events emitted to listeners:

    * ``stream`` - ``(MediaStream, peer_id)`` whenever a remote track arrives
    * ``stream-removed`` - ``(peer_id)`` when a peer record is torn down
    * ``negotiation-error`` - ``(NegotiationError, peer_id)``
    """

    def __init__(self, role: Union[Role, str], config: Optional[ServerConfig] = None,
                 client_id: Optional[str] = None, channel: Optional[SignalingChannel] = None,
                 peer_factory: Optional[Callable[[], Any]] = None):
        super().__init__()
        self.role = Role(role)
        self.config = config or ServerConfig()
        if channel is not None:
            self.client_id = channel.client_id
        else:
            self.client_id = client_id or f"{self.role.value}-{int(time.time() * 1000)}"
        self.channel = channel
        self.peers: Dict[str, PeerSession] = {}
        self.local_stream: Optional[MediaStream] = None

        self._peer_factory = peer_factory or self._create_peer_connection
        self._tasks: Set[asyncio.Task] = set()
        self._disconnected = False

    def _create_peer_connection(self) -> RTCPeerConnection:
        return RTCPeerConnection(configuration=self.config.rtc_config)

    async def initialize(self) -> bool:
        """Connect to the hub and start reacting to signaling events.

        Returns False when the first open failed; the channel keeps retrying.
        """
        if self.channel is None:
            self.channel = SignalingChannel(self.client_id, self.role, self.config)
        self._setup_signaling_handlers()
        return await self.channel.open()

    def _setup_signaling_handlers(self):
        self.channel.add_listener('registered', self._on_registered)
        self.channel.add_listener('peer-joined', self._on_peer_joined)
        self.channel.add_listener('peer-left', self._on_peer_left)
        self.channel.add_listener('sdpOffer', self._on_sdp_offer)
        self.channel.add_listener('sdpAnswer', self._on_sdp_answer)
        self.channel.add_listener('iceCandidate', self._on_ice_candidate)
        self.channel.add_listener('error', self._on_channel_error)
        self.channel.add_listener('close', self._on_channel_close)

    def on_stream(self, handler: Callable):
        """Replace the stream handler."""
        self.clear_listeners('stream')
        self.add_listener('stream', handler)

    def on_stream_removed(self, handler: Callable):
        """Replace the stream-removed handler."""
        self.clear_listeners('stream-removed')
        self.add_listener('stream-removed', handler)

    def state_of(self, peer_id: str) -> Optional[PeerState]:
        session = self.peers.get(peer_id)
        return session.state if session else None

    async def start_streaming(self, stream: MediaStream):
        """Publish local tracks. As MASTER, renegotiate every peer missing them."""
        self.local_stream = stream
        debug_log(f"🎥 [Orchestrator] Local stream set", {
            "client_id": self.client_id,
            "role": self.role.value,
            "tracks": [track.kind for track in stream.get_tracks()],
            "peers": list(self.peers.keys())
        })

        if self.role is not Role.MASTER:
            return

        track_ids = {track.id for track in stream.get_tracks()}
        for session in list(self.peers.values()):
            if not track_ids <= session.attached_track_ids:
                self._spawn(session, "renegotiate", self._renegotiate_step, session)

    async def wait_idle(self):
        """Wait until every in-flight negotiation step has finished."""
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks if task is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def disconnect(self):
        """Stop local tracks, close every peer transport and the channel."""
        if self._disconnected:
            return
        self._disconnected = True

        if self.local_stream is not None:
            self.local_stream.stop()

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        sessions = list(self.peers.values())
        self.peers.clear()
        for session in sessions:
            session.state = PeerState.CLOSED
            await self._close_transport(session)

        if self.channel is not None:
            await self.channel.close()

        debug_log(f"🔌 [Orchestrator] Disconnected", {
            "client_id": self.client_id,
            "closed_peers": len(sessions)
        })

    # Signaling events

    async def _on_registered(self):
        debug_log(f"📝 [Orchestrator] Registered with hub", {
            "client_id": self.client_id,
            "role": self.role.value
        })

    async def _on_peer_joined(self, peer: PeerInfo):
        debug_log(f"👋 [Orchestrator] Peer joined", {"client_id": self.client_id, "peer": peer.to_dict()})
        if self.role is not Role.MASTER or self._disconnected:
            return
        if peer.role is not Role.VIEWER:
            self.log_info("Not offering to another broadcaster", {"peer_id": peer.id})
            return

        if peer.id in self.peers:
            await self._remove_peer(peer.id)

        session = self._create_session(peer.id)
        self._spawn(session, "offer", self._offer_step, session)

    async def _on_peer_left(self, peer: PeerInfo):
        debug_log(f"👋 [Orchestrator] Peer left", {"client_id": self.client_id, "peer": peer.to_dict()})
        await self._remove_peer(peer.id)

    async def _on_sdp_offer(self, payload: Any, from_id: Optional[str]):
        if self.role is not Role.VIEWER or self._disconnected:
            self.log_debug("Ignoring offer", {"role": self.role.value, "from": from_id})
            return
        if not from_id:
            self.log_warning("Dropping offer without sender")
            return

        session = self.peers.get(from_id) or self._create_session(from_id)
        self._spawn(session, "answer", self._answer_step, session, payload)

    async def _on_sdp_answer(self, payload: Any, from_id: Optional[str]):
        session = self.peers.get(from_id) if from_id else None
        if session is None:
            self.log_debug("Dropping answer for unknown peer", {"from": from_id})
            return
        self._spawn(session, "apply-answer", self._apply_answer_step, session, payload)

    async def _on_ice_candidate(self, payload: Any, from_id: Optional[str]):
        session = self.peers.get(from_id) if from_id else None
        if session is None:
            self.log_debug("Dropping ICE candidate for unknown peer", {"from": from_id})
            return
        self._spawn(session, "add-candidate", self._add_candidate_step, session, payload)

    async def _on_channel_error(self, error: Exception):
        self.log_warning("Signaling channel error", {"client_id": self.client_id, "error": str(error)})

    async def _on_channel_close(self):
        self.log_info("Signaling channel closed", {"client_id": self.client_id})

    # Peer transport

    def _create_session(self, peer_id: str) -> PeerSession:
        session = PeerSession(peer_id=peer_id, pc=self._peer_factory())
        self.peers[peer_id] = session
        self._setup_peer_connection_handlers(session)
        return session

    def _setup_peer_connection_handlers(self, session: PeerSession):
        pc = session.pc
        peer_id = session.peer_id

        @pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            if candidate is None or not self._is_current(session):
                return
            await self.channel.send_ice_candidate(candidate_to_payload(candidate), peer_id)

        @pc.on("track")
        async def on_track(track):
            if not self._is_current(session):
                return
            session.remote_stream.add_track(track)
            debug_log(f"📺 [Orchestrator] Received track from peer", {
                "peer_id": peer_id,
                "kind": track.kind,
                "stream_id": session.remote_stream.id
            })
            await self.emit('stream', session.remote_stream, peer_id)

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            ice_state = pc.iceConnectionState
            debug_log(f"🧊 [Orchestrator] ICE connection state changed", {
                "peer_id": peer_id,
                "ice_state": ice_state
            })
            if ice_state in TERMINAL_ICE_STATES:
                await self._remove_peer(peer_id, session)
            elif ice_state in CONNECTED_ICE_STATES and session.state is PeerState.ANSWER_SENT:
                session.state = PeerState.CONNECTED

    def _is_current(self, session: PeerSession) -> bool:
        return (
            not self._disconnected
            and session.state is not PeerState.CLOSED
            and self.peers.get(session.peer_id) is session
        )

    def _spawn(self, session: PeerSession, step: str, func: Callable, *args):
        """Queue a negotiation step behind earlier steps for the same peer."""
        async def run():
            async with session.lock:
                if not self._is_current(session):
                    return
                try:
                    await func(*args)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if not self._is_current(session):
                        self.log_debug("Step aborted by teardown", {"peer_id": session.peer_id, "step": step})
                        return
                    await self._fail(session, step, e)

        task = asyncio.create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _attach_local_tracks(self, session: PeerSession) -> int:
        if self.local_stream is None:
            return 0
        added = 0
        for track in self.local_stream.get_tracks():
            if track.id in session.attached_track_ids:
                continue
            session.pc.addTrack(track)
            session.attached_track_ids.add(track.id)
            added += 1
        return added

    async def _send_offer(self, session: PeerSession):
        pc = session.pc
        offer = await pc.createOffer()
        await pc.setLocalDescription(offer)
        if not self._is_current(session):
            return
        await self.channel.send_offer(description_to_payload(pc.localDescription), session.peer_id)
        session.state = PeerState.OFFER_SENT
        debug_log(f"📤 [Orchestrator] Offer sent", {
            "peer_id": session.peer_id,
            "has_local_tracks": session.has_local_tracks
        })

    async def _offer_step(self, session: PeerSession):
        self._attach_local_tracks(session)
        await self._send_offer(session)

    async def _renegotiate_step(self, session: PeerSession):
        if not self._attach_local_tracks(session):
            return
        await self._send_offer(session)

    async def _answer_step(self, session: PeerSession, payload: Any):
        pc = session.pc
        await pc.setRemoteDescription(payload_to_description(payload, "offer"))
        answer = await pc.createAnswer()
        await pc.setLocalDescription(answer)
        if not self._is_current(session):
            return
        await self.channel.send_answer(description_to_payload(pc.localDescription), session.peer_id)
        session.state = PeerState.ANSWER_SENT
        if pc.iceConnectionState in CONNECTED_ICE_STATES:
            session.state = PeerState.CONNECTED
        debug_log(f"📤 [Orchestrator] Answer sent", {"peer_id": session.peer_id, "state": session.state.value})

    async def _apply_answer_step(self, session: PeerSession, payload: Any):
        await session.pc.setRemoteDescription(payload_to_description(payload, "answer"))
        session.state = PeerState.CONNECTED
        debug_log(f"🤝 [Orchestrator] Answer applied", {"peer_id": session.peer_id})

    async def _add_candidate_step(self, session: PeerSession, payload: Any):
        candidate = payload_to_candidate(payload)
        if candidate is None:
            self.log_debug("End of remote candidates", {"peer_id": session.peer_id})
            return
        await session.pc.addIceCandidate(candidate)

    async def _fail(self, session: PeerSession, step: str, error: Exception):
        if not isinstance(error, NegotiationError):
            error = NegotiationError(f"Negotiation step '{step}' failed", {
                "peer_id": session.peer_id,
                "error": str(error),
                "error_type": type(error).__name__
            })
        self.log_error("Negotiation failed", {
            "peer_id": session.peer_id,
            "step": step,
            "error": str(error)
        })
        await self._remove_peer(session.peer_id, session)
        await self.emit('negotiation-error', error, session.peer_id)

    async def _remove_peer(self, peer_id: str, session: Optional[PeerSession] = None) -> bool:
        """Tear down a peer record. Returns False when there was nothing to remove."""
        current = self.peers.get(peer_id)
        if current is None or (session is not None and current is not session):
            return False

        del self.peers[peer_id]
        current.state = PeerState.CLOSED
        debug_log(f"🔌 [Orchestrator] Peer connection removed", {
            "client_id": self.client_id,
            "peer_id": peer_id,
            "remaining_peers": len(self.peers)
        })

        await self._close_transport(current)
        await self.emit('stream-removed', peer_id)
        return True

    async def _close_transport(self, session: PeerSession):
        try:
            await session.pc.close()
        except Exception as e:
            self.log_warning("Error closing peer connection", {
                "peer_id": session.peer_id,
                "error": str(e)
            })

    def get_connected_peers(self) -> List[str]:
        """Peer ids whose negotiation has completed."""
        return [peer_id for peer_id, session in self.peers.items() if session.state is PeerState.CONNECTED]
