"""
Broadcaster and viewer processes built on the negotiation orchestrator.
"""
import asyncio
import os
from enum import Enum
from typing import Dict, List, Optional, Union

from aiortc.contrib.media import MediaBlackhole, MediaRecorder

from relaycast.core.config import ServerConfig
from relaycast.core.exceptions import ConfigError
from relaycast.core.logging import LoggerMixin, debug_log
from relaycast.signaling.protocol import Role
from relaycast.webrtc.media import MediaStream, open_capture
from relaycast.webrtc.orchestrator import NegotiationOrchestrator


class EndpointStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class StreamEndpoint(LoggerMixin):
    """One MASTER or VIEWER process.

    A MASTER captures ``source`` and publishes it to every viewer. A VIEWER
    records each remote stream into ``record_dir`` (one file per track), or
    discards the media when no directory is given.
    """

    def __init__(self, role: Union[Role, str], config: Optional[ServerConfig] = None,
                 source: Optional[str] = None, media_format: Optional[str] = None,
                 record_dir: Optional[str] = None,
                 orchestrator: Optional[NegotiationOrchestrator] = None):
        super().__init__()
        self.role = Role(role)
        self.config = config or ServerConfig()
        self.source = source
        self.media_format = media_format
        self.record_dir = record_dir
        self.orchestrator = orchestrator or NegotiationOrchestrator(self.role, self.config)
        self.status = EndpointStatus.DISCONNECTED

        self._sinks: Dict[str, List] = {}
        self._sunk_track_ids: Dict[str, set] = {}

        self.orchestrator.on_stream(self._on_stream)
        self.orchestrator.on_stream_removed(self._on_stream_removed)

    def _set_status(self, status: EndpointStatus):
        self.status = status
        debug_log(f"📶 [Endpoint] Status: {status.value}", {"role": self.role.value})

    async def connect(self) -> bool:
        """Join the hub and, as MASTER, start publishing the capture source.

        Returns False and leaves the status at ``error`` when the hub could not
        be reached; the channel keeps retrying in the background.
        """
        if self.role is Role.MASTER:
            if self.config.disable_streaming:
                raise ConfigError("Streaming is disabled for this deployment")
            if not self.source:
                raise ConfigError("A capture source is required to broadcast")

        self._set_status(EndpointStatus.CONNECTING)
        try:
            opened = await self.orchestrator.initialize()
            if self.role is Role.MASTER:
                stream = open_capture(self.source, self.config, self.media_format)
                await self.orchestrator.start_streaming(stream)
        except Exception as e:
            self._set_status(EndpointStatus.ERROR)
            self.log_error("Error connecting endpoint", {"error": str(e), "error_type": type(e).__name__})
            raise

        if not opened:
            self._set_status(EndpointStatus.ERROR)
            self.log_error("Signaling hub unreachable", {"url": self.config.signaling_url})
            return False
        self._set_status(EndpointStatus.CONNECTED)
        return True

    async def disconnect(self):
        await self.orchestrator.disconnect()
        for peer_id in list(self._sinks.keys()):
            await self._stop_sinks(peer_id)
        self._set_status(EndpointStatus.DISCONNECTED)

    async def run(self):
        """Connect and stay connected until cancelled."""
        await self.connect()
        try:
            await asyncio.Future()
        finally:
            await self.disconnect()

    def _create_sink(self, peer_id: str, kind: str):
        if not self.record_dir:
            return MediaBlackhole()
        os.makedirs(self.record_dir, exist_ok=True)
        extension = "wav" if kind == "audio" else "mp4"
        return MediaRecorder(os.path.join(self.record_dir, f"{peer_id}-{kind}.{extension}"))

    async def _on_stream(self, stream: MediaStream, peer_id: str):
        sunk = self._sunk_track_ids.setdefault(peer_id, set())
        for track in stream.get_tracks():
            if track.id in sunk:
                continue
            sunk.add(track.id)
            sink = self._create_sink(peer_id, track.kind)
            sink.addTrack(track)
            await sink.start()
            self._sinks.setdefault(peer_id, []).append(sink)
            self.log_info("Rendering remote track", {"peer_id": peer_id, "kind": track.kind})

    async def _on_stream_removed(self, peer_id: str):
        await self._stop_sinks(peer_id)

    async def _stop_sinks(self, peer_id: str):
        self._sunk_track_ids.pop(peer_id, None)
        for sink in self._sinks.pop(peer_id, []):
            await sink.stop()
        self.log_info("Stream removed", {"peer_id": peer_id})
