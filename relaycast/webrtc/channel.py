"""
Client side of the signaling protocol: one reconnecting WebSocket to the hub.
"""
import asyncio
from enum import Enum
from typing import Any, Callable, Optional, Union

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from relaycast.core.config import ServerConfig
from relaycast.core.events import ListenerRegistry
from relaycast.core.exceptions import ConnectionError, ProtocolError
from relaycast.signaling.protocol import (
    Answer,
    IceCandidate,
    Offer,
    PeerJoined,
    PeerLeft,
    Register,
    Registered,
    Role,
    decode_message,
    encode_message,
)


class ChannelState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


class SignalingChannel(ListenerRegistry):
    """Reconnecting signaling connection for one endpoint.

    Events emitted to listeners:

    * ``registered`` - the hub acknowledged our registration
    * ``peer-joined`` / ``peer-left`` - ``(PeerInfo)``
    * ``sdpOffer`` / ``sdpAnswer`` / ``iceCandidate`` - ``(payload, from_id)``
    * ``error`` - ``(exception)``, the channel stays usable
    * ``close`` - the transport went away; a reconnect is scheduled

    After ``max_reconnect_attempts`` consecutive failed opens the channel
    stays closed until ``open()`` is called again.
    """

    def __init__(self, client_id: str, role: Union[Role, str],
                 config: Optional[ServerConfig] = None,
                 connector: Optional[Callable[[str], Any]] = None):
        super().__init__()
        self.config = config or ServerConfig()
        self.url = self.config.signaling_url
        self.client_id = client_id
        self.role = Role(role)
        self.reconnect_delay = self.config.reconnect_delay
        self.max_reconnect_attempts = self.config.max_reconnect_attempts

        self._connector = connector or connect
        self._ws = None
        self._state = ChannelState.CLOSED
        self._failed_opens = 0
        self._closed_by_owner = False
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ChannelState.OPEN

    @property
    def reconnect_attempts(self) -> int:
        """Consecutive failed opens since the last successful one."""
        return self._failed_opens

    async def open(self) -> bool:
        """Connect to the hub and register. Resets the reconnect counter."""
        if self._state is not ChannelState.CLOSED:
            self.log_debug("Signaling channel already active", {"state": self._state.value})
            return self.is_open

        self._closed_by_owner = False
        self._failed_opens = 0
        await self._cancel_reconnect()
        return await self._connect()

    async def close(self):
        """Close the transport and stop reconnecting. Safe to call repeatedly."""
        self._closed_by_owner = True
        await self._cancel_reconnect()

        ws, self._ws = self._ws, None
        self._state = ChannelState.CLOSED
        if ws is not None:
            await ws.close()
            self.log_info("Signaling channel closed", {"client_id": self.client_id})

        task, self._receive_task = self._receive_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def send_offer(self, payload: Any, to: str) -> bool:
        return await self._send(Offer(payload=payload, to=to, sender=self.client_id))

    async def send_answer(self, payload: Any, to: str) -> bool:
        return await self._send(Answer(payload=payload, to=to, sender=self.client_id))

    async def send_ice_candidate(self, payload: Any, to: str) -> bool:
        return await self._send(IceCandidate(payload=payload, to=to, sender=self.client_id))

    async def _connect(self) -> bool:
        self._state = ChannelState.CONNECTING
        try:
            ws = await self._connector(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._state = ChannelState.CLOSED
            self._failed_opens += 1
            self.log_warning("Error connecting to signaling hub", {
                "url": self.url,
                "error": str(e),
                "failed_opens": self._failed_opens
            })
            await self.emit('error', ConnectionError("Failed to open signaling connection", {
                "url": self.url,
                "error": str(e)
            }))
            self._schedule_reconnect()
            return False

        if self._closed_by_owner:
            await ws.close()
            self._state = ChannelState.CLOSED
            return False

        self._ws = ws
        self._state = ChannelState.OPEN
        self._failed_opens = 0
        self.log_info("Signaling channel connected", {"url": self.url, "client_id": self.client_id})

        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        await self._send(Register(role=self.role, client_id=self.client_id))
        return True

    async def _receive_loop(self, ws):
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except ConnectionClosed as e:
            self.log_warning("Signaling connection lost", {"error": str(e)})

        if self._ws is not ws:
            return

        self._ws = None
        self._state = ChannelState.CLOSED
        self.log_info("Signaling channel closed by hub", {"client_id": self.client_id})
        await self.emit('close')
        self._schedule_reconnect()

    async def _dispatch(self, raw):
        try:
            message = decode_message(raw)
        except ProtocolError as e:
            self.log_warning("Ignoring malformed signaling frame", {"error": str(e)})
            return

        if isinstance(message, Registered):
            await self.emit('registered')
        elif isinstance(message, PeerJoined):
            await self.emit('peer-joined', message.peer)
        elif isinstance(message, PeerLeft):
            await self.emit('peer-left', message.peer)
        elif isinstance(message, Offer):
            await self.emit('sdpOffer', message.payload, message.sender)
        elif isinstance(message, Answer):
            await self.emit('sdpAnswer', message.payload, message.sender)
        elif isinstance(message, IceCandidate):
            await self.emit('iceCandidate', message.payload, message.sender)
        else:
            self.log_debug("Ignoring hub-bound message type", {"type": message.type})

    async def _send(self, message) -> bool:
        ws = self._ws
        if ws is None or self._state is not ChannelState.OPEN:
            self.log_debug("Dropping message, signaling channel not open", {
                "type": message.type,
                "state": self._state.value
            })
            return False
        try:
            await ws.send(encode_message(message))
            return True
        except ConnectionClosed as e:
            self.log_warning("Dropping message, signaling connection closed", {
                "type": message.type,
                "error": str(e)
            })
            return False

    def _schedule_reconnect(self):
        if self._closed_by_owner:
            return
        if self._failed_opens >= self.max_reconnect_attempts:
            self.log_error("Reconnect attempts exhausted, channel stays closed", {
                "url": self.url,
                "failed_opens": self._failed_opens
            })
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay())

    async def _reconnect_after_delay(self):
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        if self._closed_by_owner or self._state is not ChannelState.CLOSED:
            return
        self.log_info(f"Attempting to reconnect ({self._failed_opens + 1}/{self.max_reconnect_attempts})")
        await self._connect()

    async def _cancel_reconnect(self):
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
