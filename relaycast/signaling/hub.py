"""
Signaling hub: registers endpoints and relays negotiation messages between them.
"""
import asyncio
from typing import Any, Dict, Optional, Union

from relaycast.core.exceptions import ProtocolError
from relaycast.core.logging import LoggerMixin, debug_log
from relaycast.signaling.protocol import (
    RELAYED_TYPES,
    PeerJoined,
    PeerLeft,
    Register,
    Registered,
    Role,
    decode_message,
    encode_message,
)
from relaycast.signaling.registry import Registration, RelayRegistry


class SignalingHub(LoggerMixin):
    """Owns the registry and routes wire messages between connection handles.

    A handle is any object with an awaitable ``send_str(text)``, such as an
    aiohttp ``WebSocketResponse``. All mutations go through ``dispatch`` and
    ``disconnect``, which share one lock so frames are processed one at a time
    in arrival order.
    """

    def __init__(self, registry: Optional[RelayRegistry] = None):
        super().__init__()
        self.registry = registry if registry is not None else RelayRegistry()
        self.master: Optional[Registration] = None
        self._handle_ids: Dict[int, str] = {}
        self._dispatch_lock = asyncio.Lock()

    async def dispatch(self, handle: Any, raw: Union[str, bytes]):
        """Process one inbound frame from ``handle``."""
        async with self._dispatch_lock:
            try:
                message = decode_message(raw, strict=False)
            except ProtocolError as e:
                self.log_debug("🚫 [Hub] Ignoring malformed frame", {
                    "error": str(e),
                    "frame": raw[:200] if isinstance(raw, (str, bytes)) else repr(raw)[:200]
                })
                return

            if isinstance(message, Register):
                await self.register(message.client_id, message.role, handle)
            elif isinstance(message, RELAYED_TYPES):
                await self.route(message, raw)
            else:
                self.log_debug("🚫 [Hub] Ignoring client-bound message type", {"type": message.type})

    async def disconnect(self, handle: Any):
        """Transport close for ``handle``: drop the registration it still owns."""
        async with self._dispatch_lock:
            client_id = self._handle_ids.pop(id(handle), None)
            if client_id is None:
                return
            entry = self.registry.get(client_id)
            if entry is None or entry.handle is not handle:
                # id was taken over by a newer connection
                self.log_info("Stale connection closed", {"client_id": client_id})
                return
            await self.unregister(client_id)

    async def register(self, client_id: str, role: Role, handle: Any) -> Registration:
        """Insert or overwrite a registration and announce it."""
        owned_id = self._handle_ids.get(id(handle))
        if owned_id is not None and owned_id != client_id:
            owned = self.registry.get(owned_id)
            if owned is not None and owned.handle is handle:
                await self.unregister(owned_id)

        previous = self.registry.register(client_id, role, handle)
        if previous is not None and previous.handle is not handle:
            self._handle_ids.pop(id(previous.handle), None)
        self._handle_ids[id(handle)] = client_id

        entry = self.registry.get(client_id)
        if role is Role.MASTER:
            self.master = entry
        elif previous is not None and self.master is previous:
            self.master = None

        debug_log(f"📝 [Hub] Client registered", {
            "client_id": client_id,
            "role": role.value,
            "total_clients": len(self.registry),
            "master": self.master.client_id if self.master else None
        })

        await self._send(handle, encode_message(Registered()))

        joined = encode_message(PeerJoined(peer=entry.peer))
        for other in self.registry.others(client_id):
            await self._send(other.handle, joined)

        for other in self.registry.others(client_id):
            await self._send(handle, encode_message(PeerJoined(peer=other.peer)))

        return entry

    async def route(self, message, raw: Union[str, bytes]) -> bool:
        """Forward a directed message verbatim. Unknown targets are dropped."""
        target = self.registry.get(message.to)
        if target is None:
            self.log_debug("📭 [Hub] Dropping message for unknown peer", {
                "type": message.type,
                "to": message.to,
                "from": message.sender
            })
            return False

        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return await self._send(target.handle, raw)

    async def unregister(self, client_id: str) -> Optional[Registration]:
        """Remove a registration and tell everyone else it left."""
        entry = self.registry.unregister(client_id)
        if entry is None:
            return None

        self._handle_ids.pop(id(entry.handle), None)
        if self.master is entry:
            self.master = None

        debug_log(f"🔌 [Hub] Client disconnected", {
            "client_id": client_id,
            "role": entry.role.value,
            "total_clients": len(self.registry)
        })

        left = encode_message(PeerLeft(peer=entry.peer))
        for other in self.registry.entries():
            await self._send(other.handle, left)

        return entry

    async def _send(self, handle: Any, text: str) -> bool:
        try:
            await handle.send_str(text)
            return True
        except Exception as e:
            self.log_warning("Failed to send to client", {
                "client_id": self._handle_ids.get(id(handle)),
                "error": str(e),
                "error_type": type(e).__name__
            })
            return False

    def snapshot(self) -> Dict[str, Any]:
        """Presence view of the hub."""
        return {
            "clients": [entry.peer.to_dict() for entry in self.registry.entries()],
            "master": self.master.client_id if self.master else None
        }

    async def close(self):
        """Close every registered connection and empty the registry."""
        async with self._dispatch_lock:
            for entry in self.registry.entries():
                self.registry.unregister(entry.client_id)
                close = getattr(entry.handle, "close", None)
                if close is None:
                    continue
                try:
                    await close()
                except Exception as e:
                    self.log_warning("Failed to close client connection", {
                        "client_id": entry.client_id,
                        "error": str(e)
                    })
            self._handle_ids.clear()
            self.master = None
