"""
Membership registry for the signaling hub.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from relaycast.core.logging import LoggerMixin
from relaycast.signaling.protocol import PeerInfo, Role


@dataclass
class Registration:
    """One registered endpoint and the connection that reaches it."""

    client_id: str
    role: Role
    handle: Any

    @property
    def peer(self) -> PeerInfo:
        return PeerInfo(id=self.client_id, role=self.role)


class RelayRegistry(LoggerMixin):
    """Authoritative mapping of client id to registration."""

    def __init__(self):
        super().__init__()
        self._entries: Dict[str, Registration] = {}

    def register(self, client_id: str, role: Role, handle: Any) -> Optional[Registration]:
        """Insert or overwrite an entry. Returns the replaced entry, if any."""
        previous = self._entries.get(client_id)
        self._entries[client_id] = Registration(client_id=client_id, role=role, handle=handle)

        if previous is not None:
            self.log_info("Registration replaced", {
                "client_id": client_id,
                "previous_role": previous.role.value,
                "role": role.value
            })
        return previous

    def unregister(self, client_id: str) -> Optional[Registration]:
        """Remove and return the entry for a client id."""
        return self._entries.pop(client_id, None)

    def get(self, client_id: Optional[str]) -> Optional[Registration]:
        if client_id is None:
            return None
        return self._entries.get(client_id)

    def others(self, client_id: str) -> List[Registration]:
        """Every entry except the one registered under ``client_id``."""
        return [entry for cid, entry in self._entries.items() if cid != client_id]

    def entries(self) -> List[Registration]:
        return list(self._entries.values())

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
