"""
Configuration management for relaycast hub and endpoints.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from aiortc import RTCConfiguration, RTCIceServer

from relaycast.core.exceptions import ConfigError

DEFAULT_STUN_URLS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"Invalid integer for {name}", {"value": value})


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Invalid number for {name}", {"value": value})


@dataclass
class ServerConfig:
    """Hub and endpoint configuration settings."""

    # Hub bind address
    host: str = "0.0.0.0"
    port: int = 8080

    # Where endpoints reach the hub
    signaling_url: str = "ws://localhost:8080"

    # Channel reconnection policy
    reconnect_delay: float = 2.0
    max_reconnect_attempts: int = 5

    # ICE discovery servers
    stun_urls: List[str] = field(default_factory=lambda: list(DEFAULT_STUN_URLS))
    turn_address: Optional[str] = None
    turn_username: str = "user"
    turn_password: str = "password"

    # Viewer-only deployments refuse to broadcast
    disable_streaming: bool = False

    # Capture defaults
    video_width: int = 1280
    video_height: int = 720
    audio: bool = True

    # WebRTC configuration
    rtc_config: Optional[RTCConfiguration] = None

    def __post_init__(self):
        """Initialize configuration from environment variables."""
        self.host = os.environ.get('RELAYCAST_HOST', self.host)
        self.port = _env_int('RELAYCAST_PORT', self.port)

        signaling_url = os.environ.get('RELAYCAST_SIGNALING_URL')
        if signaling_url:
            self.signaling_url = signaling_url
        elif os.environ.get('VITE_HOST_URL'):
            self.signaling_url = f"ws://{os.environ['VITE_HOST_URL']}:{self.port}"

        self.reconnect_delay = _env_float('RELAYCAST_RECONNECT_DELAY', self.reconnect_delay)
        self.max_reconnect_attempts = _env_int('RELAYCAST_MAX_RECONNECT_ATTEMPTS', self.max_reconnect_attempts)
        if self.reconnect_delay < 0 or self.max_reconnect_attempts < 0:
            raise ConfigError("Reconnect policy values must not be negative", {
                "reconnect_delay": self.reconnect_delay,
                "max_reconnect_attempts": self.max_reconnect_attempts
            })

        stun_urls = os.environ.get('RELAYCAST_STUN_URLS')
        if stun_urls is not None:
            self.stun_urls = [url.strip() for url in stun_urls.split(',') if url.strip()]

        self.turn_address = os.environ.get('TURN_ADDRESS', self.turn_address)
        self.turn_username = os.environ.get('TURN_USERNAME', self.turn_username)
        self.turn_password = os.environ.get('TURN_PASSWORD', self.turn_password)

        self.disable_streaming = _env_bool('RELAYCAST_DISABLE_STREAMING', self.disable_streaming)

        self.video_width = _env_int('RELAYCAST_VIDEO_WIDTH', self.video_width)
        self.video_height = _env_int('RELAYCAST_VIDEO_HEIGHT', self.video_height)
        self.audio = _env_bool('RELAYCAST_AUDIO', self.audio)

        self._build_rtc_config()

    def _build_rtc_config(self):
        """Build WebRTC configuration from the configured discovery servers."""
        ice_servers = [RTCIceServer(urls=url) for url in self.stun_urls]

        if self.turn_address:
            ice_servers.append(
                RTCIceServer(
                    urls=f"turn:{self.turn_address}",
                    username=self.turn_username,
                    credential=self.turn_password
                )
            )

        self.rtc_config = RTCConfiguration(iceServers=ice_servers)

    def __str__(self) -> str:
        """String representation of configuration."""
        return (
            f"ServerConfig(host={self.host}, port={self.port}, "
            f"signaling_url={self.signaling_url}, ice_servers={len(self.rtc_config.iceServers)})"
        )
