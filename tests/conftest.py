import pytest

from relaycast.core.config import ServerConfig

ENV_VARS = [
    "RELAYCAST_HOST",
    "RELAYCAST_PORT",
    "RELAYCAST_SIGNALING_URL",
    "VITE_HOST_URL",
    "RELAYCAST_RECONNECT_DELAY",
    "RELAYCAST_MAX_RECONNECT_ATTEMPTS",
    "RELAYCAST_STUN_URLS",
    "TURN_ADDRESS",
    "TURN_USERNAME",
    "TURN_PASSWORD",
    "RELAYCAST_DISABLE_STREAMING",
    "RELAYCAST_VIDEO_WIDTH",
    "RELAYCAST_VIDEO_HEIGHT",
    "RELAYCAST_AUDIO",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(clean_env):
    return ServerConfig(signaling_url="ws://hub.test:8080", reconnect_delay=0.0)
