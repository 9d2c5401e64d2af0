import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer
from aiortc import RTCIceCandidate

from relaycast.core.config import ServerConfig
from relaycast.server import HUB_KEY, create_app
from relaycast.webrtc.media import MediaStream
from relaycast.webrtc.orchestrator import NegotiationOrchestrator, PeerState
from tests.fakes import FakePeerConnection, FakeTrack, wait_for


class Peer:
    """Orchestrator talking to the real hub over a real WebSocket."""

    def __init__(self, config, role, client_id):
        self.pcs = []
        self.events = []
        self.orchestrator = NegotiationOrchestrator(role, config, client_id=client_id, peer_factory=self._factory)
        self.orchestrator.on_stream(lambda stream, peer_id: self.events.append(("stream", stream, peer_id)))
        self.orchestrator.on_stream_removed(lambda peer_id: self.events.append(("stream-removed", peer_id)))

    def _factory(self):
        pc = FakePeerConnection()
        self.pcs.append(pc)
        return pc


@pytest_asyncio.fixture
async def client():
    client = TestClient(TestServer(create_app()))
    await client.start_server()
    yield client
    await client.close()


@pytest.fixture
def hub_config(client):
    return ServerConfig(signaling_url=f"ws://{client.host}:{client.port}/", reconnect_delay=0.0)


async def status(client):
    response = await client.get("/status")
    assert response.status == 200
    return await response.json()


@pytest.mark.asyncio
async def test_status_of_empty_hub(client):
    assert await status(client) == {"clients": [], "master": None}


@pytest.mark.asyncio
async def test_broadcast_session_end_to_end(client, hub_config):
    master = Peer(hub_config, "MASTER", "MASTER-123")
    viewer = Peer(hub_config, "VIEWER", "VIEWER-456")
    camera = MediaStream([FakeTrack("video"), FakeTrack("audio")])

    await master.orchestrator.initialize()
    await master.orchestrator.start_streaming(camera)
    await wait_for(lambda: client.app[HUB_KEY].master is not None)

    await viewer.orchestrator.initialize()
    await wait_for(lambda: master.orchestrator.state_of("VIEWER-456") is PeerState.CONNECTED)
    await wait_for(lambda: viewer.orchestrator.state_of("MASTER-123") is PeerState.ANSWER_SENT)

    assert await status(client) == {
        "clients": [{"id": "MASTER-123", "role": "MASTER"}, {"id": "VIEWER-456", "role": "VIEWER"}],
        "master": "MASTER-123"
    }
    master_pc, viewer_pc = master.pcs[0], viewer.pcs[0]
    assert master_pc.tracks == camera.get_tracks()
    assert viewer_pc.remoteDescription.sdp == master_pc.localDescription.sdp
    assert master_pc.remoteDescription.sdp == viewer_pc.localDescription.sdp

    await master_pc.trigger("icecandidate", RTCIceCandidate(
        component=1, foundation="1", ip="10.0.0.5", port=40000,
        priority=2130706431, protocol="udp", type="host", sdpMid="0", sdpMLineIndex=0
    ))
    await wait_for(lambda: viewer_pc.candidates)
    assert viewer_pc.candidates[0].ip == "10.0.0.5"

    await viewer_pc.set_ice_state("connected")
    assert viewer.orchestrator.state_of("MASTER-123") is PeerState.CONNECTED

    for track in camera.get_tracks():
        await viewer_pc.trigger("track", track)
    streams = [event for event in viewer.events if event[0] == "stream"]
    assert [event[2] for event in streams] == ["MASTER-123", "MASTER-123"]
    assert streams[-1][1].get_tracks() == camera.get_tracks()

    await viewer.orchestrator.disconnect()
    await wait_for(lambda: ("stream-removed", "VIEWER-456") in master.events)

    assert master_pc.closed
    assert master.orchestrator.peers == {}
    assert await status(client) == {
        "clients": [{"id": "MASTER-123", "role": "MASTER"}],
        "master": "MASTER-123"
    }
    await master.orchestrator.disconnect()
    await wait_for(lambda: not client.app[HUB_KEY].registry.entries())


@pytest.mark.asyncio
async def test_viewer_before_master_still_gets_an_offer(client, hub_config):
    viewer = Peer(hub_config, "VIEWER", "VIEWER-1")
    master = Peer(hub_config, "MASTER", "MASTER-1")

    await viewer.orchestrator.initialize()
    await wait_for(lambda: len(client.app[HUB_KEY].registry) == 1)
    await master.orchestrator.initialize()

    await wait_for(lambda: master.orchestrator.state_of("VIEWER-1") is PeerState.CONNECTED)
    assert viewer.orchestrator.state_of("MASTER-1") is PeerState.ANSWER_SENT

    await viewer.orchestrator.disconnect()
    await master.orchestrator.disconnect()
