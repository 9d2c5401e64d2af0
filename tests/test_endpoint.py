import dataclasses

import pytest

from relaycast.core.exceptions import ConfigError
from relaycast.endpoint import EndpointStatus, StreamEndpoint
from relaycast.webrtc.channel import SignalingChannel
from relaycast.webrtc.media import MediaStream
from relaycast.webrtc.orchestrator import NegotiationOrchestrator
from tests.fakes import FakeConnector, FakePeerConnection, FakeTrack


class FakeSink:
    def __init__(self, name):
        self.name = name
        self.tracks = []
        self.started = False
        self.stopped = False

    def addTrack(self, track):
        self.tracks.append(track)

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


def make_endpoint(config, role, client_id, **kwargs):
    connector = FakeConnector()
    channel = SignalingChannel(client_id, role, config, connector=connector)
    orchestrator = NegotiationOrchestrator(role, config, channel=channel, peer_factory=FakePeerConnection)
    return StreamEndpoint(role, config, orchestrator=orchestrator, **kwargs), connector


@pytest.mark.asyncio
async def test_master_refuses_when_streaming_disabled(config):
    config = dataclasses.replace(config, disable_streaming=True)
    endpoint, connector = make_endpoint(config, "MASTER", "MASTER-1", source="/dev/video0")

    with pytest.raises(ConfigError):
        await endpoint.connect()

    assert endpoint.status is EndpointStatus.DISCONNECTED
    assert connector.calls == 0


@pytest.mark.asyncio
async def test_master_requires_a_source(config):
    endpoint, connector = make_endpoint(config, "MASTER", "MASTER-1")

    with pytest.raises(ConfigError):
        await endpoint.connect()

    assert connector.calls == 0


@pytest.mark.asyncio
async def test_master_publishes_capture(config, monkeypatch):
    camera = MediaStream([FakeTrack("video")])
    opened = []

    def fake_capture(source, capture_config, media_format=None):
        opened.append((source, media_format))
        return camera

    monkeypatch.setattr("relaycast.endpoint.open_capture", fake_capture)
    endpoint, connector = make_endpoint(config, "MASTER", "MASTER-1", source="/dev/video0", media_format="v4l2")

    assert await endpoint.connect() is True

    assert endpoint.status is EndpointStatus.CONNECTED
    assert opened == [("/dev/video0", "v4l2")]
    assert endpoint.orchestrator.local_stream is camera
    assert connector.last.of_type("register") == [{"type": "register", "role": "MASTER", "clientId": "MASTER-1"}]

    await endpoint.disconnect()
    assert endpoint.status is EndpointStatus.DISCONNECTED
    assert camera.get_tracks()[0].stopped


@pytest.mark.asyncio
async def test_capture_failure_marks_endpoint_errored(config, monkeypatch):
    def broken_capture(source, capture_config, media_format=None):
        raise OSError("no such device")

    monkeypatch.setattr("relaycast.endpoint.open_capture", broken_capture)
    endpoint, _ = make_endpoint(config, "MASTER", "MASTER-1", source="/dev/video9")

    with pytest.raises(OSError):
        await endpoint.connect()

    assert endpoint.status is EndpointStatus.ERROR
    await endpoint.disconnect()


@pytest.mark.asyncio
async def test_viewer_sinks_follow_remote_streams(config, monkeypatch):
    sinks = []

    def fake_sink(self, peer_id, kind):
        sink = FakeSink(f"{peer_id}-{kind}")
        sinks.append(sink)
        return sink

    monkeypatch.setattr(StreamEndpoint, "_create_sink", fake_sink)
    endpoint, _ = make_endpoint(config, "VIEWER", "VIEWER-1")
    await endpoint.connect()
    assert endpoint.status is EndpointStatus.CONNECTED

    video, audio = FakeTrack("video"), FakeTrack("audio")
    stream = MediaStream([video])
    await endpoint.orchestrator.emit('stream', stream, "MASTER-1")
    stream.add_track(audio)
    await endpoint.orchestrator.emit('stream', stream, "MASTER-1")

    assert [sink.name for sink in sinks] == ["MASTER-1-video", "MASTER-1-audio"]
    assert [sink.tracks for sink in sinks] == [[video], [audio]]
    assert all(sink.started for sink in sinks)

    await endpoint.orchestrator.emit('stream-removed', "MASTER-1")
    assert all(sink.stopped for sink in sinks)

    await endpoint.disconnect()


def test_viewer_records_into_directory(config, tmp_path):
    endpoint, _ = make_endpoint(config, "VIEWER", "VIEWER-1", record_dir=str(tmp_path / "recordings"))

    sink = endpoint._create_sink("MASTER-1", "audio")

    assert sink.__class__.__name__ == "MediaRecorder"
    assert (tmp_path / "recordings").is_dir()


@pytest.mark.asyncio
async def test_unreachable_hub_marks_endpoint_errored(config):
    endpoint, connector = make_endpoint(config, "VIEWER", "VIEWER-1")
    connector.fail = True

    assert await endpoint.connect() is False

    assert endpoint.status is EndpointStatus.ERROR
    assert connector.calls >= 1
    await endpoint.disconnect()
    assert endpoint.status is EndpointStatus.DISCONNECTED
