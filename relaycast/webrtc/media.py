"""
Media stream containers and local capture.
"""
import uuid
from typing import Iterable, List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer

from relaycast.core.config import ServerConfig
from relaycast.core.logging import debug_log


class MediaStream:
    """Tracks that travel together, in the spirit of a browser MediaStream."""

    def __init__(self, tracks: Optional[Iterable[MediaStreamTrack]] = None, stream_id: Optional[str] = None):
        self.id = stream_id or str(uuid.uuid4())
        self._tracks: List[MediaStreamTrack] = []
        for track in tracks or []:
            self.add_track(track)

    def add_track(self, track: MediaStreamTrack) -> bool:
        """Add a track. Returns False when it was already part of the stream."""
        if track in self._tracks:
            return False
        self._tracks.append(track)
        return True

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "audio"]

    def get_video_tracks(self) -> List[MediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "video"]

    def stop(self):
        """Stop every track."""
        for track in self._tracks:
            track.stop()

    def __len__(self) -> int:
        return len(self._tracks)

    def __repr__(self) -> str:
        return f"MediaStream(id={self.id}, tracks={[track.kind for track in self._tracks]})"


def open_capture(source: str, config: ServerConfig, media_format: Optional[str] = None) -> MediaStream:
    """Open a capture device or file and return its tracks as a stream.

    ``source`` is anything ffmpeg understands (``/dev/video0`` with format
    ``v4l2``, a file path, an RTSP url). Resolution and audio follow the
    capture settings of ``config``.
    """
    options = {"video_size": f"{config.video_width}x{config.video_height}"}
    player = MediaPlayer(source, format=media_format, options=options)

    tracks = []
    if player.video is not None:
        tracks.append(player.video)
    if config.audio and player.audio is not None:
        tracks.append(player.audio)

    stream = MediaStream(tracks)
    debug_log(f"🎥 [Media] Capture opened", {
        "source": source,
        "format": media_format,
        "video_size": options["video_size"],
        "tracks": [track.kind for track in tracks]
    })
    return stream
