"""
Main entry point for relaycast.
Run with: python -m relaycast {hub,master,viewer}
"""
import argparse
import asyncio
import sys

from relaycast.core.config import ServerConfig
from relaycast.core.logging import debug_log, setup_logging
from relaycast.endpoint import StreamEndpoint
from relaycast.server import main as run_hub
from relaycast.webrtc.orchestrator import NegotiationOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="relaycast", description="WebRTC broadcast signaling relay and endpoints")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("hub", help="run the signaling hub")

    master = sub.add_parser("master", help="broadcast a capture source")
    master.add_argument("--source", required=True, help="capture device, file or url understood by ffmpeg")
    master.add_argument("--format", dest="media_format", default=None, help="ffmpeg input format, e.g. v4l2")
    master.add_argument("--client-id", default=None)

    viewer = sub.add_parser("viewer", help="watch the broadcast")
    viewer.add_argument("--record-dir", default=None, help="write each remote track to this directory")
    viewer.add_argument("--client-id", default=None)

    return parser


async def run_endpoint(args, config: ServerConfig):
    role = "MASTER" if args.command == "master" else "VIEWER"
    orchestrator = NegotiationOrchestrator(role, config, client_id=args.client_id)
    endpoint = StreamEndpoint(
        role,
        config,
        source=getattr(args, "source", None),
        media_format=getattr(args, "media_format", None),
        record_dir=getattr(args, "record_dir", None),
        orchestrator=orchestrator,
    )
    await endpoint.run()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = ServerConfig()

    try:
        if args.command == "hub":
            asyncio.run(run_hub(config, log_level=args.log_level))
        else:
            setup_logging(level=args.log_level, log_file=f"relaycast_{args.command}.log")
            debug_log(f"🚀 [Main] Starting {args.command}", {"config": str(config)})
            asyncio.run(run_endpoint(args, config))
    except KeyboardInterrupt:
        debug_log(f"👋 [Main] Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
