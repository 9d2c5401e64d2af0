"""
Signaling hub server: exposes the hub over WebSocket with aiohttp.
"""
import asyncio
import json
from typing import Optional

from aiohttp import web

from relaycast.core.config import ServerConfig
from relaycast.core.logging import debug_log, setup_logging
from relaycast.signaling.hub import SignalingHub

HUB_KEY = web.AppKey("hub", SignalingHub)


async def handle_signaling(request):
    """Upgrade to a signaling WebSocket and feed its frames to the hub."""
    hub: SignalingHub = request.app[HUB_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    debug_log(f"🔗 [Server] New client connected", {"remote": request.remote})

    try:
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                await hub.dispatch(ws, msg.data)
            elif msg.type == web.WSMsgType.ERROR:
                debug_log(f"❌ [Server] WebSocket error", {
                    "remote": request.remote,
                    "error": str(ws.exception())
                }, "ERROR")
    finally:
        await hub.disconnect(ws)
        debug_log(f"🔌 [Server] Client connection closed", {"remote": request.remote})

    return ws


async def handle_status(request):
    """Report who is present on the hub."""
    hub: SignalingHub = request.app[HUB_KEY]
    return web.Response(
        content_type="application/json",
        text=json.dumps(hub.snapshot())
    )


async def _close_hub(app: web.Application):
    await app[HUB_KEY].close()


def create_app(hub: Optional[SignalingHub] = None) -> web.Application:
    """Build the aiohttp application serving one hub instance."""
    app = web.Application()
    app[HUB_KEY] = hub if hub is not None else SignalingHub()
    app.router.add_get("/", handle_signaling)
    app.router.add_get("/status", handle_status)
    app.on_shutdown.append(_close_hub)
    return app


async def main(config: Optional[ServerConfig] = None, log_level: str = "INFO"):
    """Run the hub until cancelled."""
    config = config or ServerConfig()
    setup_logging(level=log_level, log_file="relaycast_hub.log")

    app = create_app()
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.host, config.port)
    debug_log(f"🌐 [Main] Starting signaling hub on {config.host}:{config.port}")
    await site.start()

    try:
        await asyncio.Future()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
