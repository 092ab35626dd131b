"""FastAPI transport for bridge sessions.

One WebSocket connection carries one bridge session: the server streams
every ``ControlMessage`` to the control process and feeds every JSON object
it receives to ``BridgeSession.handle_command``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from vizbridge.config import BridgeSettings
from vizbridge.config import settings as default_settings
from vizbridge.exceptions import BridgeError
from vizbridge.session import BridgeSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from vizbridge.host import WorkspaceHost

logger = logging.getLogger(__name__)

__all__ = ["create_app", "serve"]


def create_app(
    host_factory: Callable[[], WorkspaceHost],
    settings: BridgeSettings | None = None,
) -> FastAPI:
    """Build the transport app; *host_factory* supplies one host per connection."""
    cfg = settings or default_settings
    app = FastAPI(
        title="vizbridge",
        description="Bridge between a control process and a live visualization workspace",
        version="0.1.0",
    )
    app.state.sessions = set()

    @app.get("/health")
    async def health():
        return {"status": "ok", "sessions": len(app.state.sessions)}

    @app.websocket("/ws")
    async def bridge_socket(websocket: WebSocket):
        await websocket.accept()
        session = BridgeSession(host_factory(), settings=cfg)
        sub_id, queue = session.channel.subscribe()
        app.state.sessions.add(session)
        logger.info("control process connected (sessions: %d)", len(app.state.sessions))

        async def forward() -> None:
            while True:
                message = await queue.get()
                await websocket.send_json(message.to_wire())

        forwarder = asyncio.create_task(forward())
        starter = asyncio.create_task(session.start())
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    await session.handle_command(json.loads(raw))
                except (BridgeError, ValueError) as exc:
                    logger.warning("rejected command: %s", exc)
                    session.channel.publish("error", source="command", message=str(exc))
        except WebSocketDisconnect:
            logger.info("control process disconnected")
        finally:
            if not starter.done():
                await asyncio.wait([starter])
            if not starter.cancelled() and starter.exception() is not None:
                logger.warning("session start-up failed: %s", starter.exception())
            await session.close()
            session.channel.unsubscribe(sub_id)
            forwarder.cancel()
            app.state.sessions.discard(session)

    return app


def serve(app: FastAPI, settings: BridgeSettings | None = None) -> None:
    """Run *app* under uvicorn on the configured host and port."""
    import uvicorn

    cfg = settings or default_settings
    logging.basicConfig(level=cfg.log_level)
    uvicorn.run(app, host=cfg.host, port=cfg.port)
