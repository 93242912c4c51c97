import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from relay import config
from relay.gateway import Connection, Gateway
from relay.private import conversation_key

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("relay.server")


def create_app(gateway: Optional[Gateway] = None) -> FastAPI:
    app = FastAPI(title=config.APP_NAME)
    app.state.gateway = gateway or Gateway()

    # -------------- Health --------------
    @app.get("/health")
    async def health():
        gw = app.state.gateway
        return {"ok": True, "app": config.APP_NAME, "online": len(gw.sessions), "rooms": len(gw.rooms)}

    # -------------- Rooms & History --------------
    @app.get("/rooms")
    async def rooms():
        return {"rooms": app.state.gateway.rooms.list()}

    def _require_room(room_id: str):
        gw = app.state.gateway
        if not gw.rooms.exists(room_id):
            raise HTTPException(404, "Room not found")
        return gw

    @app.get("/rooms/{room_id}/history")
    async def history(room_id: str, limit: int = config.HISTORY_LIMIT):
        gw = _require_room(room_id)
        limit = max(1, min(config.HISTORY_LIMIT, limit))
        messages = gw.store.history_tail(room_id, limit)
        return {"roomId": room_id, "messages": [m.to_wire() for m in messages]}

    @app.get("/rooms/{room_id}/pinned")
    async def pinned(room_id: str):
        gw = _require_room(room_id)
        return {"roomId": room_id, "messages": [p.to_wire() for p in gw.store.pinned(room_id)]}

    # -------------- Users & Conversations --------------
    @app.get("/users/online")
    async def online_users():
        gw = app.state.gateway
        async with gw.lock:
            users = gw.sessions.online_users()
        return {"users": users}

    @app.get("/conversations/{user_a}/{user_b}")
    async def conversation(user_a: str, user_b: str):
        messages = app.state.gateway.private.conversation(user_a, user_b)
        return {"conversationId": conversation_key(user_a, user_b), "messages": [m.to_wire() for m in messages]}

    # -------------- WebSocket --------------
    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        gw = app.state.gateway
        await websocket.accept()
        conn = Connection(websocket)
        conn.start()
        logger.info("New WebSocket connection established")
        try:
            while True:
                try:
                    raw = await websocket.receive_text()
                except KeyError:
                    # binary frame; answered as malformed
                    raw = ""
                await gw.handle_raw(conn, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await gw.disconnect(conn)
            await conn.close()
            logger.info("WebSocket connection closed")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT, ws_ping_interval=config.WS_PING_INTERVAL)
