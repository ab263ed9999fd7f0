"""
FastAPI WebSocket transport for the dialog chat relay
Authenticates sockets against the shared session store and relays dialog messages
"""

from contextlib import asynccontextmanager
from typing import Optional
import time

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from chat_relay import (
    ChatRelay,
    ClientConnection,
    RedisSessionStore,
    SqliteChatStore,
    get_logger,
    log_security_event,
    log_system_event,
    log_websocket_event,
)
from chat_relay.constants import CHAT_DB_PATH, HOST, PORT, REDIS_URL

logger = get_logger()


def create_app(relay: Optional[ChatRelay] = None) -> FastAPI:
    """
    Build the application

    Args:
        relay: Preconfigured relay. When omitted, Redis sessions and the
            SQLite chat store are opened for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Dialog chat relay starting up...")
        session_store = chat_store = None

        if relay is None:
            session_store = RedisSessionStore(REDIS_URL)
            chat_store = await SqliteChatStore(CHAT_DB_PATH).connect()
            app.state.relay = ChatRelay(session_store, chat_store, persistence=chat_store)
            app.state.session_store = session_store
        else:
            app.state.relay = relay
            app.state.session_store = None

        yield

        if chat_store is not None:
            await chat_store.close()
        if session_store is not None:
            await session_store.close()
        logger.info("Dialog chat relay shutting down...")

    app = FastAPI(
        title="Dialog Chat Relay",
        description="Real-time dialog chat with session authentication",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        try:
            stats = await app.state.relay.get_stats()
            store = app.state.session_store
            session_store_ok = await store.ping() if store is not None else True

            return {
                "status": "healthy" if session_store_ok else "degraded",
                "timestamp": time.time(),
                "session_store": "connected" if session_store_ok else "disconnected",
                **stats,
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")

    @app.get("/stats")
    async def get_stats():
        """Get relay statistics"""
        try:
            return {
                "server": "Dialog Chat Relay",
                "timestamp": time.time(),
                **(await app.state.relay.get_stats()),
            }
        except Exception as e:
            logger.error(f"Stats endpoint failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to get stats")

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Authenticate on handshake, then route every text frame"""
        chat_relay: ChatRelay = websocket.app.state.relay
        client_ip = websocket.client.host if websocket.client else "unknown"
        connection = ClientConnection(websocket=websocket, ip_address=client_ip)

        await websocket.accept()
        log_websocket_event("connection_accepted", connection.connection_id, f"client_ip={client_ip}")

        session = await chat_relay.on_open(connection, websocket.url.query)
        if session is None:
            return

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break

                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes")

                try:
                    await chat_relay.on_message(connection, raw)
                except WebSocketDisconnect:
                    raise
                except Exception as e:
                    logger.error(f"Message loop error for user {session.user_id}: {e!r}")
                    log_security_event("message_loop_error", {
                        "client_ip": client_ip,
                        "user_id": session.user_id,
                        "error": str(e),
                    })
                    # Keep serving the connection
                    continue

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for user {session.user_id}")

        except Exception as e:
            log_security_event("websocket_error", {
                "client_ip": client_ip,
                "user_id": session.user_id,
                "error": str(e),
            })
            await chat_relay.on_error(connection, e)

        finally:
            await chat_relay.on_close(connection)

    return app


app = create_app()


if __name__ == "__main__":
    log_system_event("startup", f"Listening on {HOST}:{PORT}")

    uvicorn.run(
        "main:app",
        host=HOST,
        port=PORT,
        reload=False,
        log_level="info",
        access_log=True,
        ws_ping_interval=20,
        ws_ping_timeout=10,
    )
