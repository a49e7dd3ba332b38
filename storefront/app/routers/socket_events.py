# storefront/app/routers/socket_events.py
"""
Socket.IO event bindings.

Client -> server:
    authenticate          {token, userType}
    subscribe-to-updates  {types: [...]}
    admin-action          {action, payload}
    presence              {status, page}

Every handler delegates to RealtimeServer; unauthenticated senders of
subscribe / admin-action / presence are ignored without a reply.
"""
import logging

import socketio

from storefront.app.services.realtime.server import RealtimeServer

logger = logging.getLogger(__name__)


def make_socket_server(cors_allowed_origins="*") -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=cors_allowed_origins,
        ping_timeout=25,
        ping_interval=20,
    )


def register_socket_handlers(sio: socketio.AsyncServer, realtime: RealtimeServer) -> None:

    @sio.event
    async def connect(sid, environ, auth=None):
        await realtime.on_connect(sid, user_agent=(environ or {}).get("HTTP_USER_AGENT"))

    @sio.on("authenticate")
    async def authenticate(sid, data=None):
        await realtime.on_authenticate(sid, data)

    @sio.on("subscribe-to-updates")
    async def subscribe_to_updates(sid, data=None):
        await realtime.on_subscribe(sid, data)

    @sio.on("admin-action")
    async def admin_action(sid, data=None):
        await realtime.on_admin_action(sid, data)

    @sio.on("presence")
    async def presence(sid, data=None):
        await realtime.on_presence(sid, data)

    @sio.event
    async def disconnect(sid, *args):
        await realtime.on_disconnect(sid)

    logger.info("socket.io handlers registered")
