# storefront/app/services/realtime/transport.py
"""
Transport boundary: the only place that touches the Socket.IO server.
"""
from typing import Any, Protocol

import socketio


class Transport(Protocol):
    async def send(self, connection_id: str, event: str, data: Any) -> None:
        ...


class SocketIOTransport:
    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio

    async def send(self, connection_id: str, event: str, data: Any) -> None:
        await self.sio.emit(event, data, to=connection_id)
