# storefront/app/services/realtime/registry.py
"""
Connection registry: one entry per live socket.

A connection starts anonymous and unauthenticated. Only `authenticate`
puts it into rooms; `remove` takes it out of every room it joined.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set

from storefront.app.exceptions import AuthError
from storefront.app.schemas.events import EventType, Role, utcnow
from storefront.app.services.auth_service import Claims
from storefront.app.services.realtime.metrics import REALTIME_CONNECTIONS
from storefront.app.services.realtime.rooms import ADMIN_ROOM, USER_ROOM, RoomRouter, user_channel
from storefront.app.services.realtime.transport import Transport

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Claims:
        ...


@dataclass
class Connection:
    id: str
    user_agent: str = "Unknown"
    authenticated: bool = False
    role: Role = Role.ANONYMOUS
    user_id: Optional[str] = None
    subscriptions: Set[EventType] = field(default_factory=set)
    connected_at: datetime = field(default_factory=utcnow)

    def accepts(self, event_type: EventType) -> bool:
        return not self.subscriptions or event_type in self.subscriptions


class ConnectionRegistry:
    def __init__(self, transport: Transport, verifier: TokenVerifier):
        self.transport = transport
        self.verifier = verifier
        self.connections: Dict[str, Connection] = {}
        self.lock = asyncio.Lock()
        self.router = RoomRouter(transport, self.get)

    async def register(self, connection_id: str, user_agent: str = "Unknown") -> str:
        async with self.lock:
            self.connections[connection_id] = Connection(id=connection_id, user_agent=user_agent or "Unknown")
        REALTIME_CONNECTIONS.labels(role=Role.ANONYMOUS.value).inc()
        logger.info("client connected: %s", connection_id)
        return connection_id

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def all(self) -> List[Connection]:
        return list(self.connections.values())

    def for_user(self, user_id: str) -> List[Connection]:
        return [c for c in self.connections.values() if c.authenticated and c.user_id == user_id]

    async def authenticate(self, connection_id: str, token: Optional[str], declared_role: Optional[str]) -> Claims:
        """
        Verify the token and promote the connection. Raises AuthError and
        leaves the connection untouched on any failure.
        """
        if self.get(connection_id) is None:
            raise AuthError("unknown_connection", "Connection is not registered")

        claims = await self.verifier.verify(token)

        role = Role.ADMIN if declared_role == Role.ADMIN.value else Role.USER
        if role == Role.ADMIN and not claims.is_admin:
            raise AuthError("role_not_permitted", "Admin role not permitted for this token")

        # old rooms go first: a socket never sits in admin-room with a non-admin role
        await self.router.leave_all(connection_id)

        async with self.lock:
            # the socket may have gone away while the token was being verified
            conn = self.connections.get(connection_id)
            if conn is None:
                raise AuthError("unknown_connection", "Connection closed during authentication")
            previous = conn.role
            conn.authenticated = True
            conn.role = role
            conn.user_id = claims.uid

        REALTIME_CONNECTIONS.labels(role=previous.value).dec()
        REALTIME_CONNECTIONS.labels(role=role.value).inc()

        await self.router.join(connection_id, ADMIN_ROOM if role == Role.ADMIN else USER_ROOM)
        await self.router.join(connection_id, user_channel(claims.uid))

        logger.info("%s authenticated: %s (uid=%s)", role.value, connection_id, claims.uid)
        return claims

    async def set_subscriptions(self, connection_id: str, types: Iterable[EventType]) -> bool:
        async with self.lock:
            conn = self.connections.get(connection_id)
            if conn is None or not conn.authenticated:
                return False
            conn.subscriptions = set(types)
        logger.info("client %s subscribed to: %s", connection_id, sorted(t.value for t in conn.subscriptions))
        return True

    async def remove(self, connection_id: str) -> Optional[Connection]:
        async with self.lock:
            conn = self.connections.pop(connection_id, None)
        await self.router.leave_all(connection_id)
        if conn is not None:
            REALTIME_CONNECTIONS.labels(role=conn.role.value).dec()
            logger.info("client disconnected: %s", connection_id)
        return conn

    def count(self) -> int:
        return len(self.connections)

    def admin_count(self) -> int:
        return sum(1 for c in self.connections.values() if c.authenticated and c.role == Role.ADMIN)
