# storefront/app/services/realtime/rooms.py
"""
Room/channel router.

Rooms are named broadcast groups of connection ids:
    admin-room      authenticated admins
    user-room       authenticated non-admins
    user-<id>       private channel of one principal (all of its sockets)

Delivery is fire-and-forget: at most once per connection per call, a
failing socket never aborts the loop for the others.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Set

from storefront.app.exceptions import DeliveryFailure
from storefront.app.schemas.events import Envelope, EventType, Role
from storefront.app.services.realtime.metrics import (
    REALTIME_DELIVERY_FAILURES_TOTAL,
    REALTIME_EVENTS_EMITTED_TOTAL,
)
from storefront.app.services.realtime.transport import Transport

logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin-room"
USER_ROOM = "user-room"

# never dropped by a client's subscription filter
UNFILTERED_TYPES = {EventType.HEARTBEAT}


def user_channel(user_id) -> str:
    return f"user-{user_id}"


class RoomRouter:
    def __init__(self, transport: Transport, resolve: Callable[[str], Optional[Any]]):
        self.transport = transport
        self._resolve = resolve
        self.rooms: Dict[str, Set[str]] = {}
        self.memberships: Dict[str, Set[str]] = {}
        self.lock = asyncio.Lock()

    # -----------------------------
    # MEMBERSHIP
    # -----------------------------
    async def join(self, connection_id: str, room: str) -> bool:
        async with self.lock:
            # role is read under the lock that guards membership
            conn = self._resolve(connection_id)
            if conn is None or not conn.authenticated:
                logger.warning("refusing join of %s to %s: not authenticated", connection_id, room)
                return False
            if room == ADMIN_ROOM and conn.role != Role.ADMIN:
                logger.warning("refusing join of %s to %s: role %s", connection_id, room, conn.role.value)
                return False
            self.rooms.setdefault(room, set()).add(connection_id)
            self.memberships.setdefault(connection_id, set()).add(room)
        return True

    async def leave(self, connection_id: str, room: str) -> None:
        async with self.lock:
            self._discard(connection_id, room)

    async def leave_all(self, connection_id: str) -> None:
        async with self.lock:
            for room in list(self.memberships.get(connection_id, ())):
                self._discard(connection_id, room)
            self.memberships.pop(connection_id, None)

    def _discard(self, connection_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.rooms[room]
        joined = self.memberships.get(connection_id)
        if joined is not None:
            joined.discard(room)
            if not joined:
                del self.memberships[connection_id]

    def members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self.memberships.get(connection_id, ()))

    # -----------------------------
    # DELIVERY
    # -----------------------------
    async def emit_to_room(self, room: str, envelope: Envelope) -> int:
        async with self.lock:
            members = list(self.rooms.get(room, ()))
        conns = [self._resolve(cid) for cid in members]
        return await self.emit_to_connections(
            (c for c in conns if c is not None and c.authenticated
             and (room != ADMIN_ROOM or c.role == Role.ADMIN)),
            envelope,
        )

    async def emit_to_connection(self, connection_id: str, envelope: Envelope) -> bool:
        conn = self._resolve(connection_id)
        if conn is None:
            return False
        return await self._send(connection_id, envelope.event_name, envelope.to_wire(), envelope.type)

    async def emit_to_connections(self, connections: Iterable[Any], envelope: Envelope,
                                  filtered: bool = True) -> int:
        """Fan out one envelope; subscription filters apply unless filtered=False."""
        wire = envelope.to_wire()
        delivered = 0
        for conn in connections:
            if filtered and envelope.type not in UNFILTERED_TYPES and not conn.accepts(envelope.type):
                continue
            if await self._send(conn.id, envelope.event_name, wire, envelope.type):
                delivered += 1
        return delivered

    async def send_control(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Acks and errors that are not part of the EventType set."""
        return await self._send(connection_id, event, data, None)

    async def _send(self, connection_id: str, event: str, data: Any,
                    event_type: Optional[EventType]) -> bool:
        try:
            await self.transport.send(connection_id, event, data)
        except Exception as e:
            failure = DeliveryFailure(connection_id, event, e)
            REALTIME_DELIVERY_FAILURES_TOTAL.inc()
            logger.warning("%s", failure)
            return False
        if event_type is not None:
            REALTIME_EVENTS_EMITTED_TOTAL.labels(type=event_type.value).inc()
        return True
