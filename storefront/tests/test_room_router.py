import asyncio

from storefront.app.schemas.events import Envelope, EventType
from storefront.app.services.realtime.registry import ConnectionRegistry
from storefront.app.services.realtime.rooms import ADMIN_ROOM, USER_ROOM
from storefront.tests.fakes import FakeTransport, FakeVerifier


async def _setup(transport):
    reg = ConnectionRegistry(transport, FakeVerifier())
    await reg.register("admin")
    await reg.register("user")
    await reg.register("anon")
    await reg.authenticate("admin", "admin-token", "admin")
    await reg.authenticate("user", "user-token", "user")
    return reg


def test_join_refused_for_unauthenticated_connection():
    async def scenario():
        reg = await _setup(FakeTransport())
        assert await reg.router.join("anon", USER_ROOM) is False
        assert await reg.router.join("missing", USER_ROOM) is False
        assert "anon" not in reg.router.members(USER_ROOM)

    asyncio.run(scenario())


def test_admin_room_requires_admin_role():
    async def scenario():
        reg = await _setup(FakeTransport())
        assert await reg.router.join("user", ADMIN_ROOM) is False
        assert reg.router.members(ADMIN_ROOM) == {"admin"}

    asyncio.run(scenario())


def test_join_is_idempotent():
    async def scenario():
        reg = await _setup(FakeTransport())
        assert await reg.router.join("user", "promo") is True
        assert await reg.router.join("user", "promo") is True
        assert reg.router.members("promo") == {"user"}

    asyncio.run(scenario())


def test_leave_drops_empty_rooms():
    async def scenario():
        reg = await _setup(FakeTransport())
        await reg.router.join("user", "promo")
        await reg.router.leave("user", "promo")
        assert "promo" not in reg.router.rooms
        assert "promo" not in reg.router.rooms_of("user")

    asyncio.run(scenario())


def test_emit_to_room_reaches_members_only():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        delivered = await reg.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SYSTEM_ALERT, data={"m": 1}))
        assert delivered == 1
        assert transport.events_for("admin") == ["system-alert"]
        assert transport.events_for("user") == []
        assert transport.events_for("anon") == []

    asyncio.run(scenario())


def test_wire_event_names_and_envelope_shape():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        await reg.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.PRODUCT_UPDATE, data={"id": "p1"}))
        [(sid, event, wire)] = transport.frames
        assert event == "product-updated"
        assert wire["type"] == "product-update"
        assert wire["data"] == {"id": "p1"}
        assert isinstance(wire["timestamp"], str)

    asyncio.run(scenario())


def test_failing_socket_does_not_block_others():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        for sid in ("a2", "a3"):
            await reg.register(sid)
            await reg.authenticate(sid, "admin-token", "admin")
        transport.broken.add("a2")

        delivered = await reg.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SYSTEM_ALERT, data={}))
        assert delivered == 2
        assert transport.events_for("admin") == ["system-alert"]
        assert transport.events_for("a3") == ["system-alert"]
        assert transport.events_for("a2") == []

    asyncio.run(scenario())


def test_subscription_filter_drops_unwanted_types():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        await reg.set_subscriptions("admin", {EventType.SALES_UPDATE})

        await reg.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SYSTEM_ALERT, data={}))
        await reg.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SALES_UPDATE, data={}))
        assert transport.events_for("admin") == ["sales-update"]

    asyncio.run(scenario())


def test_heartbeat_ignores_subscription_filter():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        await reg.set_subscriptions("user", {EventType.SALES_UPDATE})
        await reg.router.emit_to_connections(
            reg.all(), Envelope(type=EventType.HEARTBEAT, data={}), filtered=False
        )
        assert transport.events_for("user") == ["heartbeat"]
        assert transport.events_for("anon") == ["heartbeat"]

    asyncio.run(scenario())


def test_emit_to_connection_unknown_socket():
    async def scenario():
        transport = FakeTransport()
        reg = await _setup(transport)
        assert await reg.router.emit_to_connection("nope", Envelope(type=EventType.WEBSITE_DATA)) is False
        assert transport.frames == []

    asyncio.run(scenario())
