# storefront/app/services/realtime/broadcaster.py
"""
Event broadcaster: typed triggers invoked by request handlers after a
mutation commits, fanned out to the right rooms.

    product  -> admin-room (+ user-room if active, + inventory alert if stock is low)
    order    -> admin-room, order status to every authenticated client, sales to admin-room
    user     -> admin-room
    alert    -> admin-room

Payloads are forwarded as received. Shape problems are logged and the
event is still emitted with best-effort field access.
"""
import logging
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from storefront.app.config import DEFAULT_STATUS_MESSAGE, STATUS_MESSAGES, settings
from storefront.app.exceptions import PayloadValidationError
from storefront.app.schemas.events import (
    Envelope,
    EventType,
    HeartbeatData,
    InventoryAlertData,
    OrderPayload,
    OrderStatusData,
    ProductPayload,
    Role,
    SalesUpdateData,
    VisitorData,
)
from storefront.app.services.dashboard_service import DashboardService
from storefront.app.services.realtime.registry import ConnectionRegistry
from storefront.app.services.realtime.rooms import ADMIN_ROOM, USER_ROOM, user_channel

logger = logging.getLogger(__name__)


def status_message(status: Optional[str]) -> str:
    return STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE) if isinstance(status, str) else DEFAULT_STATUS_MESSAGE


def inventory_status(stock: int) -> str:
    return "out-of-stock" if stock <= 0 else "low-stock"


def _field(payload: Any, name: str, default=None):
    if isinstance(payload, dict):
        return payload.get(name, default)
    return getattr(payload, name, default)


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse(model: Type[BaseModel], payload: Any, trigger: str) -> Optional[BaseModel]:
    if payload is None:
        raise PayloadValidationError(trigger, "payload is required")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.warning("%s", PayloadValidationError(trigger, str(e).splitlines()[0]))
        return None


class EventBroadcaster:
    def __init__(self, registry: ConnectionRegistry, dashboard: DashboardService,
                 low_stock_threshold: int = settings.LOW_STOCK_THRESHOLD):
        self.registry = registry
        self.router = registry.router
        self.dashboard = dashboard
        self.low_stock_threshold = low_stock_threshold

    # -----------------------------
    # TRIGGERS
    # -----------------------------
    async def trigger_product_update(self, product: Any) -> None:
        parsed = _parse(ProductPayload, product, "product")

        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.PRODUCT_UPDATE, data=product))

        active = parsed.active if parsed else bool(_field(product, "active", False))
        if active:
            await self.router.emit_to_room(USER_ROOM, Envelope(type=EventType.PRODUCT_AVAILABLE, data=product))

        stock = parsed.stock if parsed else _as_int(_field(product, "stock"))
        if stock is not None and stock <= self.low_stock_threshold:
            await self.broadcast_inventory_alert(product, stock)

    async def trigger_order_update(self, order: Any) -> None:
        _parse(OrderPayload, order, "order")

        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.ORDER_UPDATE, data=order))
        await self.notify_order_status(order)

        try:
            revenue, total = await self.dashboard.sales_summary()
        except Exception:
            logger.exception("sales summary unavailable, skipping sales-update")
            return
        await self.broadcast_sales_update(SalesUpdateData(newOrder=order, totalRevenue=revenue, totalOrders=total))

    async def trigger_user_update(self, user: Any) -> None:
        if user is None:
            raise PayloadValidationError("user", "payload is required")
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.USER_UPDATE, data=user))

    async def trigger_system_alert(self, alert: Any) -> None:
        if alert is None:
            raise PayloadValidationError("system-alert", "payload is required")
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SYSTEM_ALERT, data=alert))

    # -----------------------------
    # DERIVED / PERIODIC BROADCASTS
    # -----------------------------
    async def broadcast_inventory_alert(self, product: Any, stock: int) -> None:
        data = InventoryAlertData(
            productId=_field(product, "id"),
            productName=_field(product, "name"),
            currentStock=stock,
            status=inventory_status(stock),
        )
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.INVENTORY_ALERT, data=data.model_dump()))

    async def notify_order_status(self, order: Any) -> None:
        status = _field(order, "status")
        data = OrderStatusData(orderId=_field(order, "id"), status=status, message=status_message(status))
        authenticated = [c for c in self.registry.all() if c.authenticated]
        await self.router.emit_to_connections(
            authenticated, Envelope(type=EventType.ORDER_STATUS_UPDATE, data=data.model_dump())
        )

    async def broadcast_sales_update(self, sales: SalesUpdateData) -> None:
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SALES_UPDATE, data=sales.model_dump()))

    async def broadcast_visitor_update(self, visitors: VisitorData) -> None:
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.VISITOR_UPDATE, data=visitors.model_dump()))

    async def broadcast_system_stats(self) -> None:
        stats = self.dashboard.get_system_stats(self.registry.count())
        await self.router.emit_to_room(ADMIN_ROOM, Envelope(type=EventType.SYSTEM_STATS_UPDATE, data=stats.model_dump()))

    async def broadcast_heartbeat(self) -> int:
        """Every live connection, authenticated or not."""
        data = HeartbeatData(connectedClients=self.registry.count())
        envelope = Envelope(type=EventType.HEARTBEAT, data=data.model_dump(mode="json"))
        return await self.router.emit_to_connections(self.registry.all(), envelope, filtered=False)

    async def notify_user(self, user_id: str, notification: Dict[str, Any]) -> int:
        return await self.router.emit_to_room(
            user_channel(user_id), Envelope(type=EventType.NOTIFICATION, data=notification)
        )

    async def send_initial_data(self, connection_id: str) -> None:
        conn = self.registry.get(connection_id)
        if conn is None or not conn.authenticated:
            return
        if conn.role == Role.ADMIN:
            dashboard = await self.dashboard.get_dashboard_data()
            await self.router.emit_to_connection(
                connection_id, Envelope(type=EventType.DASHBOARD_DATA, data=dashboard.model_dump(mode="json"))
            )
            stats = self.dashboard.get_system_stats(self.registry.count())
            await self.router.emit_to_connection(
                connection_id, Envelope(type=EventType.SYSTEM_STATS_UPDATE, data=stats.model_dump())
            )
        website = await self.dashboard.get_website_data()
        await self.router.emit_to_connection(
            connection_id, Envelope(type=EventType.WEBSITE_DATA, data=website.model_dump(mode="json"))
        )
