# storefront/app/services/realtime/server.py
"""
RealtimeServer: the single handle the application passes around.

Composes the connection registry, room router, broadcaster, periodic
emitter and presence tracker, and turns client messages into calls on
them. HTTP handlers receive it through a FastAPI dependency.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from storefront.app.config import settings
from storefront.app.exceptions import AuthError
from storefront.app.schemas.events import AnalyticsSnapshot, DashboardData, EventType, LiveStats, Role, SystemStats, WebsiteData
from storefront.app.services.dashboard_service import DashboardService
from storefront.app.services.presence import PresenceTracker
from storefront.app.services.realtime.broadcaster import EventBroadcaster
from storefront.app.services.realtime.metrics import REALTIME_AUTH_FAILURES_TOTAL
from storefront.app.services.realtime.registry import ConnectionRegistry, TokenVerifier
from storefront.app.services.realtime.transport import Transport
from storefront.app.workers.periodic_emitter import PeriodicEmitter

logger = logging.getLogger(__name__)


def _as_dict(data: Any) -> Dict[str, Any]:
    return data if isinstance(data, dict) else {}


class RealtimeServer:
    def __init__(self, transport: Transport, verifier: TokenVerifier,
                 dashboard: DashboardService, presence: PresenceTracker,
                 low_stock_threshold: int = settings.LOW_STOCK_THRESHOLD,
                 stats_interval: float = settings.STATS_INTERVAL_SECONDS,
                 visitor_interval: float = settings.VISITOR_INTERVAL_SECONDS,
                 heartbeat_interval: float = settings.HEARTBEAT_INTERVAL_SECONDS,
                 sleep=asyncio.sleep):
        self.registry = ConnectionRegistry(transport, verifier)
        self.router = self.registry.router
        self.dashboard = dashboard
        self.presence = presence
        self.broadcaster = EventBroadcaster(self.registry, dashboard, low_stock_threshold)
        self.emitter = PeriodicEmitter(
            self.broadcaster,
            stats_interval=stats_interval,
            visitor_interval=visitor_interval,
            heartbeat_interval=heartbeat_interval,
            sleep=sleep,
        )
        self.started = False

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self, periodic: bool = True) -> None:
        if periodic:
            self.emitter.start()
        # stale presence must be deleted even when the periodic pushes are off
        self.presence.start_reaper()
        self.started = True
        logger.info("realtime server started (periodic=%s)", periodic)

    async def stop(self) -> None:
        await self.emitter.stop()
        for conn in self.registry.all():
            await self.registry.remove(conn.id)
        await self.presence.stop()
        self.started = False
        logger.info("realtime server stopped")

    # -------------------------------------------------------------------
    # Client-originated events
    # -------------------------------------------------------------------
    async def on_connect(self, connection_id: str, user_agent: Optional[str] = None) -> None:
        await self.registry.register(connection_id, user_agent or "Unknown")

    async def on_authenticate(self, connection_id: str, data: Any) -> bool:
        data = _as_dict(data)
        try:
            claims = await self.registry.authenticate(connection_id, data.get("token"), data.get("userType"))
        except AuthError as e:
            REALTIME_AUTH_FAILURES_TOTAL.labels(code=e.code).inc()
            logger.info("authentication failed for %s: %s", connection_id, e.code)
            await self.router.send_control(connection_id, "authentication-error", e.as_frame())
            return False

        conn = self.registry.get(connection_id)
        await self.router.send_control(connection_id, "authenticated", {
            "success": True,
            "role": conn.role.value if conn else None,
            "userId": claims.uid,
        })
        try:
            await self.broadcaster.send_initial_data(connection_id)
        except Exception:
            logger.exception("initial data for %s failed", connection_id)
        return True

    async def on_subscribe(self, connection_id: str, data: Any) -> bool:
        requested = _as_dict(data).get("types")
        if not isinstance(requested, (list, tuple)):
            requested = [requested] if requested else []
        types = EventType.parse_many(requested)
        if requested and not types:
            # empty subscriptions accept every type
            logger.info("ignoring subscription from %s: no known types in %r", connection_id, requested)
            return False
        ok = await self.registry.set_subscriptions(connection_id, types)
        if ok:
            await self.router.send_control(connection_id, "subscribed", {"types": sorted(t.value for t in types)})
        return ok

    async def on_admin_action(self, connection_id: str, data: Any) -> bool:
        conn = self.registry.get(connection_id)
        if conn is None or not conn.authenticated or conn.role != Role.ADMIN:
            return False

        data = _as_dict(data)
        action, payload = data.get("action"), data.get("payload")
        handlers = {
            "update-product": self.broadcaster.trigger_product_update,
            "update-order": self.broadcaster.trigger_order_update,
            "update-user": self.broadcaster.trigger_user_update,
            "system-alert": self.broadcaster.trigger_system_alert,
        }
        handler = handlers.get(action)
        if handler is None:
            logger.info("unknown admin action from %s: %s", connection_id, action)
            return False
        try:
            await handler(payload)
        except Exception:
            logger.exception("admin action %s from %s failed", action, connection_id)
            return False
        return True

    async def on_presence(self, connection_id: str, data: Any) -> bool:
        conn = self.registry.get(connection_id)
        if conn is None or not conn.authenticated:
            return False
        data = _as_dict(data)
        try:
            await self.presence.set_presence(
                conn.user_id, data.get("status") or "online", data.get("page"), conn.user_agent
            )
        except ValueError:
            logger.info("invalid presence status from %s: %r", connection_id, data.get("status"))
            return False
        return True

    async def on_disconnect(self, connection_id: str) -> None:
        conn = await self.registry.remove(connection_id)
        if conn is None or not conn.user_id:
            return
        # last socket of this principal gone: its presence goes with it
        if not self.registry.for_user(conn.user_id):
            try:
                await self.presence.remove(conn.user_id)
            except Exception:
                logger.exception("presence cleanup for %s failed", conn.user_id)

    # -------------------------------------------------------------------
    # Triggers (what request handlers call after a mutation)
    # -------------------------------------------------------------------
    async def trigger_product_update(self, product: Any) -> None:
        await self.broadcaster.trigger_product_update(product)

    async def trigger_order_update(self, order: Any) -> None:
        await self.broadcaster.trigger_order_update(order)

    async def trigger_user_update(self, user: Any) -> None:
        await self.broadcaster.trigger_user_update(user)

    async def trigger_system_alert(self, alert: Any) -> None:
        await self.broadcaster.trigger_system_alert(alert)

    async def send_notification(self, user_id: str, notification: Dict[str, Any]) -> int:
        return await self.broadcaster.notify_user(user_id, notification)

    # -------------------------------------------------------------------
    # Read-only accessors
    # -------------------------------------------------------------------
    async def get_dashboard_data(self) -> DashboardData:
        return await self.dashboard.get_dashboard_data()

    def get_system_stats(self) -> SystemStats:
        return self.dashboard.get_system_stats(self.registry.count())

    async def get_website_data(self) -> WebsiteData:
        return await self.dashboard.get_website_data()

    async def get_live_stats(self) -> LiveStats:
        return await self.dashboard.get_live_stats(await self.presence.get_online_count())

    async def get_analytics(self) -> AnalyticsSnapshot:
        return await self.dashboard.get_analytics()

    def get_connected_clients_count(self) -> int:
        return self.registry.count()

    def get_admin_clients_count(self) -> int:
        return self.registry.admin_count()
