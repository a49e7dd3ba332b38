# storefront/app/services/dashboard_service.py
"""
Read-only projections pushed to dashboards and storefront clients.

Nothing here is persisted: every call reassembles its snapshot from the
document store. Resource metrics and visitor counts are simulated.
"""
import logging
import random
import time
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from storefront.app.config import ANNOUNCEMENTS, settings
from storefront.app.schemas.events import AnalyticsSnapshot, DashboardData, LiveStats, SystemStats, VisitorData, WebsiteData
from storefront.app.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

RECENT_ORDERS_LIMIT = 5
FEATURED_PRODUCTS_LIMIT = 8
RECENT_ACTIVITY_LIMIT = 10
USER_TREND_DAYS = 7

ANALYTICS_DEFAULTS = {"visitors": 0, "pageViews": 0, "orders": 0, "revenue": 0, "users": 0, "products": 0}


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _created_on(doc: Dict[str, Any]) -> Optional[date]:
    """UTC day of a document's createdAt (ISO string, epoch millis or datetime)."""
    value = doc.get("createdAt")
    try:
        if isinstance(value, datetime):
            moment = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            moment = datetime.fromtimestamp(value / 1000, timezone.utc)
        elif isinstance(value, str):
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            return None
    except (OverflowError, OSError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


class DashboardService:
    def __init__(self, store: DocumentStore,
                 low_stock_threshold: int = settings.LOW_STOCK_THRESHOLD,
                 rng: Optional[random.Random] = None,
                 clock=time.time):
        self.store = store
        self.low_stock_threshold = low_stock_threshold
        self.rng = rng or random.Random()
        self.clock = clock
        self.started_at = clock()

    # -------------------------------------------------------------------
    # Admin dashboard
    # -------------------------------------------------------------------
    async def sales_summary(self) -> Tuple[float, int]:
        orders = await self.store.find("orders")
        revenue = sum(_as_float(o.get("total")) for o in orders)
        return round(revenue, 2), len(orders)

    async def get_dashboard_data(self) -> DashboardData:
        revenue, total_orders = await self.sales_summary()
        return DashboardData(
            totalRevenue=revenue,
            totalOrders=total_orders,
            totalCustomers=await self.store.count("users"),
            totalProducts=await self.store.count("products"),
            recentOrders=await self.store.find("orders", newest_first=True, limit=RECENT_ORDERS_LIMIT),
            lowStockProducts=await self.store.find(
                "products", ranges={"stock": (None, self.low_stock_threshold)}
            ),
        )

    def get_system_stats(self, connected_clients: int) -> SystemStats:
        return SystemStats(
            serverUptime=round(self.clock() - self.started_at, 1),
            responseTime=self.rng.randint(80, 250),
            errorRate=round(self.rng.uniform(0, 1), 2),
            activeUsers=connected_clients,
            memoryUsage=self.rng.randint(30, 70),
            cpuUsage=self.rng.randint(5, 40),
        )

    async def get_live_stats(self, online_count: int) -> LiveStats:
        return LiveStats(
            onlineUsers=online_count,
            recentActivity=await self.store.find("activity", newest_first=True, limit=RECENT_ACTIVITY_LIMIT),
            abandonedCarts=await self.store.count("carts", equals={"status": "abandoned"}),
        )

    async def get_analytics(self) -> AnalyticsSnapshot:
        """
        Tracked counters merged with totals recomputed from the store:
        today's orders, products per category and daily sign-ups for the
        last USER_TREND_DAYS days (oldest first).
        """
        counters = await self.store.get("analytics", "counters") or {}
        counters.pop("id", None)
        users = await self.store.find("users")
        orders = await self.store.find("orders")
        products = await self.store.find("products")

        today = datetime.fromtimestamp(self.clock(), timezone.utc).date()
        order_days = [_created_on(o) for o in orders]
        signups = Counter(_created_on(u) for u in users)

        categories: Dict[str, int] = {}
        for p in products:
            if p.get("category"):
                categories[str(p["category"])] = categories.get(str(p["category"]), 0) + 1

        days = [today - timedelta(days=i) for i in range(USER_TREND_DAYS - 1, -1, -1)]
        return AnalyticsSnapshot.model_validate({
            **ANALYTICS_DEFAULTS,
            **counters,
            "users": len(users),
            "products": len(products),
            "orders": len(orders),
            "revenue": round(sum(_as_float(o.get("total")) for o in orders), 2),
            "todayOrders": sum(1 for d in order_days if d is not None and d >= today),
            "categoryStats": categories,
            "userTrends": [{"date": d.isoformat(), "users": signups.get(d, 0)} for d in days],
        })

    # -------------------------------------------------------------------
    # Storefront
    # -------------------------------------------------------------------
    def simulated_visitors(self) -> VisitorData:
        return VisitorData(
            onlineVisitors=self.rng.randrange(settings.VISITOR_MIN, settings.VISITOR_MAX),
            pageViews=self.rng.randrange(settings.PAGE_VIEWS_MIN, settings.PAGE_VIEWS_MAX),
        )

    async def get_website_data(self) -> WebsiteData:
        featured = await self.store.find(
            "products", equals={"active": True, "featured": True}, limit=FEATURED_PRODUCTS_LIMIT
        )
        return WebsiteData(
            featuredProducts=featured,
            announcements=list(ANNOUNCEMENTS),
            onlineVisitors=self.simulated_visitors().onlineVisitors,
        )
