# storefront/app/schemas/events.py
"""
Wire schemas for the real-time layer.

Every server push is an Envelope {type, data, timestamp}. EventType is a
closed set; each member knows the Socket.IO event name it travels under.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    PRODUCT_UPDATE = "product-update"
    PRODUCT_AVAILABLE = "product-available"
    ORDER_UPDATE = "order-update"
    ORDER_STATUS_UPDATE = "order-status-update"
    USER_UPDATE = "user-update"
    SYSTEM_ALERT = "system-alert"
    INVENTORY_ALERT = "inventory-alert"
    SALES_UPDATE = "sales-update"
    VISITOR_UPDATE = "visitor-update"
    SYSTEM_STATS_UPDATE = "system-stats-update"
    HEARTBEAT = "heartbeat"
    NOTIFICATION = "notification"
    DASHBOARD_DATA = "dashboard-data"
    WEBSITE_DATA = "website-data"

    @property
    def event_name(self) -> str:
        return _EVENT_NAMES.get(self, self.value)

    @classmethod
    def parse_many(cls, values) -> set:
        """Known types from a client list; unknown strings are dropped."""
        known = set()
        for v in values or []:
            try:
                known.add(cls(v))
            except (TypeError, ValueError):
                continue
        return known


# socket event names that differ from the envelope type
_EVENT_NAMES = {
    EventType.PRODUCT_UPDATE: "product-updated",
    EventType.ORDER_UPDATE: "order-updated",
    EventType.USER_UPDATE: "user-updated",
}


class Role(str, Enum):
    ANONYMOUS = "anonymous"
    USER = "user"
    ADMIN = "admin"


class PresenceStatus(str, Enum):
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"


class Envelope(BaseModel):
    type: EventType
    data: Any = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def event_name(self) -> str:
        return self.type.event_name

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# -------------------------------------------------------------------
# Inbound domain payloads (from request handlers / admin actions)
# Extra fields are kept so the broadcast forwards the record untouched.
# -------------------------------------------------------------------
class ProductPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None
    name: Optional[str] = None
    stock: Optional[int] = None
    active: bool = False


class OrderPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None
    status: Optional[str] = None
    total: Optional[float] = None
    userId: Optional[Union[str, int]] = None


# -------------------------------------------------------------------
# Derived / outbound payloads
# -------------------------------------------------------------------
class InventoryAlertData(BaseModel):
    productId: Any = None
    productName: Any = None
    currentStock: Optional[int] = None
    status: str


class OrderStatusData(BaseModel):
    orderId: Any = None
    status: Any = None
    message: str


class SalesUpdateData(BaseModel):
    newOrder: Any = None
    totalRevenue: float = 0
    totalOrders: int = 0


class VisitorData(BaseModel):
    onlineVisitors: int
    pageViews: int


class HeartbeatData(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    connectedClients: int


class SystemStats(BaseModel):
    serverUptime: float
    responseTime: int
    errorRate: float
    activeUsers: int
    memoryUsage: int
    cpuUsage: int


class DashboardData(BaseModel):
    totalRevenue: float = 0
    totalOrders: int = 0
    totalCustomers: int = 0
    totalProducts: int = 0
    recentOrders: List[Dict[str, Any]] = []
    lowStockProducts: List[Dict[str, Any]] = []


class WebsiteData(BaseModel):
    featuredProducts: List[Dict[str, Any]] = []
    announcements: List[Dict[str, Any]] = []
    onlineVisitors: int = 0


class LiveStats(BaseModel):
    onlineUsers: int
    recentActivity: List[Dict[str, Any]] = []
    abandonedCarts: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class PresenceRecord(BaseModel):
    userId: str
    status: PresenceStatus = PresenceStatus.ONLINE
    currentPage: Optional[str] = None
    lastSeen: float
    userAgent: str = "Unknown"


class AnalyticsSnapshot(BaseModel):
    """Tracked counters (pageViews, visitors, ...) merged with store totals."""
    model_config = ConfigDict(extra="allow")

    users: int = 0
    products: int = 0
    orders: int = 0
    revenue: float = 0
    todayOrders: int = 0
    categoryStats: Dict[str, int] = {}
    userTrends: List[Dict[str, Any]] = []
    lastUpdated: datetime = Field(default_factory=utcnow)
