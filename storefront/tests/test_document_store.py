import asyncio
import random
from datetime import datetime, timezone

from storefront.app.services.dashboard_service import DashboardService


def test_put_get_insert_delete(open_store):
    async def scenario():
        async with open_store() as store:
            assert await store.get("products", "p1") is None
            await store.put("products", "p1", {"name": "Rose", "stock": 4})
            assert await store.get("products", "p1") == {"id": "p1", "name": "Rose", "stock": 4}

            await store.put("products", "p1", {"name": "Rose", "stock": 9})
            assert (await store.get("products", "p1"))["stock"] == 9
            assert await store.count("products") == 1

            doc = await store.insert("notifications", {"userId": "u1", "read": False})
            assert doc["id"] and (await store.get("notifications", doc["id"]))["userId"] == "u1"

            assert await store.delete("notifications", doc["id"]) is True
            assert await store.delete("notifications", doc["id"]) is False

    asyncio.run(scenario())


def test_find_filters_and_ordering(open_store):
    async def scenario():
        async with open_store() as store:
            for i, (stock, active) in enumerate([(0, True), (5, False), (10, True), (40, True)]):
                await store.put("products", f"p{i}", {"stock": stock, "active": active})

            low = await store.find("products", ranges={"stock": (None, 10)})
            assert [p["id"] for p in low] == ["p0", "p1", "p2"]

            active_low = await store.find("products", equals={"active": True}, ranges={"stock": (1, 10)})
            assert [p["id"] for p in active_low] == ["p2"]

            newest = await store.find("products", newest_first=True, limit=2)
            assert [p["id"] for p in newest] == ["p3", "p2"]

            assert await store.count("products", equals={"active": False}) == 1
            assert await store.count("orders") == 0

    asyncio.run(scenario())


def test_increment_creates_and_accumulates(open_store):
    async def scenario():
        async with open_store() as store:
            assert await store.increment("analytics", "counters", "pageViews") == 1
            await asyncio.gather(*(store.increment("analytics", "counters", "pageViews") for _ in range(5)))
            assert await store.increment("analytics", "counters", "revenue", 12.5) == 12.5

            counters = await store.get("analytics", "counters")
            assert counters["pageViews"] == 6
            assert counters["revenue"] == 12.5

    asyncio.run(scenario())


def test_dashboard_snapshot(open_store):
    async def scenario():
        async with open_store() as store:
            for i in range(7):
                await store.put("orders", f"o{i}", {"total": 10 + i, "status": "pending"})
            await store.put("products", "rose", {"name": "Rose", "stock": 2, "active": True, "featured": True})
            await store.put("products", "oud", {"name": "Oud", "stock": 50, "active": True, "featured": True})
            await store.put("products", "musk", {"name": "Musk", "stock": 80, "active": False, "featured": True})
            await store.put("users", "u1", {"email": "a@b.c"})

            dashboard = DashboardService(store, low_stock_threshold=10, rng=random.Random(3))
            data = await dashboard.get_dashboard_data()
            assert data.totalOrders == 7
            assert data.totalRevenue == sum(10 + i for i in range(7))
            assert data.totalCustomers == 1
            assert data.totalProducts == 3
            assert [o["id"] for o in data.recentOrders] == ["o6", "o5", "o4", "o3", "o2"]
            assert [p["id"] for p in data.lowStockProducts] == ["rose"]

            website = await dashboard.get_website_data()
            assert [p["id"] for p in website.featuredProducts] == ["rose", "oud"]
            assert website.announcements
            assert 10 <= website.onlineVisitors < 60

    asyncio.run(scenario())


def test_live_stats_and_simulated_metrics(open_store):
    async def scenario():
        async with open_store() as store:
            for i in range(12):
                await store.insert("activity", {"event": "page_view", "n": i})
            await store.put("carts", "c1", {"status": "abandoned"})
            await store.put("carts", "c2", {"status": "open"})

            dashboard = DashboardService(store, rng=random.Random(1))
            live = await dashboard.get_live_stats(online_count=4)
            assert live.onlineUsers == 4
            assert len(live.recentActivity) == 10
            assert live.recentActivity[0]["n"] == 11
            assert live.abandonedCarts == 1

            stats = dashboard.get_system_stats(connected_clients=3)
            assert stats.activeUsers == 3
            assert 80 <= stats.responseTime <= 250
            assert 0 <= stats.errorRate <= 1

    asyncio.run(scenario())


def test_update_merges_fields(open_store):
    async def scenario():
        async with open_store() as store:
            await store.increment("analytics", "counters", "pageViews", 2)
            doc = await store.update("analytics", "counters", {"lastActivity": 1700000000000})
            assert doc["pageViews"] == 2
            assert doc["lastActivity"] == 1700000000000
            assert (await store.update("analytics", "fresh", {"a": 1}))["a"] == 1

    asyncio.run(scenario())


def test_analytics_snapshot(open_store):
    noon = datetime(2026, 3, 10, 12, tzinfo=timezone.utc).timestamp()
    yesterday_ms = int(datetime(2026, 3, 9, 18, tzinfo=timezone.utc).timestamp() * 1000)

    async def scenario():
        async with open_store() as store:
            await store.increment("analytics", "counters", "pageViews", 3)
            await store.increment("analytics", "counters", "revenue", 999)

            await store.put("orders", "o1", {"total": 20, "createdAt": "2026-03-10T08:00:00Z"})
            await store.put("orders", "o2", {"total": 15.5, "createdAt": yesterday_ms})
            await store.put("orders", "o3", {"total": 4.5})

            await store.put("users", "u1", {"createdAt": "2026-03-10T01:00:00+00:00"})
            await store.put("users", "u2", {"createdAt": "2026-03-10T23:00:00Z"})
            await store.put("users", "u3", {"createdAt": "2026-03-04T10:00:00Z"})
            await store.put("users", "u4", {"createdAt": "2026-03-01T10:00:00Z"})
            await store.put("users", "u5", {"createdAt": "not a date"})

            await store.put("products", "p1", {"category": "floral"})
            await store.put("products", "p2", {"category": "floral"})
            await store.put("products", "p3", {"category": "woody"})
            await store.put("products", "p4", {"name": "uncategorised"})

            snapshot = await DashboardService(store, clock=lambda: noon).get_analytics()
            assert snapshot.users == 5
            assert snapshot.products == 4
            assert snapshot.orders == 3
            assert snapshot.revenue == 40.0
            assert snapshot.todayOrders == 1
            assert snapshot.categoryStats == {"floral": 2, "woody": 1}
            assert snapshot.userTrends == [
                {"date": "2026-03-04", "users": 1},
                {"date": "2026-03-05", "users": 0},
                {"date": "2026-03-06", "users": 0},
                {"date": "2026-03-07", "users": 0},
                {"date": "2026-03-08", "users": 0},
                {"date": "2026-03-09", "users": 0},
                {"date": "2026-03-10", "users": 2},
            ]
            dumped = snapshot.model_dump()
            assert dumped["pageViews"] == 3
            assert dumped["visitors"] == 0
            assert "id" not in dumped

    asyncio.run(scenario())
