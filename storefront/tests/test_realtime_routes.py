import pytest
from fastapi.testclient import TestClient

from storefront.app.main import create_app
from storefront.app.services.auth_service import create_access_token
from storefront.app.services.presence import MemoryPresenceStore
from storefront.tests.fakes import FakeTransport, FakeVerifier, connect


def _auth(uid, role="user"):
    return {"Authorization": f"Bearer {create_access_token({'sub': uid, 'role': role})}"}


ADMIN = _auth("admin-1", "admin")
USER = _auth("user-1")


# ---------------------------------------------
# FIXTURES
# ---------------------------------------------

@pytest.fixture
def app(db_url):
    return create_app(database_url=db_url, presence_store=MemoryPresenceStore(),
                      verifier=FakeVerifier(), periodic=False)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def pushes(app):
    """Capture what the realtime server would push to sockets."""
    transport = FakeTransport()
    realtime = app.state.realtime
    realtime.registry.transport = transport
    realtime.router.transport = transport
    return transport


# ---------------------------------------------
# HEALTH / SNAPSHOTS
# ---------------------------------------------

def test_health_and_ready(client):
    assert client.get("/health").json() == {"status": "ok"}
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json()["checks"] == {"db": "ok", "presence": "ok"}
    assert "X-Request-Id" in r.headers

    r = client.get("/realtime/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_realtime_missing_returns_503(app, client):
    app.state.realtime = None
    r = client.get("/realtime/clients-info")
    assert r.status_code == 503
    assert r.json() == {"success": False, "error": "Real-time service not available"}
    assert client.get("/realtime/health").status_code == 503


def test_clients_info_counts_sockets(app, client, pushes):
    realtime = app.state.realtime
    client.portal.call(connect, realtime, "s1")
    body = client.get("/realtime/clients-info").json()
    assert body["success"] is True
    assert body["data"]["totalClients"] == 1
    assert body["data"]["adminClients"] == 0


def test_dashboard_stats_requires_admin(client):
    assert client.get("/realtime/dashboard-stats").status_code == 401
    assert client.get("/realtime/dashboard-stats", headers=USER).json() == {
        "success": False, "error": "admin_required",
    }

    r = client.get("/realtime/dashboard-stats", headers=ADMIN)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["totalOrders"] == 0
    assert "systemStats" in data


def test_website_data_is_public(client):
    r = client.get("/realtime/website-data")
    assert r.status_code == 200
    assert r.json()["data"]["announcements"][0]["message"] == "Welcome to Fragransia"


def test_bad_token_is_rejected(client):
    r = client.get("/realtime/notifications", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"] == "invalid_token"


# ---------------------------------------------
# TRIGGERS
# ---------------------------------------------

def test_trigger_update_broadcasts(client, pushes):
    realtime = client.app.state.realtime
    client.portal.call(connect, realtime, "adm", "admin-token", "admin")
    pushes.clear()

    r = client.post("/realtime/trigger-update", headers=ADMIN,
                    json={"type": "product", "data": {"id": "p1", "name": "Rose", "stock": 0}})
    assert r.status_code == 200
    assert r.json()["message"] == "product update triggered successfully"
    assert pushes.events_for("adm") == ["product-updated", "inventory-alert"]
    assert pushes.frames_for("adm", "inventory-alert")[0]["data"]["status"] == "out-of-stock"


def test_trigger_update_validation(client):
    r = client.post("/realtime/trigger-update", headers=ADMIN, json={"type": "weather", "data": {}})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid update type"

    r = client.post("/realtime/trigger-update", headers=ADMIN, json={"type": "order"})
    assert r.status_code == 400

    r = client.post("/realtime/trigger-update", headers=USER, json={"type": "order", "data": {}})
    assert r.status_code == 403


# ---------------------------------------------
# PRESENCE / LIVE STATS
# ---------------------------------------------

def test_presence_feeds_live_stats(client):
    r = client.post("/realtime/presence", headers=USER, json={"status": "away", "page": "/shop"})
    assert r.status_code == 200

    r = client.get("/realtime/live-stats", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["data"]["onlineUsers"] == 1

    assert client.post("/realtime/presence", headers=USER, json={"status": "gone"}).status_code == 422


# ---------------------------------------------
# NOTIFICATIONS
# ---------------------------------------------

def test_notification_lifecycle(client, pushes):
    r = client.post("/realtime/notifications", headers=ADMIN,
                    json={"userId": "user-1", "title": "Shipped", "message": "On its way"})
    assert r.status_code == 201
    notification = r.json()["data"]
    assert notification["read"] is False

    listed = client.get("/realtime/notifications", headers=USER).json()["data"]
    assert [n["id"] for n in listed] == [notification["id"]]
    assert client.get("/realtime/notifications", headers=_auth("user-2")).json()["data"] == []

    nid = notification["id"]
    assert client.put(f"/realtime/notifications/{nid}/read", headers=_auth("user-2")).status_code == 404
    assert client.put(f"/realtime/notifications/{nid}/read", headers=USER).status_code == 200
    assert client.get("/realtime/notifications", headers=USER).json()["data"][0]["read"] is True

    assert client.delete(f"/realtime/notifications/{nid}", headers=USER).status_code == 200
    assert client.get("/realtime/notifications", headers=USER).json()["data"] == []
    assert client.delete(f"/realtime/notifications/{nid}", headers=USER).status_code == 404


def test_notification_is_pushed_to_user_sockets(client, pushes):
    realtime = client.app.state.realtime
    client.portal.call(connect, realtime, "tab", "user-token", "user")
    pushes.clear()

    client.post("/realtime/notifications", headers=ADMIN,
                json={"userId": "user-1", "title": "Hi", "message": "there"})
    [frame] = pushes.frames_for("tab", "notification")
    assert frame["data"]["title"] == "Hi"


# ---------------------------------------------
# ANALYTICS
# ---------------------------------------------

def test_track_events_update_counters(client):
    store = client.app.state.store
    for event, data in [
        ("page_view", {}),
        ("page_view", {}),
        ("product_view", {"productId": "rose"}),
        ("purchase", {"amount": 49.5}),
    ]:
        r = client.post("/realtime/analytics/track", json={"event": event, "data": data})
        assert r.status_code == 200

    counters = client.portal.call(store.get, "analytics", "counters")
    assert counters["pageViews"] == 2
    assert counters["purchases"] == 1
    assert counters["revenue"] == 49.5
    assert client.portal.call(store.get, "analytics", "product:rose")["views"] == 1
    assert client.portal.call(store.count, "activity") == 4


def test_track_event_validation(client):
    assert client.post("/realtime/analytics/track", json={"event": "product_view"}).status_code == 400
    assert client.post("/realtime/analytics/track", json={"event": "teleport"}).status_code == 422


def test_analytics_snapshot_route(client):
    assert client.get("/realtime/analytics", headers=USER).status_code == 403

    client.post("/realtime/analytics/track", json={"event": "page_view", "data": {}})
    store = client.app.state.store
    client.portal.call(store.put, "products", "p1", {"category": "floral", "total": 1})
    client.portal.call(store.put, "orders", "o1", {"total": 30})

    r = client.get("/realtime/analytics", headers=ADMIN)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["pageViews"] == 1
    assert data["orders"] == 1
    assert data["revenue"] == 30
    assert data["categoryStats"] == {"floral": 1}
    assert len(data["userTrends"]) == 7
    assert isinstance(data["lastActivity"], int)


def test_track_records_last_activity(client):
    store = client.app.state.store
    client.post("/realtime/analytics/track", json={"event": "visitor", "data": {}})
    counters = client.portal.call(store.get, "analytics", "counters")
    assert counters["visitors"] == 1
    assert counters["lastActivity"] > 0


def test_validation_errors_use_error_body(client):
    r = client.post("/realtime/analytics/track", json={"event": "teleport"})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert body["details"][0]["loc"][-1] == "event"
