# storefront/app/routers/realtime.py

import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from storefront.app.exceptions import PayloadValidationError
from storefront.app.schemas.events import utcnow
from storefront.app.schemas.realtime import NotificationCreate, PresenceUpdate, TrackEvent, TriggerUpdateRequest
from storefront.app.services.auth_service import Claims, get_current_admin, get_current_claims
from storefront.app.services.document_store import DocumentStore
from storefront.app.services.realtime.server import RealtimeServer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


# ---------------------------------------
# Dependencies
# ---------------------------------------
def get_realtime(request: Request) -> RealtimeServer:
    realtime: Optional[RealtimeServer] = getattr(request.app.state, "realtime", None)
    if realtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Real-time service not available")
    return realtime


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def _ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


# ---------------------------------------
# Snapshots
# ---------------------------------------
@router.get("/dashboard-stats")
async def dashboard_stats(
    realtime: RealtimeServer = Depends(get_realtime),
    admin: Claims = Depends(get_current_admin),
):
    dashboard = await realtime.get_dashboard_data()
    return _ok({
        **dashboard.model_dump(mode="json"),
        "systemStats": realtime.get_system_stats().model_dump(),
        "timestamp": utcnow().isoformat(),
    })


@router.get("/website-data")
async def website_data(realtime: RealtimeServer = Depends(get_realtime)):
    website = await realtime.get_website_data()
    return _ok({**website.model_dump(mode="json"), "timestamp": utcnow().isoformat()})


@router.get("/live-stats")
async def live_stats(
    realtime: RealtimeServer = Depends(get_realtime),
    admin: Claims = Depends(get_current_admin),
):
    stats = await realtime.get_live_stats()
    return _ok(stats.model_dump(mode="json"), "Live statistics retrieved successfully")


@router.get("/analytics")
async def analytics(
    realtime: RealtimeServer = Depends(get_realtime),
    admin: Claims = Depends(get_current_admin),
):
    snapshot = await realtime.get_analytics()
    return _ok(snapshot.model_dump(mode="json"), "Real-time analytics retrieved successfully")


@router.get("/clients-info")
async def clients_info(realtime: RealtimeServer = Depends(get_realtime)):
    return _ok({
        "totalClients": realtime.get_connected_clients_count(),
        "adminClients": realtime.get_admin_clients_count(),
        "timestamp": utcnow().isoformat(),
    })


@router.get("/health")
async def realtime_health(request: Request):
    healthy = getattr(request.app.state, "realtime", None) is not None
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "success": healthy,
            "service": "real-time",
            "status": "healthy" if healthy else "unavailable",
            "timestamp": utcnow().isoformat(),
        },
    )


# ---------------------------------------
# Manual triggers (testing / admin tools)
# ---------------------------------------
@router.post("/trigger-update")
async def trigger_update(
    payload: TriggerUpdateRequest,
    realtime: RealtimeServer = Depends(get_realtime),
    admin: Claims = Depends(get_current_admin),
):
    triggers = {
        "product": realtime.trigger_product_update,
        "order": realtime.trigger_order_update,
        "user": realtime.trigger_user_update,
        "system-alert": realtime.trigger_system_alert,
    }
    trigger = triggers.get(payload.type)
    if trigger is None:
        raise HTTPException(status_code=400, detail="Invalid update type")
    try:
        await trigger(payload.data)
    except PayloadValidationError as e:
        raise HTTPException(status_code=400, detail=e.detail)
    return _ok(message=f"{payload.type} update triggered successfully")


# ---------------------------------------
# Presence
# ---------------------------------------
@router.post("/presence")
async def update_presence(
    payload: PresenceUpdate,
    request: Request,
    realtime: RealtimeServer = Depends(get_realtime),
    claims: Claims = Depends(get_current_claims),
):
    await realtime.presence.set_presence(
        claims.uid, payload.status.value, payload.page, request.headers.get("user-agent")
    )
    return _ok(message="Presence updated successfully")


# ---------------------------------------
# Notifications
# ---------------------------------------
@router.get("/notifications")
async def list_notifications(
    store: DocumentStore = Depends(get_store),
    claims: Claims = Depends(get_current_claims),
):
    items = await store.find("notifications", equals={"userId": claims.uid}, newest_first=True)
    return _ok(items, "Notifications retrieved successfully")


@router.post("/notifications", status_code=201)
async def send_notification(
    payload: NotificationCreate,
    store: DocumentStore = Depends(get_store),
    realtime: RealtimeServer = Depends(get_realtime),
    admin: Claims = Depends(get_current_admin),
):
    user_id = str(payload.userId)
    notification = await store.insert("notifications", {
        "userId": user_id,
        "title": payload.title,
        "message": payload.message,
        "type": payload.type,
        "data": payload.data,
        "timestamp": int(time.time() * 1000),
        "read": False,
    })
    delivered = await realtime.send_notification(user_id, notification)
    logger.info("notification %s for user %s delivered to %d socket(s)", notification["id"], user_id, delivered)
    return _ok(notification, "Notification sent successfully")


async def _own_notification(store: DocumentStore, notification_id: str, claims: Claims) -> Dict[str, Any]:
    item = await store.get("notifications", notification_id)
    if item is None or item.get("userId") != claims.uid:
        raise HTTPException(status_code=404, detail="Notification not found")
    return item


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    store: DocumentStore = Depends(get_store),
    claims: Claims = Depends(get_current_claims),
):
    item = await _own_notification(store, notification_id, claims)
    item.update({"read": True, "readAt": int(time.time() * 1000)})
    await store.put("notifications", notification_id, item)
    return _ok(message="Notification marked as read")


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    notification_id: str,
    store: DocumentStore = Depends(get_store),
    claims: Claims = Depends(get_current_claims),
):
    await _own_notification(store, notification_id, claims)
    await store.delete("notifications", notification_id)
    return _ok(message="Notification deleted successfully")


# ---------------------------------------
# Activity tracking
# ---------------------------------------
COUNTER_FIELDS = {
    "page_view": "pageViews",
    "visitor": "visitors",
    "add_to_cart": "cartAdditions",
    "purchase": "purchases",
}


@router.post("/analytics/track")
async def track_event(payload: TrackEvent, store: DocumentStore = Depends(get_store)):
    if payload.event == "product_view":
        product_id = payload.data.get("productId")
        if not product_id:
            raise HTTPException(status_code=400, detail="productId is required")
        await store.increment("analytics", f"product:{product_id}", "views")
    else:
        await store.increment("analytics", "counters", COUNTER_FIELDS[payload.event])

    amount = payload.data.get("amount")
    if payload.event == "purchase" and isinstance(amount, (int, float)):
        await store.increment("analytics", "counters", "revenue", amount)

    await store.update("analytics", "counters", {"lastActivity": int(time.time() * 1000)})

    await store.insert("activity", {
        "event": payload.event,
        "data": payload.data,
        "timestamp": int(time.time() * 1000),
    })
    return _ok(message="Event tracked successfully")
