from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from storefront.app.schemas.events import PresenceStatus


class TriggerUpdateRequest(BaseModel):
    type: str
    data: Any = None


class PresenceUpdate(BaseModel):
    status: PresenceStatus = PresenceStatus.ONLINE
    page: Optional[str] = None


class NotificationCreate(BaseModel):
    userId: Union[str, int]
    title: str
    message: str
    type: str = "info"
    data: Dict[str, Any] = Field(default_factory=dict)


class TrackEvent(BaseModel):
    event: Literal["page_view", "visitor", "product_view", "add_to_cart", "purchase"]
    data: Dict[str, Any] = Field(default_factory=dict)
