"""Notification Pydantic schemas."""


import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leaveflow.common.constants import DeliveryType, NotificationType
from leaveflow.common.pagination import PaginationMeta


class NotificationResponse(BaseModel):
    """Single notification in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    recipient_id: uuid.UUID
    type: NotificationType
    delivery_type: DeliveryType
    title: str
    message: str
    related_entity_id: Optional[uuid.UUID] = None
    related_module: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: PaginationMeta
