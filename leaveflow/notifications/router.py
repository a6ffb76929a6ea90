"""Notification endpoints — list and mark read."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.pagination import PaginationParams
from leaveflow.database import get_db
from leaveflow.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from leaveflow.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET /recipients/{recipient_id} ──────────────────────────────────

@router.get("/recipients/{recipient_id}", response_model=NotificationListResponse)
async def list_notifications(
    recipient_id: uuid.UUID,
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """List a recipient's notifications, newest first (paginated)."""
    return await NotificationService.get_notifications(
        db, recipient_id, pagination, is_read=is_read,
    )


# ── PUT /{notification_id}/read ─────────────────────────────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id)
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }
