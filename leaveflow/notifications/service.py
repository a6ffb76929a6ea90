"""Notification service — persistence and read-state of notifications."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import DeliveryType, NotificationType
from leaveflow.common.exceptions import NotFoundException
from leaveflow.common.pagination import PaginationParams, paginate
from leaveflow.notifications.models import Notification
from leaveflow.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_ids: Iterable[uuid.UUID],
        type: NotificationType = NotificationType.info,
        delivery_type: DeliveryType = DeliveryType.unicast,
        title: str,
        message: str,
        related_entity_id: Optional[uuid.UUID] = None,
        related_module: Optional[str] = None,
    ) -> list[Notification]:
        """Write one notification per distinct recipient and flush."""
        notifications: list[Notification] = []
        seen: set[uuid.UUID] = set()
        for recipient_id in recipient_ids:
            if recipient_id is None or recipient_id in seen:
                continue
            seen.add(recipient_id)
            notifications.append(
                Notification(
                    recipient_id=recipient_id,
                    type=type,
                    delivery_type=delivery_type,
                    title=title,
                    message=message,
                    related_entity_id=related_entity_id,
                    related_module=related_module,
                )
            )
        if not notifications:
            return []
        db.add_all(notifications)
        await db.flush()
        return notifications

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        recipient_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
    ) -> NotificationListResponse:
        """Paginated notifications for a recipient, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)

        page = await paginate(db, query, pagination, model=Notification)
        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in page.data],
            meta=page.meta,
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
    ) -> Notification:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalars().first()
        if notification is None:
            raise NotFoundException("Notification", notification_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification
