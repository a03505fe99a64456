"""
Module: approval_kernel.selectors.notification_selector
Responsibility: Read a user's in-app notification inbox.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from approval_kernel.db.base import as_utc
from approval_kernel.models.notification import (
    NotificationModel,
    NotificationRecipientModel,
)
from approval_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InboxItem:
    notification_id: int
    entity_reference: str
    message: str
    created_at: datetime
    is_read: bool


class NotificationSelector(BaseSelector):
    def inbox(self, user_id: int, *, unread_only: bool = False) -> list[InboxItem]:
        """Newest first."""
        stmt = (
            select(NotificationModel, NotificationRecipientModel.is_read)
            .join(
                NotificationRecipientModel,
                NotificationRecipientModel.notification_id == NotificationModel.id,
            )
            .where(NotificationRecipientModel.user_id == user_id)
            .order_by(NotificationModel.id.desc())
        )
        if unread_only:
            stmt = stmt.where(NotificationRecipientModel.is_read.is_(False))
        return [
            InboxItem(
                notification_id=n.id,
                entity_reference=n.entity_reference,
                message=n.message,
                created_at=as_utc(n.created_at),
                is_read=is_read,
            )
            for n, is_read in self.session.execute(stmt).all()
        ]
