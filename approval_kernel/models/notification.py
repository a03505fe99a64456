"""
Module: approval_kernel.models.notification
Responsibility: ORM persistence for in-app notifications written by the
    in-app delivery channel (one message row, one row per recipient).
Architecture position: Kernel > Models.

Notifications are written in their own transaction, after the workflow
action has committed; losing one never affects record state.
"""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base


class NotificationModel(Base):
    __tablename__ = "notifications"

    entity_reference: Mapped[str] = mapped_column(String(80), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    recipients: Mapped[list["NotificationRecipientModel"]] = relationship(
        back_populates="notification",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class NotificationRecipientModel(Base):
    __tablename__ = "notification_recipients"
    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_notification_user"),
    )

    notification_id: Mapped[int] = mapped_column(
        ForeignKey("notifications.id"), nullable=False,
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notification: Mapped[NotificationModel] = relationship(back_populates="recipients")
