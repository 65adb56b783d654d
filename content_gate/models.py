from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_gate.database import Base


class ContentRow(Base):
    __tablename__ = "content"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str] = mapped_column(Text)
    body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    youtube_channel_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    youtube_channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    attachments: Mapped[list["AttachmentRow"]] = relationship(
        back_populates="content",
        order_by="AttachmentRow.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AttachmentRow(Base):
    __tablename__ = "file_attachments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content_id: Mapped[str] = mapped_column(
        ForeignKey("content.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)  # 첨부 순서 보존
    name: Mapped[str] = mapped_column(String(300))
    type: Mapped[str] = mapped_column(String(200))
    size: Mapped[int] = mapped_column(Integer)
    locator: Mapped[str] = mapped_column(Text)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    content: Mapped[ContentRow] = relationship(back_populates="attachments")


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    content_id: Mapped[str] = mapped_column(
        ForeignKey("content.id", ondelete="CASCADE"), index=True
    )
    subscribed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    youtube_subscribed: Mapped[bool] = mapped_column(Boolean, default=False)
    google_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)


class SlotRow(Base):
    """싱글턴 설정 저장용 키-값 슬롯 (channel_policy, admin_credential)."""

    __tablename__ = "slots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON)
