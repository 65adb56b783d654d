"""관리자 화면/API 입출력 모델 — 스프링의 Request/Response DTO."""

from datetime import datetime

from pydantic import BaseModel


class ContentForm(BaseModel):
    """콘텐츠 작성/수정 폼. id가 없으면 새 콘텐츠."""

    id: str | None = None
    title: str = ""
    description: str = ""
    body: str = ""
    is_public: bool = False
    youtube_channel_url: str = ""
    youtube_channel_id: str = ""


class ChannelPolicyForm(BaseModel):
    channel_url: str = ""
    channel_name: str = ""
    channel_id: str = ""
    enabled: bool = True


class AttachmentOut(BaseModel):
    id: str
    name: str
    type: str
    size: int
    uploaded_at: datetime


class ContentSummaryOut(BaseModel):
    """잠긴 상태에서도 보여주는 정보."""

    id: str
    title: str
    description: str
    created_at: datetime
    is_public: bool


class ContentOut(ContentSummaryOut):
    body: str
    youtube_channel_url: str | None = None
    youtube_channel_id: str | None = None
    attachments: list[AttachmentOut] = []
    share_link: str = ""


class SubscriptionOut(BaseModel):
    id: str
    email: str
    content_id: str
    subscribed_at: datetime
    youtube_subscribed: bool


class ChannelPolicyOut(BaseModel):
    channel_url: str
    channel_name: str
    channel_id: str
    enabled: bool


class AccessOut(BaseModel):
    """방문자 접근 결정 응답. granted일 때만 content가 채워진다."""

    attempt_id: str | None = None
    state: str
    message: str = ""
    gating: str = "email"  # "email" | "youtube"
    preview: ContentSummaryOut
    content: ContentOut | None = None
    authorization_url: str | None = None


# ── 도메인 → 응답 변환 ──


def summary_out(content) -> ContentSummaryOut:
    return ContentSummaryOut(
        id=content.id,
        title=content.title,
        description=content.description,
        created_at=content.created_at,
        is_public=content.is_public,
    )


def content_out(content, share_link: str = "") -> ContentOut:
    return ContentOut(
        id=content.id,
        title=content.title,
        description=content.description,
        created_at=content.created_at,
        is_public=content.is_public,
        body=content.body,
        youtube_channel_url=content.youtube_channel_url,
        youtube_channel_id=content.youtube_channel_id,
        attachments=[
            AttachmentOut(id=a.id, name=a.name, type=a.type, size=a.size, uploaded_at=a.uploaded_at)
            for a in content.attachments
        ],
        share_link=share_link,
    )
