"""도메인 레코드 — 저장소와 서비스 사이에서 주고받는 DTO.

ORM 모델(models.py)은 저장소 밖으로 나가지 않는다.
스프링에서 Entity를 Controller까지 흘리지 않고 DTO로 변환하는 것과 같다.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime


def generate_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class FileAttachment:
    """첨부파일. locator는 바이트로 되돌릴 수 있는 불투명 참조(data: URL)다."""

    id: str
    name: str
    type: str
    size: int
    locator: str
    uploaded_at: datetime


@dataclass
class Content:
    """게이팅 대상 콘텐츠. 채널 오버라이드가 비어 있으면 전역 ChannelPolicy를 따른다."""

    id: str
    title: str
    description: str
    body: str
    created_at: datetime
    is_public: bool = False
    youtube_channel_url: str | None = None
    youtube_channel_id: str | None = None
    attachments: list[FileAttachment] = field(default_factory=list)


@dataclass(frozen=True)
class Subscription:
    """접근 허용 기록. (email, content_id)가 자연키지만 DB 제약은 없다."""

    id: str
    email: str
    content_id: str
    subscribed_at: datetime
    youtube_subscribed: bool = False
    google_access_token: str | None = None


@dataclass(frozen=True)
class ChannelPolicy:
    """전역 채널 정책 (싱글턴)."""

    channel_url: str = ""
    channel_name: str = ""
    channel_id: str = ""
    enabled: bool = False


@dataclass(frozen=True)
class AdminCredential:
    email: str
    secret: str


@dataclass(frozen=True)
class VisitorIdentity:
    """OAuth 완료 후 전달되는 방문자 신원 (저장하지 않음)."""

    access_token: str
    email: str = ""
    refresh_token: str | None = None
    profile: dict = field(default_factory=dict)
