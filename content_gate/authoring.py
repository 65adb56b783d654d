"""콘텐츠 작성 서비스 — 관리자 화면이 쓰는 검증된 CRUD 파사드.

스프링 대응: @Service (검증 + Repository 호출). 라우트는 이 서비스만 호출한다.
"""

import logging
from dataclasses import replace
from datetime import datetime

from content_gate.attachments import encode_attachment
from content_gate.domain import ChannelPolicy, Content, generate_id
from content_gate.errors import NotFoundError, ValidationError
from content_gate.schemas import ChannelPolicyForm, ContentForm
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway

logger = logging.getLogger(__name__)


def share_link(public_origin: str, content_id: str) -> str:
    return f"{public_origin.rstrip('/')}/content/{content_id}"


class AuthoringService:
    def __init__(self, store: Store, gateway: YouTubeGateway, max_attachments: int = 5):
        self.store = store
        self.gateway = gateway
        self.max_attachments = max_attachments

    async def create_or_update(self, form: ContentForm) -> Content:
        """새 콘텐츠면 id를 발급하고, 수정이면 생성 시각과 첨부를 유지한다."""
        missing = [
            label
            for label, value in (("제목", form.title), ("설명", form.description), ("본문", form.body))
            if not value.strip()
        ]
        if missing:
            raise ValidationError(f"필수 항목을 입력해주세요: {', '.join(missing)}")

        existing = await self.store.get_content(form.id) if form.id else None

        # 채널 오버라이드를 비워두면 현재 전역 정책 값으로 채운다
        policy = await self.store.get_channel_policy() or ChannelPolicy()
        channel_url = form.youtube_channel_url.strip() or policy.channel_url or None
        channel_id = form.youtube_channel_id.strip() or policy.channel_id or None

        content = Content(
            id=existing.id if existing else (form.id or generate_id()),
            title=form.title.strip(),
            description=form.description.strip(),
            body=form.body,
            created_at=existing.created_at if existing else datetime.now(),
            is_public=form.is_public,
            youtube_channel_url=channel_url,
            youtube_channel_id=channel_id,
            attachments=list(existing.attachments) if existing else [],
        )
        await self.store.put_content(content)
        logger.info("콘텐츠 %s: %s (%s)", "수정" if existing else "생성", content.id, content.title)
        return content

    async def remove(self, content_id: str) -> None:
        await self.store.delete_content(content_id)
        logger.info("콘텐츠 삭제: %s", content_id)

    async def add_attachment(self, content_id: str, name: str, mime_type: str, data: bytes) -> Content:
        content = await self._require(content_id)
        if len(content.attachments) >= self.max_attachments:
            raise ValidationError(f"첨부파일은 최대 {self.max_attachments}개까지 올릴 수 있습니다.")

        attachment = encode_attachment(name, mime_type, data)
        updated = replace(content, attachments=[*content.attachments, attachment])
        await self.store.put_content(updated)
        logger.info("첨부 추가: %s ← %s (%d bytes)", content_id, name, attachment.size)
        return updated

    async def remove_attachment(self, content_id: str, attachment_id: str) -> Content:
        content = await self._require(content_id)
        remaining = [a for a in content.attachments if a.id != attachment_id]
        if len(remaining) == len(content.attachments):
            raise NotFoundError("첨부파일이 없습니다.")

        updated = replace(content, attachments=remaining)
        await self.store.put_content(updated)
        return updated

    async def configure_channel_policy(self, form: ChannelPolicyForm) -> ChannelPolicy:
        """채널 ID가 비어 있고 URL이 있으면 해석을 시도한다. 실패해도 빈 값으로 저장한다."""
        channel_url = form.channel_url.strip()
        channel_id = form.channel_id.strip()
        if not channel_id and channel_url:
            channel_id = await self.gateway.resolve_channel_id(channel_url) or ""
            if not channel_id:
                logger.warning("채널 ID 해석 실패, 빈 값으로 저장: %s", channel_url)

        policy = ChannelPolicy(
            channel_url=channel_url,
            channel_name=form.channel_name.strip(),
            channel_id=channel_id,
            enabled=form.enabled,
        )
        await self.store.put_channel_policy(policy)
        logger.info("채널 정책 저장: %s (id=%s, enabled=%s)", policy.channel_name, policy.channel_id, policy.enabled)
        return policy

    async def _require(self, content_id: str) -> Content:
        content = await self.store.get_content(content_id)
        if content is None:
            raise NotFoundError("요청한 콘텐츠가 없습니다.")
        return content
