"""영속 저장소 — 콘텐츠/첨부/구독/채널 정책/관리자 계정.

스프링 대응:
- Store = @Repository 여러 개를 하나로 묶은 파사드
- open()/close() = DataSource 초기화/종료 (FastAPI lifespan에서 호출)
- 모든 쓰기는 commit 후 반환 → 호출이 성공했다면 이미 디스크에 있다

ORM 객체는 밖으로 내보내지 않고 domain.py의 레코드로 변환한다.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import asdict

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload

from content_gate.database import Base, create_engine, create_session_factory
from content_gate.domain import AdminCredential, ChannelPolicy, Content, FileAttachment, Subscription
from content_gate.errors import NotFoundError, StoreUnavailableError
from content_gate.models import AttachmentRow, ContentRow, SlotRow, SubscriptionRow

logger = logging.getLogger(__name__)

CHANNEL_POLICY_SLOT = "channel_policy"
ADMIN_CREDENTIAL_SLOT = "admin_credential"


class Store:
    def __init__(self, database_url: str, bootstrap_admin: AdminCredential | None = None):
        self.database_url = database_url
        self.bootstrap_admin = bootstrap_admin
        self._engine = None
        self._session_factory = None

    # ── 생명주기 ──

    async def open(self) -> None:
        if self._engine is not None:
            return
        engine = None
        try:
            engine = create_engine(self.database_url)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            if engine is not None:
                await engine.dispose()
            logger.error("저장소 초기화 실패 (%s): %s", self.database_url, e)
            raise StoreUnavailableError("저장소를 열 수 없습니다.") from e

        self._engine = engine
        self._session_factory = create_session_factory(engine)
        logger.info("저장소 열림: %s", self.database_url)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("저장소 닫힘")

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def __aenter__(self) -> "Store":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @asynccontextmanager
    async def _session(self):
        """세션을 열고 DB 예외를 StoreUnavailableError로 바꾼다."""
        if self._session_factory is None:
            raise StoreUnavailableError("저장소가 열려 있지 않습니다.")
        try:
            async with self._session_factory() as db:
                yield db
        except SQLAlchemyError as e:
            logger.error("저장소 접근 실패: %s", e)
            raise StoreUnavailableError("저장소에 접근할 수 없습니다.") from e

    # ── 콘텐츠 ──

    async def put_content(self, content: Content) -> None:
        """id 기준 upsert. 첨부 목록은 content.attachments와 같아지도록 동기화한다.

        콘텐츠와 첨부를 한 트랜잭션으로 커밋하므로 첨부가 빠진 콘텐츠를 읽는 일은 없다.
        """
        async with self._session() as db:
            result = await db.execute(
                select(ContentRow)
                .options(joinedload(ContentRow.attachments))
                .where(ContentRow.id == content.id)
            )
            row = result.unique().scalar_one_or_none()
            if row is None:
                row = ContentRow(id=content.id)
                db.add(row)

            row.title = content.title
            row.description = content.description
            row.body = content.body
            row.created_at = content.created_at
            row.is_public = content.is_public
            row.youtube_channel_url = content.youtube_channel_url or None
            row.youtube_channel_id = content.youtube_channel_id or None

            existing = {a.id: a for a in row.attachments}
            attachment_rows = []
            for position, attachment in enumerate(content.attachments):
                attachment_row = existing.get(attachment.id) or AttachmentRow(id=attachment.id)
                attachment_row.position = position
                attachment_row.name = attachment.name
                attachment_row.type = attachment.type
                attachment_row.size = attachment.size
                attachment_row.locator = attachment.locator
                attachment_row.uploaded_at = attachment.uploaded_at
                attachment_rows.append(attachment_row)
            # 목록에서 빠진 첨부는 delete-orphan으로 삭제된다
            row.attachments = attachment_rows

            await db.commit()

    async def list_content(self) -> list[Content]:
        """최신순 전체 콘텐츠. LEFT JOIN 한 번으로 첨부까지 채운다."""
        async with self._session() as db:
            result = await db.execute(
                select(ContentRow)
                .options(joinedload(ContentRow.attachments))
                .order_by(ContentRow.created_at.desc())
            )
            return [_to_content(row) for row in result.unique().scalars().all()]

    async def get_content(self, content_id: str) -> Content | None:
        async with self._session() as db:
            result = await db.execute(
                select(ContentRow)
                .options(joinedload(ContentRow.attachments))
                .where(ContentRow.id == content_id)
            )
            row = result.unique().scalar_one_or_none()
            return _to_content(row) if row else None

    async def delete_content(self, content_id: str) -> None:
        """콘텐츠와 딸린 첨부/구독을 삭제한다. 없는 id여도 에러 없이 끝난다."""
        async with self._session() as db:
            await db.execute(delete(SubscriptionRow).where(SubscriptionRow.content_id == content_id))
            await db.execute(delete(AttachmentRow).where(AttachmentRow.content_id == content_id))
            await db.execute(delete(ContentRow).where(ContentRow.id == content_id))
            await db.commit()

    # ── 구독(접근 허용 기록) ──

    async def put_subscription(self, subscription: Subscription) -> None:
        """콘텐츠가 이미 삭제됐다면 FK 위반 → NotFoundError (저장소 장애가 아니다)."""
        async with self._session() as db:
            await db.merge(SubscriptionRow(
                id=subscription.id,
                email=subscription.email,
                content_id=subscription.content_id,
                subscribed_at=subscription.subscribed_at,
                youtube_subscribed=subscription.youtube_subscribed,
                google_access_token=subscription.google_access_token,
            ))
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.warning("구독 저장 실패, 콘텐츠 없음 (content=%s)", subscription.content_id)
                raise NotFoundError("요청한 콘텐츠가 없습니다.") from e

    async def list_subscriptions(self) -> list[Subscription]:
        async with self._session() as db:
            result = await db.execute(
                select(SubscriptionRow).order_by(SubscriptionRow.subscribed_at.desc())
            )
            return [
                Subscription(
                    id=row.id,
                    email=row.email,
                    content_id=row.content_id,
                    subscribed_at=row.subscribed_at,
                    youtube_subscribed=row.youtube_subscribed,
                    google_access_token=row.google_access_token,
                )
                for row in result.scalars().all()
            ]

    async def has_subscription(self, email: str, content_id: str) -> bool:
        """(email, content_id) 기록 존재 여부. 이메일은 저장된 그대로 대소문자를 구분한다."""
        async with self._session() as db:
            result = await db.execute(
                select(SubscriptionRow.id)
                .where(SubscriptionRow.email == email, SubscriptionRow.content_id == content_id)
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    # ── 싱글턴 슬롯 ──

    async def _get_slot(self, key: str) -> dict | None:
        async with self._session() as db:
            row = await db.get(SlotRow, key)
            return dict(row.value) if row else None

    async def _put_slot(self, key: str, value: dict) -> None:
        async with self._session() as db:
            await db.merge(SlotRow(key=key, value=value))
            await db.commit()

    async def put_channel_policy(self, policy: ChannelPolicy) -> None:
        await self._put_slot(CHANNEL_POLICY_SLOT, asdict(policy))

    async def get_channel_policy(self) -> ChannelPolicy | None:
        """설정 전이면 None — 에러가 아니라 정상 상태다."""
        value = await self._get_slot(CHANNEL_POLICY_SLOT)
        return ChannelPolicy(**value) if value is not None else None

    async def put_admin_credential(self, credential: AdminCredential) -> None:
        await self._put_slot(ADMIN_CREDENTIAL_SLOT, asdict(credential))

    async def validate_admin_credential(self, email: str, secret: str) -> bool:
        """부트스트랩 계정은 저장소 상태와 무관하게 항상 통과한다."""
        if self.bootstrap_admin and _matches(self.bootstrap_admin, email, secret):
            return True

        value = await self._get_slot(ADMIN_CREDENTIAL_SLOT)
        if value is None:
            return False
        return _matches(AdminCredential(**value), email, secret)


def _matches(credential: AdminCredential, email: str, secret: str) -> bool:
    email_ok = secrets.compare_digest(credential.email.encode(), email.encode())
    secret_ok = secrets.compare_digest(credential.secret.encode(), secret.encode())
    return email_ok and secret_ok


def _to_content(row: ContentRow) -> Content:
    return Content(
        id=row.id,
        title=row.title,
        description=row.description,
        body=row.body,
        created_at=row.created_at,
        is_public=row.is_public,
        youtube_channel_url=row.youtube_channel_url,
        youtube_channel_id=row.youtube_channel_id,
        attachments=[
            FileAttachment(
                id=a.id,
                name=a.name,
                type=a.type,
                size=a.size,
                locator=a.locator,
                uploaded_at=a.uploaded_at,
            )
            for a in row.attachments
        ],
    )
