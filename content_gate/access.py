"""접근 결정 엔진 — 방문자 한 명의 검증 시도(attempt)를 상태 머신으로 관리한다.

AWAITING_EMAIL → AWAITING_EXTERNAL_AUTH → VERIFYING_MEMBERSHIP → GRANTED | DENIED

- 공개 콘텐츠는 생성 즉시 GRANTED
- 채널 정책이 꺼져 있으면 이메일만으로 GRANTED
- 켜져 있으면 구글 로그인 후 유튜브 구독 여부로 결정
- DENIED 후에는 재시도를 위해 AWAITING_EMAIL로 돌아간다
- 게이트웨이/저장소 예외는 AWAITING_EMAIL 재입력 요청으로 바꾼다 (상태 머신이 멈추지 않게)
- 검증 도중 콘텐츠가 삭제되면 재시도할 수 없으므로 CANCELLED로 끝낸다

모든 허용 경로는 has_subscription을 먼저 확인하므로 같은 (email, content)로
두 번 허용돼도 구독 기록은 하나만 남는다.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from content_gate.domain import ChannelPolicy, Content, Subscription, VisitorIdentity, generate_id
from content_gate.errors import (
    ChannelResolutionError,
    GatewayError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


class AccessState(str, Enum):
    AWAITING_EMAIL = "awaiting_email"
    AWAITING_EXTERNAL_AUTH = "awaiting_external_auth"
    VERIFYING_MEMBERSHIP = "verifying_membership"
    GRANTED = "granted"
    DENIED = "denied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AccessDecision:
    """전이 한 번의 결과. message는 방문자에게 보여줄 문장이다."""

    state: AccessState
    message: str = ""
    subscription: Subscription | None = None
    already_granted: bool = False

    @property
    def granted(self) -> bool:
        return self.state == AccessState.GRANTED


def validate_email(raw: str | None) -> str:
    email = (raw or "").strip()
    if not email:
        raise ValidationError("이메일 주소를 입력해주세요.")
    try:
        _email_adapter.validate_python(email)
    except PydanticValidationError as e:
        raise ValidationError("올바른 이메일 주소를 입력해주세요.") from e
    return email


class AccessAttempt:
    def __init__(
        self,
        content: Content,
        policy: ChannelPolicy | None,
        store: Store,
        gateway: YouTubeGateway,
        auto_subscribe_on_miss: bool = True,
    ):
        self.id = generate_id()
        self.content = content
        self.policy = policy
        self.store = store
        self.gateway = gateway
        self.auto_subscribe_on_miss = auto_subscribe_on_miss

        self.email = ""
        self.message = ""
        self.state: AccessState | None = None
        self.history: list[AccessState] = []

        self._transition(AccessState.GRANTED if content.is_public else AccessState.AWAITING_EMAIL)

    @property
    def gating_enabled(self) -> bool:
        return bool(self.policy and self.policy.enabled)

    @property
    def granted(self) -> bool:
        return self.state == AccessState.GRANTED

    def _transition(self, state: AccessState) -> None:
        logger.info("attempt %s (content=%s): %s → %s", self.id, self.content.id, self.state, state)
        self.state = state
        self.history.append(state)

    def _reprompt(self, message: str) -> AccessDecision:
        self.message = message
        self._transition(AccessState.AWAITING_EMAIL)
        return AccessDecision(AccessState.AWAITING_EMAIL, message)

    def _close(self, message: str) -> AccessDecision:
        self.message = message
        self._transition(AccessState.CANCELLED)
        return AccessDecision(AccessState.CANCELLED, message)

    async def _grant(self, email: str, youtube_subscribed: bool, access_token: str | None = None) -> AccessDecision:
        if await self.store.has_subscription(email, self.content.id):
            self.message = ""
            self._transition(AccessState.GRANTED)
            return AccessDecision(AccessState.GRANTED, already_granted=True)

        subscription = Subscription(
            id=generate_id(),
            email=email,
            content_id=self.content.id,
            subscribed_at=datetime.now(),
            youtube_subscribed=youtube_subscribed,
            google_access_token=access_token,
        )
        await self.store.put_subscription(subscription)
        self.message = ""
        self._transition(AccessState.GRANTED)
        return AccessDecision(AccessState.GRANTED, subscription=subscription)

    # ── 이메일 단계 ──

    async def submit_email(self, raw_email: str) -> AccessDecision:
        if self.state == AccessState.GRANTED:
            return AccessDecision(AccessState.GRANTED, already_granted=True)
        if self.state not in (AccessState.AWAITING_EMAIL, AccessState.AWAITING_EXTERNAL_AUTH):
            raise ValidationError("이미 종료된 인증 시도입니다. 페이지를 새로고침해주세요.")

        email = validate_email(raw_email)
        self.email = email

        try:
            # 이미 접근 기록이 있는 방문자는 바로 통과
            if await self.store.has_subscription(email, self.content.id):
                self.message = ""
                self._transition(AccessState.GRANTED)
                return AccessDecision(AccessState.GRANTED, already_granted=True)

            if not self.gating_enabled:
                return await self._grant(email, youtube_subscribed=False)
        except NotFoundError as e:
            logger.warning("attempt %s 콘텐츠가 삭제됨 (content=%s)", self.id, self.content.id)
            return self._close(e.message)
        except StoreUnavailableError as e:
            logger.error("attempt %s 저장소 오류: %s", self.id, e)
            return self._reprompt("일시적인 오류로 처리하지 못했습니다. 다시 시도해주세요.")

        self.message = ""
        self._transition(AccessState.AWAITING_EXTERNAL_AUTH)
        return AccessDecision(AccessState.AWAITING_EXTERNAL_AUTH)

    # ── 외부 인증 + 구독 확인 단계 ──

    async def complete_external_auth(self, identity: VisitorIdentity) -> AccessDecision:
        if self.state != AccessState.AWAITING_EXTERNAL_AUTH:
            raise ValidationError("구글 로그인을 기다리는 상태가 아닙니다.")
        if not identity.access_token:
            return self._reprompt("구글 로그인 정보가 올바르지 않습니다. 다시 시도해주세요.")

        self._transition(AccessState.VERIFYING_MEMBERSHIP)
        try:
            channel_id = await self.resolve_target_channel()
            subscribed = await self.gateway.is_subscribed(identity.access_token, channel_id)
            if subscribed:
                email = self.email or identity.email
                return await self._grant(email, youtube_subscribed=True, access_token=identity.access_token)

            if self.auto_subscribe_on_miss:
                # 이번 시도는 거부하지만 방문자 계정은 채널을 구독한 상태가 된다
                await self.gateway.subscribe(identity.access_token, channel_id)
        except ChannelResolutionError as e:
            logger.error("attempt %s 채널 해석 실패: %s", self.id, e)
            return self._reprompt(e.message)
        except GatewayError as e:
            logger.warning("attempt %s 게이트웨이 오류 (%s): %s", self.id, type(e).__name__, e)
            return self._reprompt(e.message or "유튜브 구독 확인에 실패했습니다. 다시 시도해주세요.")
        except NotFoundError as e:
            logger.warning("attempt %s 콘텐츠가 삭제됨 (content=%s)", self.id, self.content.id)
            return self._close(e.message)
        except StoreUnavailableError as e:
            logger.error("attempt %s 저장소 오류: %s", self.id, e)
            return self._reprompt("일시적인 오류로 처리하지 못했습니다. 다시 시도해주세요.")

        channel_name = (self.policy.channel_name if self.policy else "") or channel_id
        reason = f"이 콘텐츠를 보려면 유튜브에서 {channel_name} 채널을 구독해야 합니다."
        self._transition(AccessState.DENIED)
        self._reprompt(reason)
        return AccessDecision(AccessState.DENIED, reason)

    def abort_external_auth(self, message: str) -> AccessDecision:
        """구글 로그인이 취소/실패로 돌아왔을 때 이메일 단계로 되돌린다."""
        if self.state != AccessState.AWAITING_EXTERNAL_AUTH:
            raise ValidationError("구글 로그인을 기다리는 상태가 아닙니다.")
        return self._reprompt(message)

    async def complete_authorization_code(self, code: str) -> AccessDecision:
        """OAuth 콜백에서 받은 인가 코드로 신원을 만들어 구독 확인까지 진행한다."""
        if self.state != AccessState.AWAITING_EXTERNAL_AUTH:
            raise ValidationError("구글 로그인을 기다리는 상태가 아닙니다.")
        try:
            tokens = await self.gateway.exchange_code(code)
            profile = await self.gateway.fetch_profile(tokens["access_token"])
        except GatewayError as e:
            logger.warning("attempt %s OAuth 처리 실패 (%s): %s", self.id, type(e).__name__, e)
            return self._reprompt(e.message or "구글 로그인에 실패했습니다. 다시 시도해주세요.")

        identity = VisitorIdentity(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            email=profile.get("email", ""),
            profile=profile,
        )
        return await self.complete_external_auth(identity)

    async def resolve_target_channel(self) -> str:
        """콘텐츠 채널 ID → 콘텐츠 채널 URL → 정책 채널 ID → 정책 채널 URL 순으로 고른다."""
        policy = self.policy or ChannelPolicy()
        candidates = [
            (self.content.youtube_channel_id, False),
            (self.content.youtube_channel_url, True),
            (policy.channel_id, False),
            (policy.channel_url, True),
        ]
        for value, needs_resolution in candidates:
            if not value:
                continue
            if not needs_resolution:
                return value
            resolved = await self.gateway.resolve_channel_id(value)
            if resolved:
                return resolved

        raise ChannelResolutionError("유튜브 채널 설정을 확인할 수 없습니다. 관리자에게 문의해주세요.")

    def cancel(self) -> None:
        """진행 중인 시도를 버린다. 이미 커밋된 부수효과(구독 기록, 자동 구독)는 되돌리지 않는다."""
        if self.state in (AccessState.GRANTED, AccessState.CANCELLED):
            return
        self._transition(AccessState.CANCELLED)


class AttemptRegistry:
    """진행 중인 시도 보관소 — 오래된 순 dict + 항목별 TTL.

    조회할 때마다 만료 시각을 늦추고 맨 뒤로 옮기므로 맨 앞이 항상 가장 오래 방치된 시도다.
    가득 차면 맨 앞부터 버린다.
    """

    def __init__(self, max_size: int = 10_000, ttl_seconds: float = 1800.0, clock=time.monotonic):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[AccessAttempt, float]] = OrderedDict()

    @classmethod
    def from_settings(cls, settings) -> "AttemptRegistry":
        return cls(max_size=settings.max_pending_attempts, ttl_seconds=settings.attempt_ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, attempt_id: str) -> bool:
        self._evict_expired(self._clock())
        return attempt_id in self._entries

    def _evict_expired(self, now: float) -> None:
        while self._entries:
            attempt_id, (_, expires_at) = next(iter(self._entries.items()))
            if expires_at > now:
                return
            self._entries.popitem(last=False)
            logger.info("attempt %s 만료", attempt_id)

    def add(self, attempt: AccessAttempt) -> None:
        now = self._clock()
        self._evict_expired(now)
        self._entries.pop(attempt.id, None)
        while len(self._entries) >= self.max_size:
            evicted_id, _ = self._entries.popitem(last=False)
            logger.warning("시도 보관소가 가득 차 attempt %s를 버림", evicted_id)
        self._entries[attempt.id] = (attempt, now + self.ttl_seconds)

    def get(self, attempt_id: str) -> AccessAttempt | None:
        now = self._clock()
        self._evict_expired(now)
        entry = self._entries.get(attempt_id)
        if entry is None:
            return None
        attempt = entry[0]
        self._entries[attempt_id] = (attempt, now + self.ttl_seconds)
        self._entries.move_to_end(attempt_id)
        return attempt

    def pop(self, attempt_id: str) -> AccessAttempt | None:
        entry = self._entries.pop(attempt_id, None)
        return entry[0] if entry else None


class AccessEngine:
    """시도 생성/조회 — OAuth 콜백의 state 값(attempt id)으로 올바른 시도를 이어간다.

    페이지 조회(begin_for)는 시도를 보관하지 않는다. 첫 이메일 제출(start)에서야 등록된다.
    """

    def __init__(
        self,
        store: Store,
        gateway: YouTubeGateway,
        auto_subscribe_on_miss: bool = True,
        attempts: AttemptRegistry | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.auto_subscribe_on_miss = auto_subscribe_on_miss
        # 요청마다 엔진을 만들어도 진행 중인 시도는 공유된다 (app.state에 보관)
        self._attempts = attempts if attempts is not None else AttemptRegistry()

    def begin(self, content: Content, policy: ChannelPolicy | None) -> AccessAttempt:
        return AccessAttempt(
            content,
            policy,
            self.store,
            self.gateway,
            auto_subscribe_on_miss=self.auto_subscribe_on_miss,
        )

    async def begin_for(self, content_id: str) -> AccessAttempt:
        content = await self.store.get_content(content_id)
        if content is None:
            raise NotFoundError("요청한 콘텐츠가 없습니다.")
        policy = await self.store.get_channel_policy()
        return self.begin(content, policy)

    async def start(self, content_id: str, raw_email: str) -> tuple[AccessAttempt, AccessDecision]:
        """시도를 만들고 첫 이메일을 제출한다. 잘못된 이메일이면 등록 없이 ValidationError."""
        attempt = await self.begin_for(content_id)
        decision = await attempt.submit_email(raw_email)
        if not attempt.content.is_public and attempt.state != AccessState.CANCELLED:
            self._attempts.add(attempt)
        return attempt, decision

    def tracks(self, attempt_id: str) -> bool:
        return attempt_id in self._attempts

    def get(self, attempt_id: str) -> AccessAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("인증 시도를 찾을 수 없습니다. 처음부터 다시 시도해주세요.")
        return attempt

    def cancel(self, attempt_id: str) -> None:
        attempt = self._attempts.pop(attempt_id)
        if attempt is not None:
            attempt.cancel()
