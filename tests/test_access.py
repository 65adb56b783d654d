"""접근 결정 엔진 테스트 — 실제 인메모리 저장소 + mock 게이트웨이."""

import pytest

from content_gate.access import AccessAttempt, AccessEngine, AccessState, AttemptRegistry, validate_email
from content_gate.domain import ChannelPolicy, VisitorIdentity
from content_gate.errors import (
    InsufficientScopeError,
    NotFoundError,
    SubscriptionQueryError,
    ValidationError,
)

CHANNEL_ID = "UC123"

ENABLED_POLICY = ChannelPolicy(
    channel_url="https://www.youtube.com/@creator",
    channel_name="Creator TV",
    channel_id=CHANNEL_ID,
    enabled=True,
)


async def _attempt(store, gateway, content, policy, **kwargs) -> AccessAttempt:
    await store.put_content(content)
    return AccessAttempt(content, policy, store, gateway, **kwargs)


# ── 공개 콘텐츠 ──


@pytest.mark.asyncio
@pytest.mark.parametrize("policy", [None, ChannelPolicy(enabled=False), ENABLED_POLICY])
async def test_public_content_granted_without_input(store, gateway, make_content, policy):
    attempt = await _attempt(store, gateway, make_content(is_public=True), policy)

    assert attempt.state == AccessState.GRANTED
    assert await store.list_subscriptions() == []
    gateway.is_subscribed.assert_not_called()


# ── 시나리오 A: 정책 off → 이메일만으로 허용 ──


@pytest.mark.asyncio
async def test_disabled_policy_grants_on_email(store, gateway, make_content):
    content = make_content()
    attempt = await _attempt(store, gateway, content, ChannelPolicy(enabled=False))
    assert attempt.state == AccessState.AWAITING_EMAIL

    decision = await attempt.submit_email("a@x.com")

    assert decision.granted
    assert attempt.state == AccessState.GRANTED
    subs = await store.list_subscriptions()
    assert len(subs) == 1
    assert subs[0].email == "a@x.com"
    assert subs[0].content_id == content.id
    assert subs[0].youtube_subscribed is False


@pytest.mark.asyncio
async def test_missing_policy_behaves_as_disabled(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), None)

    decision = await attempt.submit_email("a@x.com")

    assert decision.granted


@pytest.mark.asyncio
async def test_grant_twice_creates_one_subscription(store, gateway, make_content):
    """같은 (email, content)로 두 번 허용돼도 기록은 하나."""
    content = make_content()
    await store.put_content(content)

    first = AccessAttempt(content, ChannelPolicy(enabled=False), store, gateway)
    await first.submit_email("a@x.com")
    second = AccessAttempt(content, ChannelPolicy(enabled=False), store, gateway)
    decision = await second.submit_email("a@x.com")

    assert decision.granted
    assert decision.already_granted
    assert len(await store.list_subscriptions()) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["", "   ", "not-an-email", "a@"])
async def test_invalid_email_raises_and_stays(store, gateway, make_content, email):
    attempt = await _attempt(store, gateway, make_content(), ChannelPolicy(enabled=False))

    with pytest.raises(ValidationError):
        await attempt.submit_email(email)

    assert attempt.state == AccessState.AWAITING_EMAIL
    assert await store.list_subscriptions() == []


def test_validate_email_strips_whitespace():
    assert validate_email("  a@x.com ") == "a@x.com"


# ── 시나리오 B: 정책 on + 구독 확인 성공 ──


@pytest.mark.asyncio
async def test_enabled_policy_subscribed_grants(store, gateway, make_content):
    gateway.is_subscribed.return_value = True
    content = make_content()
    attempt = await _attempt(store, gateway, content, ENABLED_POLICY)

    decision = await attempt.submit_email("a@x.com")
    assert decision.state == AccessState.AWAITING_EXTERNAL_AUTH
    assert await store.list_subscriptions() == []

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.granted
    gateway.is_subscribed.assert_awaited_once_with("tok", CHANNEL_ID)
    subs = await store.list_subscriptions()
    assert len(subs) == 1
    assert subs[0].youtube_subscribed is True
    assert subs[0].google_access_token == "tok"
    assert attempt.history == [
        AccessState.AWAITING_EMAIL,
        AccessState.AWAITING_EXTERNAL_AUTH,
        AccessState.VERIFYING_MEMBERSHIP,
        AccessState.GRANTED,
    ]


# ── 시나리오 C: 정책 on + 미구독 ──


@pytest.mark.asyncio
async def test_enabled_policy_not_subscribed_denies_and_reprompts(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.state == AccessState.DENIED
    assert "Creator TV" in decision.message
    assert attempt.state == AccessState.AWAITING_EMAIL
    assert AccessState.DENIED in attempt.history
    assert await store.list_subscriptions() == []


@pytest.mark.asyncio
async def test_not_subscribed_triggers_auto_subscribe(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")

    await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    gateway.subscribe.assert_awaited_once_with("tok", CHANNEL_ID)


@pytest.mark.asyncio
async def test_auto_subscribe_can_be_disabled(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY, auto_subscribe_on_miss=False)
    await attempt.submit_email("a@x.com")

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.state == AccessState.DENIED
    gateway.subscribe.assert_not_called()


@pytest.mark.asyncio
async def test_retry_after_denial(store, gateway, make_content):
    """거부 후 이메일부터 다시 시도할 수 있다."""
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")
    await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    gateway.is_subscribed.return_value = True
    await attempt.submit_email("a@x.com")
    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.granted


# ── 시나리오 D/E: 채널 해석 우선순위 ──


@pytest.mark.asyncio
async def test_content_override_url_resolved_before_policy(store, gateway, make_content):
    gateway.resolve_channel_id.return_value = "UCresolved"
    gateway.is_subscribed.return_value = True
    content = make_content(youtube_channel_url="https://www.youtube.com/@override")
    policy = ChannelPolicy(channel_url="https://www.youtube.com/@global", channel_name="G", enabled=True)
    attempt = await _attempt(store, gateway, content, policy)
    await attempt.submit_email("a@x.com")

    await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert gateway.resolve_channel_id.await_args_list[0].args == ("https://www.youtube.com/@override",)
    gateway.is_subscribed.assert_awaited_once_with("tok", "UCresolved")


@pytest.mark.asyncio
async def test_content_override_id_wins_without_resolution(store, gateway, make_content):
    content = make_content(youtube_channel_id="UCcontent", youtube_channel_url="https://www.youtube.com/@x")
    attempt = await _attempt(store, gateway, content, ENABLED_POLICY)

    assert await attempt.resolve_target_channel() == "UCcontent"
    gateway.resolve_channel_id.assert_not_called()


@pytest.mark.asyncio
async def test_policy_url_is_last_resort(store, gateway, make_content):
    gateway.resolve_channel_id.return_value = "UCpolicy"
    policy = ChannelPolicy(channel_url="https://www.youtube.com/@global", enabled=True)
    attempt = await _attempt(store, gateway, make_content(), policy)

    assert await attempt.resolve_target_channel() == "UCpolicy"
    gateway.resolve_channel_id.assert_awaited_once_with("https://www.youtube.com/@global")


@pytest.mark.asyncio
async def test_unresolvable_channel_reprompts(store, gateway, make_content):
    policy = ChannelPolicy(channel_url="https://www.youtube.com/@ghost", enabled=True)
    attempt = await _attempt(store, gateway, make_content(), policy)
    await attempt.submit_email("a@x.com")

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.state == AccessState.AWAITING_EMAIL
    assert decision.message
    gateway.is_subscribed.assert_not_called()


# ── 게이트웨이 오류 → 재입력 ──


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    SubscriptionQueryError("유튜브 구독 정보를 확인하지 못했습니다.", status_code=500),
    InsufficientScopeError("유튜브 구독 권한이 없습니다.", status_code=403),
])
async def test_gateway_errors_become_reprompt(store, gateway, make_content, error):
    gateway.subscribe.side_effect = error
    gateway.is_subscribed.side_effect = error if isinstance(error, SubscriptionQueryError) else None
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.state == AccessState.AWAITING_EMAIL
    assert decision.message == error.message
    assert attempt.state == AccessState.AWAITING_EMAIL


@pytest.mark.asyncio
async def test_authorization_code_flow(store, gateway, make_content):
    gateway.exchange_code.return_value = {"access_token": "tok", "refresh_token": "ref", "expires_in": 3600}
    gateway.fetch_profile.return_value = {"email": "google@x.com", "id": "1"}
    gateway.is_subscribed.return_value = True
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")

    decision = await attempt.complete_authorization_code("code-1")

    assert decision.granted
    gateway.exchange_code.assert_awaited_once_with("code-1")
    gateway.fetch_profile.assert_awaited_once_with("tok")
    # 방문자가 입력한 이메일이 우선
    assert decision.subscription.email == "a@x.com"


# ── 상태 가드 / 취소 ──


@pytest.mark.asyncio
async def test_external_auth_before_email_is_rejected(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)

    with pytest.raises(ValidationError):
        await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))


@pytest.mark.asyncio
async def test_cancel_stops_attempt(store, gateway, make_content):
    attempt = await _attempt(store, gateway, make_content(), ENABLED_POLICY)
    await attempt.submit_email("a@x.com")

    attempt.cancel()

    assert attempt.state == AccessState.CANCELLED
    with pytest.raises(ValidationError):
        await attempt.submit_email("a@x.com")
    assert await store.list_subscriptions() == []


@pytest.mark.asyncio
async def test_returning_visitor_skips_oauth(store, gateway, make_content):
    content = make_content()
    await store.put_content(content)
    await AccessAttempt(content, ChannelPolicy(enabled=False), store, gateway).submit_email("a@x.com")

    attempt = AccessAttempt(content, ENABLED_POLICY, store, gateway)
    decision = await attempt.submit_email("a@x.com")

    assert decision.granted
    assert decision.already_granted
    gateway.is_subscribed.assert_not_called()


# ── 엔진 (시도 등록/조회) ──


@pytest.mark.asyncio
async def test_engine_begin_for_missing_content(store, gateway):
    engine = AccessEngine(store, gateway)

    with pytest.raises(NotFoundError):
        await engine.begin_for("missing")


@pytest.mark.asyncio
async def test_engine_registers_on_first_email_and_cancels(store, gateway, make_content):
    content = make_content()
    await store.put_content(content)
    await store.put_channel_policy(ENABLED_POLICY)
    engine = AccessEngine(store, gateway)

    viewed = await engine.begin_for(content.id)
    assert not engine.tracks(viewed.id)

    attempt, decision = await engine.start(content.id, "a@x.com")
    assert decision.state == AccessState.AWAITING_EXTERNAL_AUTH
    assert engine.get(attempt.id) is attempt
    assert attempt.policy == ENABLED_POLICY

    engine.cancel(attempt.id)
    assert attempt.state == AccessState.CANCELLED
    with pytest.raises(NotFoundError):
        engine.get(attempt.id)


@pytest.mark.asyncio
async def test_engine_start_with_invalid_email_registers_nothing(store, gateway, make_content):
    content = make_content()
    await store.put_content(content)
    registry = AttemptRegistry()
    engine = AccessEngine(store, gateway, attempts=registry)

    with pytest.raises(ValidationError):
        await engine.start(content.id, "not-an-email")

    assert len(registry) == 0


# ── 시도 보관소 (크기 한도 / TTL) ──


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _bare_attempt(gateway, make_content) -> AccessAttempt:
    return AccessAttempt(make_content(), None, store=None, gateway=gateway)


def test_registry_drops_oldest_when_full(gateway, make_content):
    registry = AttemptRegistry(max_size=3, ttl_seconds=60)
    attempts = [_bare_attempt(gateway, make_content) for _ in range(5)]

    for attempt in attempts:
        registry.add(attempt)

    assert len(registry) == 3
    assert registry.get(attempts[0].id) is None
    assert registry.get(attempts[1].id) is None
    assert registry.get(attempts[4].id) is attempts[4]


def test_registry_expires_idle_attempts(gateway, make_content):
    clock = _Clock()
    registry = AttemptRegistry(max_size=10, ttl_seconds=60, clock=clock)
    idle = _bare_attempt(gateway, make_content)
    active = _bare_attempt(gateway, make_content)
    registry.add(idle)
    registry.add(active)

    clock.now = 50
    assert registry.get(active.id) is active  # 조회하면 만료가 연장된다
    clock.now = 100

    assert idle.id not in registry
    assert registry.get(active.id) is active
    assert len(registry) == 1


def test_registry_refresh_protects_from_size_eviction(gateway, make_content):
    registry = AttemptRegistry(max_size=2, ttl_seconds=60)
    first = _bare_attempt(gateway, make_content)
    second = _bare_attempt(gateway, make_content)
    registry.add(first)
    registry.add(second)

    registry.get(first.id)
    registry.add(_bare_attempt(gateway, make_content))

    assert first.id in registry
    assert second.id not in registry


# ── 검증 중 콘텐츠 삭제 ──


@pytest.mark.asyncio
async def test_content_deleted_before_email_grant_ends_attempt(store, gateway, make_content):
    content = make_content()
    attempt = await _attempt(store, gateway, content, ChannelPolicy(enabled=False))
    await store.delete_content(content.id)

    decision = await attempt.submit_email("a@x.com")

    assert decision.state == AccessState.CANCELLED
    assert attempt.state == AccessState.CANCELLED
    assert decision.message
    with pytest.raises(ValidationError):
        await attempt.submit_email("a@x.com")
    assert await store.list_subscriptions() == []


@pytest.mark.asyncio
async def test_content_deleted_before_youtube_grant_ends_attempt(store, gateway, make_content):
    gateway.is_subscribed.return_value = True
    content = make_content()
    attempt = await _attempt(store, gateway, content, ENABLED_POLICY)
    await attempt.submit_email("a@x.com")
    await store.delete_content(content.id)

    decision = await attempt.complete_external_auth(VisitorIdentity(access_token="tok"))

    assert decision.state == AccessState.CANCELLED
    assert await store.list_subscriptions() == []


# ── 유튜브 경로의 중복 허용 ──


@pytest.mark.asyncio
async def test_two_youtube_grants_for_same_visitor_record_once(store, gateway, make_content):
    """두 시도가 모두 구글 로그인 대기까지 간 뒤 차례로 구독 확인에 성공해도 기록은 하나."""
    gateway.is_subscribed.return_value = True
    content = make_content()
    await store.put_content(content)
    first = AccessAttempt(content, ENABLED_POLICY, store, gateway)
    second = AccessAttempt(content, ENABLED_POLICY, store, gateway)
    await first.submit_email("a@x.com")
    await second.submit_email("a@x.com")
    assert first.state == second.state == AccessState.AWAITING_EXTERNAL_AUTH

    first_decision = await first.complete_external_auth(VisitorIdentity(access_token="tok-1"))
    second_decision = await second.complete_external_auth(VisitorIdentity(access_token="tok-2"))

    assert first_decision.granted and not first_decision.already_granted
    assert second_decision.granted
    assert second_decision.already_granted
    subs = await store.list_subscriptions()
    assert len(subs) == 1
    assert subs[0].google_access_token == "tok-1"
