"""테스트 공유 Fixture — 스프링의 @TestConfiguration + @MockBean 역할.

- store: 테스트마다 새 인메모리 SQLite 저장소 (스프링 @DataJpaTest의 H2와 동일)
- gateway: 유튜브/구글 API를 흉내 내는 mock (async 메서드는 자동으로 AsyncMock)
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from content_gate.domain import AdminCredential, Content, generate_id
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway

TEST_DB_URL = "sqlite+aiosqlite://"  # 인메모리 SQLite


@pytest_asyncio.fixture
async def store():
    """각 테스트마다 깨끗한 저장소를 열고, 끝나면 닫는다."""
    store = Store(TEST_DB_URL, bootstrap_admin=AdminCredential(email="admin@example.com", secret="admin123"))
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def gateway():
    gateway = MagicMock(spec=YouTubeGateway)
    gateway.is_subscribed.return_value = False
    gateway.resolve_channel_id.return_value = None
    gateway.build_authorization_url.return_value = "https://accounts.google.com/o/oauth2/v2/auth?client_id=test"
    return gateway


@pytest.fixture
def make_content():
    def _make(**overrides) -> Content:
        fields = {
            "id": generate_id(),
            "title": "프리미엄 가이드",
            "description": "구독자 전용 자료",
            "body": "본문입니다.",
            "created_at": datetime(2025, 2, 11, 9, 30, 0),
            "is_public": False,
        }
        fields.update(overrides)
        return Content(**fields)

    return _make
