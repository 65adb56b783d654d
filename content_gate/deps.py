"""FastAPI 의존성 — 스프링의 생성자 주입 역할.

저장소/게이트웨이는 lifespan에서 만들어 app.state에 둔다.
테스트에서는 app.dependency_overrides로 get_store/get_gateway를 교체한다.
"""

from fastapi import Depends, Request

from content_gate.access import AccessEngine, AttemptRegistry
from content_gate.authoring import AuthoringService
from content_gate.config import settings
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_gateway(request: Request) -> YouTubeGateway:
    return request.app.state.gateway


def get_attempts(request: Request) -> AttemptRegistry:
    if not hasattr(request.app.state, "attempts"):
        request.app.state.attempts = AttemptRegistry.from_settings(settings)
    return request.app.state.attempts


def get_engine(
    store: Store = Depends(get_store),
    gateway: YouTubeGateway = Depends(get_gateway),
    attempts: AttemptRegistry = Depends(get_attempts),
) -> AccessEngine:
    return AccessEngine(
        store,
        gateway,
        auto_subscribe_on_miss=settings.auto_subscribe_on_miss,
        attempts=attempts,
    )


def get_authoring(
    store: Store = Depends(get_store),
    gateway: YouTubeGateway = Depends(get_gateway),
) -> AuthoringService:
    return AuthoringService(store, gateway, max_attachments=settings.max_attachments_per_content)
