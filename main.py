"""Content Gate - 이메일/유튜브 구독으로 잠그는 프리미엄 콘텐츠 서비스."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from content_gate.access import AttemptRegistry
from content_gate.config import settings
from content_gate.domain import AdminCredential
from content_gate.errors import (
    ChannelResolutionError,
    ContentGateError,
    GatewayError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from content_gate.logging_config import setup_logging
from content_gate.routes.admin import router as admin_router
from content_gate.routes.content import router as content_router
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = Store(
        settings.database_url,
        bootstrap_admin=AdminCredential(email=settings.admin_email, secret=settings.admin_password),
    )
    await store.open()
    app.state.store = store
    app.state.gateway = YouTubeGateway.from_settings(settings)
    app.state.attempts = AttemptRegistry.from_settings(settings)
    yield
    await store.close()


app = FastAPI(title="Content Gate", lifespan=lifespan)

app.include_router(content_router)
app.include_router(admin_router)


# 예외 → HTTP 상태 코드 (스프링의 @ControllerAdvice)
_STATUS_BY_ERROR = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (StoreUnavailableError, 503),
    (GatewayError, 502),
    (ChannelResolutionError, 409),
]


@app.exception_handler(ContentGateError)
async def content_gate_error_handler(request: Request, exc: ContentGateError):
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    return JSONResponse({"detail": exc.message}, status_code=status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Pydantic 검증 실패 시 사용자 친화적 메시지를 반환한다."""
    return JSONResponse(
        {"detail": "입력값을 확인해주세요.", "errors": jsonable_encoder(exc.errors())},
        status_code=422,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
