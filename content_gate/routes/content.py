"""방문자 API — 콘텐츠 조회와 접근 검증 흐름.

공유 링크 <origin>/content/<id>가 접근 결정의 진입점이다.

1. GET  /content/{id}                → 공개면 바로 본문, 아니면 잠긴 미리보기
2. POST /content/{id}/email          → 첫 이메일 제출, attempt_id 발급 (정책 off면 즉시 허용)
   POST /attempts/{attempt_id}/email → 거부/재입력 후 같은 시도로 다시 제출
3. GET  /auth/google?attempt=...     → 구글 로그인으로 리다이렉트
4. GET  /auth/callback?code&state    → 토큰 교환 + 유튜브 구독 확인 → 허용/거부
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Response
from fastapi.responses import RedirectResponse

from content_gate.access import AccessAttempt, AccessDecision, AccessEngine, AccessState
from content_gate.attachments import decode_locator
from content_gate.authoring import share_link
from content_gate.config import settings
from content_gate.deps import get_engine, get_store
from content_gate.errors import NotFoundError
from content_gate.schemas import AccessOut, ContentSummaryOut, content_out, summary_out
from content_gate.store import Store

router = APIRouter()


def _access_out(attempt: AccessAttempt, engine: AccessEngine, decision: AccessDecision | None = None) -> AccessOut:
    state = decision.state if decision else attempt.state
    message = decision.message if decision else attempt.message
    content = attempt.content

    authorization_url = None
    if attempt.state == AccessState.AWAITING_EXTERNAL_AUTH:
        authorization_url = engine.gateway.build_authorization_url(state=attempt.id)

    return AccessOut(
        attempt_id=attempt.id if engine.tracks(attempt.id) else None,
        state=state.value,
        message=message,
        gating="youtube" if attempt.gating_enabled else "email",
        preview=summary_out(content),
        content=content_out(content, share_link(settings.public_origin, content.id)) if attempt.granted else None,
        authorization_url=authorization_url,
    )


@router.get("/content", response_model=list[ContentSummaryOut])
async def list_content(store: Store = Depends(get_store)):
    return [summary_out(c) for c in await store.list_content()]


@router.get("/content/{content_id}", response_model=AccessOut)
async def open_content(content_id: str, engine: AccessEngine = Depends(get_engine)):
    attempt = await engine.begin_for(content_id)
    return _access_out(attempt, engine)


@router.post("/content/{content_id}/email", response_model=AccessOut)
async def start_with_email(
    content_id: str,
    email: str = Form(""),
    engine: AccessEngine = Depends(get_engine),
):
    attempt, decision = await engine.start(content_id, email)
    return _access_out(attempt, engine, decision)


@router.post("/attempts/{attempt_id}/email", response_model=AccessOut)
async def submit_email(
    attempt_id: str,
    email: str = Form(""),
    engine: AccessEngine = Depends(get_engine),
):
    attempt = engine.get(attempt_id)
    decision = await attempt.submit_email(email)
    return _access_out(attempt, engine, decision)


@router.post("/attempts/{attempt_id}/cancel", status_code=204)
async def cancel_attempt(attempt_id: str, engine: AccessEngine = Depends(get_engine)):
    engine.cancel(attempt_id)
    return Response(status_code=204)


@router.get("/auth/google")
async def google_login(attempt: str = Query(...), engine: AccessEngine = Depends(get_engine)):
    current = engine.get(attempt)
    if current.state != AccessState.AWAITING_EXTERNAL_AUTH:
        raise HTTPException(status_code=409, detail="이메일을 먼저 입력해주세요.")
    return RedirectResponse(engine.gateway.build_authorization_url(state=current.id))


@router.get("/auth/callback", response_model=AccessOut)
async def google_callback(
    state: str = Query(...),
    code: str = Query(""),
    error: str = Query(""),
    engine: AccessEngine = Depends(get_engine),
):
    attempt = engine.get(state)
    if error or not code:
        # 방문자가 동의 화면에서 취소한 경우
        if attempt.state == AccessState.AWAITING_EXTERNAL_AUTH:
            decision = attempt.abort_external_auth("구글 로그인이 취소되었습니다. 다시 시도해주세요.")
            return _access_out(attempt, engine, decision)
        return _access_out(attempt, engine)

    decision = await attempt.complete_authorization_code(code)
    return _access_out(attempt, engine, decision)


@router.get("/content/{content_id}/attachments/{attachment_id}")
async def download_attachment(
    content_id: str,
    attachment_id: str,
    attempt: str = Query(""),
    store: Store = Depends(get_store),
    engine: AccessEngine = Depends(get_engine),
):
    content = await store.get_content(content_id)
    if content is None:
        raise NotFoundError("요청한 콘텐츠가 없습니다.")

    if not content.is_public:
        current = engine.get(attempt) if attempt else None
        if current is None or not current.granted or current.content.id != content_id:
            raise HTTPException(status_code=403, detail="접근 권한이 없습니다.")

    for attachment in content.attachments:
        if attachment.id == attachment_id:
            return Response(
                content=decode_locator(attachment.locator),
                media_type=attachment.type,
                headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment.name)}"},
            )
    raise NotFoundError("첨부파일이 없습니다.")
