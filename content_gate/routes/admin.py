"""관리자 API — 콘텐츠 CRUD, 첨부 업로드, 채널 정책 설정.

스프링 대응:
- HTTPBasic + require_admin = Spring Security httpBasic() + 커스텀 AuthenticationProvider
- router 단위 dependencies = @PreAuthorize를 컨트롤러 클래스에 붙인 것과 같다
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from content_gate.authoring import AuthoringService, share_link
from content_gate.config import settings
from content_gate.deps import get_authoring, get_gateway, get_store
from content_gate.domain import AdminCredential
from content_gate.errors import NotFoundError, ValidationError
from content_gate.schemas import (
    ChannelPolicyForm,
    ChannelPolicyOut,
    ContentForm,
    ContentOut,
    SubscriptionOut,
    content_out,
)
from content_gate.store import Store
from content_gate.youtube import YouTubeGateway

security = HTTPBasic()


async def require_admin(
    credentials: HTTPBasicCredentials = Depends(security),
    store: Store = Depends(get_store),
) -> str:
    if not await store.validate_admin_credential(credentials.username, credentials.password):
        raise HTTPException(
            status_code=401,
            detail="관리자 인증에 실패했습니다.",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


class CredentialForm(BaseModel):
    email: str
    password: str


def _out(content) -> ContentOut:
    return content_out(content, share_link(settings.public_origin, content.id))


# ── 콘텐츠 ──


@router.get("/content", response_model=list[ContentOut])
async def list_content(store: Store = Depends(get_store)):
    return [_out(c) for c in await store.list_content()]


@router.post("/content", response_model=ContentOut, status_code=201)
async def create_content(form: ContentForm, authoring: AuthoringService = Depends(get_authoring)):
    return _out(await authoring.create_or_update(form))


@router.put("/content/{content_id}", response_model=ContentOut)
async def update_content(
    content_id: str,
    form: ContentForm,
    store: Store = Depends(get_store),
    authoring: AuthoringService = Depends(get_authoring),
):
    if await store.get_content(content_id) is None:
        raise NotFoundError("요청한 콘텐츠가 없습니다.")
    return _out(await authoring.create_or_update(form.model_copy(update={"id": content_id})))


@router.delete("/content/{content_id}", status_code=204)
async def delete_content(content_id: str, authoring: AuthoringService = Depends(get_authoring)):
    await authoring.remove(content_id)
    return Response(status_code=204)


@router.post("/content/{content_id}/attachments", response_model=ContentOut)
async def upload_attachment(
    content_id: str,
    file: UploadFile = File(...),
    authoring: AuthoringService = Depends(get_authoring),
):
    data = await file.read()
    updated = await authoring.add_attachment(
        content_id,
        file.filename or "file",
        file.content_type or "",
        data,
    )
    return _out(updated)


@router.delete("/content/{content_id}/attachments/{attachment_id}", response_model=ContentOut)
async def delete_attachment(
    content_id: str,
    attachment_id: str,
    authoring: AuthoringService = Depends(get_authoring),
):
    return _out(await authoring.remove_attachment(content_id, attachment_id))


# ── 구독 기록 ──


@router.get("/subscriptions", response_model=list[SubscriptionOut])
async def list_subscriptions(store: Store = Depends(get_store)):
    return [
        SubscriptionOut(
            id=s.id,
            email=s.email,
            content_id=s.content_id,
            subscribed_at=s.subscribed_at,
            youtube_subscribed=s.youtube_subscribed,
        )
        for s in await store.list_subscriptions()
    ]


# ── 채널 정책 ──


@router.get("/channel", response_model=ChannelPolicyOut | None)
async def get_channel_policy(store: Store = Depends(get_store)):
    policy = await store.get_channel_policy()
    if policy is None:
        return None
    return ChannelPolicyOut(**asdict(policy))


@router.put("/channel", response_model=ChannelPolicyOut)
async def put_channel_policy(form: ChannelPolicyForm, authoring: AuthoringService = Depends(get_authoring)):
    policy = await authoring.configure_channel_policy(form)
    return ChannelPolicyOut(**asdict(policy))


@router.get("/channel/resolve")
async def resolve_channel(url: str, gateway: YouTubeGateway = Depends(get_gateway)):
    """채널 URL 입력 중 자동 해석용. 못 찾으면 channel_id가 null."""
    return {"channel_url": url, "channel_id": await gateway.resolve_channel_id(url)}


# ── 관리자 계정 ──


@router.put("/credential", status_code=204)
async def put_credential(form: CredentialForm, store: Store = Depends(get_store)):
    if not form.email.strip() or not form.password:
        raise ValidationError("이메일과 비밀번호를 입력해주세요.")
    await store.put_admin_credential(AdminCredential(email=form.email.strip(), secret=form.password))
    return Response(status_code=204)
