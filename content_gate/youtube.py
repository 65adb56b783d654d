"""외부 신원 게이트웨이 — Google OAuth2 + YouTube Data API v3.

- 인가 URL 생성 → 코드 교환 → 프로필 조회
- 채널 URL/핸들 → 채널 ID 해석
- 구독 여부 확인(is_subscribed)과 구독 요청(subscribe)은 별도 연산이다.
  확인 실패 시 자동 구독할지는 호출자(access.py)가 결정한다.

자동 재시도는 하지 않는다. 실패하면 바로 GatewayError 계열 예외를 던진다.
"""

import logging
import re
from urllib.parse import urlencode, urlparse

import httpx

from content_gate.config import Settings
from content_gate.errors import (
    AuthExchangeError,
    InsufficientScopeError,
    ProfileFetchError,
    SubscriptionQueryError,
)

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
YOUTUBE_SUBSCRIPTIONS_URL = "https://www.googleapis.com/youtube/v3/subscriptions"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"

# 자동 구독(쓰기)이 필요하므로 youtube.readonly가 아니라 force-ssl
SCOPES = [
    "https://www.googleapis.com/auth/youtube.force-ssl",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

SUBSCRIPTIONS_PAGE_SIZE = 50

_CHANNEL_ID_RE = re.compile(r"^UC[\w-]{22}$")


def extract_channel_id(channel_url_or_handle: str) -> str | None:
    """입력에 정규 채널 ID(UC...)가 들어 있으면 네트워크 호출 없이 꺼낸다."""
    value = channel_url_or_handle.strip()
    if _CHANNEL_ID_RE.match(value):
        return value

    path = urlparse(value).path
    if "/channel/" in path:
        candidate = path.split("/channel/", 1)[1].split("/", 1)[0]
        if candidate.startswith("UC"):
            return candidate
    return None


class YouTubeGateway:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_redirect_uri,
            api_key=settings.youtube_api_key,
            timeout=settings.http_timeout,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # ── OAuth ──

    def build_authorization_url(self, state: str | None = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """인가 코드를 토큰으로 교환한다. {access_token, refresh_token, expires_in}"""
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        try:
            async with self._client() as client:
                resp = await client.post(GOOGLE_TOKEN_URL, data=form)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("토큰 교환 HTTP 에러: %d", e.response.status_code)
            raise AuthExchangeError(
                "구글 로그인 처리에 실패했습니다. 다시 시도해주세요.",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.warning("토큰 교환 네트워크 에러: %s", e)
            raise AuthExchangeError("구글 서버에 연결할 수 없습니다. 다시 시도해주세요.") from e
        except ValueError as e:
            logger.warning("토큰 응답 파싱 실패: %s", e)
            raise AuthExchangeError("구글 로그인 처리에 실패했습니다. 다시 시도해주세요.") from e

        return {
            "access_token": data.get("access_token", ""),
            "refresh_token": data.get("refresh_token"),
            "expires_in": data.get("expires_in"),
        }

    async def fetch_profile(self, access_token: str) -> dict:
        try:
            async with self._client() as client:
                resp = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("프로필 조회 HTTP 에러: %d", e.response.status_code)
            raise ProfileFetchError(
                "구글 계정 정보를 가져오지 못했습니다.",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.warning("프로필 조회 네트워크 에러: %s", e)
            raise ProfileFetchError("구글 서버에 연결할 수 없습니다.") from e
        except ValueError as e:
            logger.warning("프로필 응답 파싱 실패: %s", e)
            raise ProfileFetchError("구글 계정 정보를 가져오지 못했습니다.") from e

    # ── 채널 ──

    async def resolve_channel_id(self, channel_url_or_handle: str) -> str | None:
        """채널 URL/핸들 → 채널 ID. 검색 첫 결과를 쓰는 추정이라 유일성은 보장하지 않는다."""
        direct = extract_channel_id(channel_url_or_handle)
        if direct:
            return direct

        params = {
            "part": "snippet",
            "type": "channel",
            "q": channel_url_or_handle,
            "key": self.api_key,
        }
        try:
            async with self._client() as client:
                resp = await client.get(YOUTUBE_SEARCH_URL, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("채널 검색 HTTP 에러 (q=%s): %d", channel_url_or_handle, e.response.status_code)
            return None
        except httpx.RequestError as e:
            logger.warning("채널 검색 네트워크 에러 (q=%s): %s", channel_url_or_handle, e)
            return None
        except ValueError as e:
            logger.warning("채널 검색 응답 파싱 실패 (q=%s): %s", channel_url_or_handle, e)
            return None

        items = data.get("items") or []
        if not items:
            return None
        snippet = items[0].get("snippet", {})
        return snippet.get("channelId") or items[0].get("id", {}).get("channelId")

    # ── 구독 ──

    async def is_subscribed(self, access_token: str, channel_id: str) -> bool:
        """내 구독 목록을 nextPageToken이 끝날 때까지 넘기며 channel_id를 찾는다."""
        headers = {"Authorization": f"Bearer {access_token}"}
        page_token = ""

        async with self._client() as client:
            while True:
                params = {"part": "snippet", "mine": "true", "maxResults": SUBSCRIPTIONS_PAGE_SIZE}
                if page_token:
                    params["pageToken"] = page_token
                try:
                    resp = await client.get(YOUTUBE_SUBSCRIPTIONS_URL, headers=headers, params=params)
                    resp.raise_for_status()
                    data = resp.json()
                except httpx.HTTPStatusError as e:
                    logger.warning("구독 목록 조회 HTTP 에러: %d", e.response.status_code)
                    raise SubscriptionQueryError(
                        "유튜브 구독 정보를 확인하지 못했습니다. 다시 시도해주세요.",
                        status_code=e.response.status_code,
                    ) from e
                except httpx.RequestError as e:
                    logger.warning("구독 목록 조회 네트워크 에러: %s", e)
                    raise SubscriptionQueryError("유튜브 서버에 연결할 수 없습니다.") from e
                except ValueError as e:
                    logger.warning("구독 목록 응답 파싱 실패: %s", e)
                    raise SubscriptionQueryError("유튜브 구독 정보를 확인하지 못했습니다. 다시 시도해주세요.") from e

                for item in data.get("items", []):
                    resource = item.get("snippet", {}).get("resourceId", {})
                    if resource.get("channelId") == channel_id:
                        return True

                page_token = data.get("nextPageToken") or ""
                if not page_token:
                    return False

    async def subscribe(self, access_token: str, channel_id: str) -> None:
        """방문자 계정으로 channel_id를 구독한다. force-ssl 권한이 없으면 403."""
        body = {"snippet": {"resourceId": {"kind": "youtube#channel", "channelId": channel_id}}}
        try:
            async with self._client() as client:
                resp = await client.post(
                    YOUTUBE_SUBSCRIPTIONS_URL,
                    params={"part": "snippet"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=body,
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("채널 구독 요청 HTTP 에러 (channel=%s): %d", channel_id, status)
            if status == 403:
                raise InsufficientScopeError(
                    "유튜브 구독 권한이 없습니다. 로그인 시 모든 권한을 허용해주세요.",
                    status_code=status,
                ) from e
            raise SubscriptionQueryError("유튜브 채널 구독에 실패했습니다.", status_code=status) from e
        except httpx.RequestError as e:
            logger.warning("채널 구독 요청 네트워크 에러: %s", e)
            raise SubscriptionQueryError("유튜브 서버에 연결할 수 없습니다.") from e

        logger.info("채널 자동 구독 완료: %s", channel_id)
