"""도메인 예외 계층.

스프링의 커스텀 RuntimeException 계층과 같은 역할이다.
HTTP 상태 코드 매핑은 main.py의 exception_handler가 담당한다.
"""


class ContentGateError(Exception):
    """모든 도메인 예외의 부모. message는 사용자에게 그대로 보여줄 수 있는 문장이다."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(ContentGateError):
    """잘못된 사용자 입력 — 다시 입력받으면 복구 가능."""


class NotFoundError(ContentGateError):
    """콘텐츠/시도(attempt) 등이 존재하지 않음."""


class StoreUnavailableError(ContentGateError):
    """저장소가 열리지 않았거나 DB 접근에 실패함. '없음'과 구분해야 한다."""


class ChannelResolutionError(ContentGateError):
    """검증 대상 유튜브 채널 ID를 알아낼 수 없음 — 관리자 설정 문제."""


# ── 외부 게이트웨이 (Google OAuth / YouTube Data API) ──


class GatewayError(ContentGateError):
    """외부 API 호출 실패. status_code는 응답이 있었을 때만 채워진다."""

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthExchangeError(GatewayError):
    """인가 코드 → 토큰 교환 실패."""


class ProfileFetchError(GatewayError):
    """구글 프로필 조회 실패."""


class SubscriptionQueryError(GatewayError):
    """유튜브 구독 목록 조회/구독 요청 실패."""


class InsufficientScopeError(GatewayError):
    """토큰에 youtube.force-ssl 권한이 없어 구독 요청이 403으로 거부됨."""
