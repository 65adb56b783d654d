"""애플리케이션 설정 - pydantic-settings로 환경변수를 타입 안전하게 관리한다.

스프링의 @ConfigurationProperties 와 동일한 역할:
- 환경변수 → 필드 자동 바인딩 (GOOGLE_CLIENT_ID → google_client_id)
- .env 파일이 있으면 함께 읽는다
- 구글/유튜브 키는 기본값이 빈 문자열 → 키 없이도 관리자 화면과 이메일 게이팅은 동작한다
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Google OAuth / YouTube Data API
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/auth/callback"
    youtube_api_key: str = ""

    # 구독 확인 실패 시 방문자를 채널에 자동 구독시킨다 (접근은 여전히 거부)
    auto_subscribe_on_miss: bool = True

    # 외부 API 타임아웃 (초)
    http_timeout: float = 10.0

    # 공유 링크 생성용 (<public_origin>/content/<id>)
    public_origin: str = "http://localhost:8000"

    # 부트스트랩 관리자 계정 — 설정 전에도 관리자 화면이 잠기지 않도록
    admin_email: str = "admin@example.com"
    admin_password: str = "admin123"

    # 콘텐츠당 첨부파일 최대 개수
    max_attachments_per_content: int = 5

    # 진행 중인 접근 시도 보관 한도 — 마지막 활동 후 TTL(초)이 지나거나 개수를 넘으면 오래된 것부터 버린다
    attempt_ttl_seconds: float = 1800.0
    max_pending_attempts: int = 10_000

    # Database
    database_url: str = "sqlite+aiosqlite:///content_gate.db"


# 싱글턴 인스턴스 — 스프링의 @Bean과 유사
settings = Settings()
