"""로깅 설정 — 스프링의 logback-spring.xml 역할.

- getLogger(__name__) → 모듈 경로가 로거 이름
- 외부 HTTP 클라이언트(httpx)는 요청마다 INFO 로그를 찍으므로 WARNING으로 낮춘다
"""

import logging


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
