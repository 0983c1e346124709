# -*- coding: utf-8 -*-
"""
수집 파이프라인 설정 - 환경변수 기반
"""

import os

from pydantic import BaseModel, Field


class Settings(BaseModel):
    # 수집 범위
    MAX_PAGES: int = Field(default=int(os.getenv("MAX_PAGES", "5")))
    MAX_PROJECTS: int = Field(default=int(os.getenv("MAX_PROJECTS", "50")))
    HOURS_FILTER: int = Field(default=int(os.getenv("HOURS_FILTER", "28")))

    # 타임아웃 (초)
    REQUEST_TIMEOUT: float = Field(default=float(os.getenv("REQUEST_TIMEOUT", "30")))
    FILE_TIMEOUT: float = Field(default=float(os.getenv("FILE_TIMEOUT", "60")))

    # 요청 간 대기 (밀리초)
    PAGE_DELAY_MS: int = Field(default=int(os.getenv("PAGE_DELAY_MS", "1000")))
    DETAIL_DELAY_MS: int = Field(default=int(os.getenv("DETAIL_DELAY_MS", "500")))
    FILE_DELAY_MS: int = Field(default=int(os.getenv("FILE_DELAY_MS", "500")))

    # 다운로드 제한
    MAX_FILE_SIZE: int = Field(default=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))))  # 10MB

    # 재시도
    MAX_RETRIES: int = Field(default=int(os.getenv("MAX_RETRIES", "3")))
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 8.0

    # 커넥션 풀
    MAX_CONNECTIONS: int = Field(default=int(os.getenv("MAX_CONNECTIONS", "20")))
    MAX_CONNECTIONS_PER_HOST: int = Field(default=int(os.getenv("MAX_CONNECTIONS_PER_HOST", "10")))
    # 일부 공공기관 사이트는 인증서 체인이 불완전함
    VERIFY_SSL: bool = Field(default=os.getenv("VERIFY_SSL", "true").lower() == "true")
    USER_AGENT: str = Field(
        default=os.getenv(
            "USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        )
    )

    # 텍스트 추출
    TEXT_PARSER_URL: str = Field(default=os.getenv("TEXT_PARSER_URL", "https://hwp-api.onrender.com"))
    TEXT_PARSER_TIMEOUT: float = Field(default=float(os.getenv("TEXT_PARSER_TIMEOUT", "60")))
    MAX_TEXT_LENGTH: int = Field(default=int(os.getenv("MAX_TEXT_LENGTH", "100000")))
    MIN_TEXT_LENGTH: int = Field(default=int(os.getenv("MIN_TEXT_LENGTH", "50")))

    # 저장소
    DATABASE_PATH: str = Field(default=os.getenv("DATABASE_PATH", "bizsup.db"))
    STORAGE_DIR: str = Field(default=os.getenv("STORAGE_DIR", "storage"))

    # 작업 처리
    PENDING_JOB_BATCH: int = Field(default=int(os.getenv("PENDING_JOB_BATCH", "5")))

    LOG_LEVEL: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))


settings = Settings()
