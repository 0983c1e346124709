# -*- coding: utf-8 -*-
"""
수집 파이프라인 예외 정의
"""

from typing import Optional


class IngestError(Exception):
    """수집 파이프라인 기본 예외"""
    pass


class FetchError(IngestError):
    """HTTP 요청 실패 (재시도 소진 또는 치명적 오류)"""

    def __init__(self, url: str, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status
        self.retryable = retryable


class FileTooLargeError(FetchError):
    """다운로드 크기 제한 초과"""

    def __init__(self, url: str, limit: int):
        super().__init__(url, f"파일 크기 제한 초과: {limit:,} bytes")
        self.limit = limit


class HtmlInsteadOfFileError(FetchError):
    """파일 대신 HTML 오류 페이지가 반환됨"""

    def __init__(self, url: str):
        super().__init__(url, "파일 대신 HTML 페이지가 반환됨")


class ListingParseError(IngestError):
    pass


class TextExtractionError(IngestError):
    pass


class UnsupportedFormatError(IngestError):
    pass


class StoreError(IngestError):
    """데이터베이스 작업 실패"""
    pass
