# -*- coding: utf-8 -*-
from datetime import datetime
from typing import Dict, List, Optional, Union

import pytest

from bizsup_ingest.config import Settings
from bizsup_ingest.errors import FetchError
from bizsup_ingest.storage import LocalBlobStorage
from bizsup_ingest.store import SQLiteStore
from bizsup_ingest.text_extraction import ParseResult
from bizsup_ingest.transport import DownloadedFile, FetchedPage

PDF_BYTES = b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n'
HWP_BYTES = b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1' + b'\x00' * 64
LONG_TEXT = "2024년 창업지원사업 모집공고 - 지원대상은 공고일 기준 창업 7년 이내 중소기업이며 신청은 온라인으로 접수한다."

FIXED_NOW = datetime(2024, 3, 16, 12, 0, 0)


class RecordingSleep:
    """asyncio.sleep 대체 - 대기 시간만 기록"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FakeTransport:
    """URL -> 응답 매핑 기반 가짜 전송 클라이언트 (예외 객체를 넣으면 발생시킴)"""

    def __init__(self, pages: Optional[Dict[str, Union[str, Exception]]] = None,
                 files: Optional[Dict[str, Union[DownloadedFile, Exception]]] = None):
        self.pages = pages or {}
        self.files = files or {}
        self.page_calls: List[str] = []
        self.file_calls: List[str] = []
        self.stats = {'requests_made': 0, 'files_downloaded': 0, 'errors_encountered': 0}

    async def fetch_page(self, url, context=None):
        self.page_calls.append(url)
        self.stats['requests_made'] += 1
        response = self.pages.get(url)
        if response is None:
            raise FetchError(url, "HTTP 404", status=404)
        if isinstance(response, Exception):
            raise response
        return FetchedPage(url=url, text=response)

    async def fetch_file(self, url, context=None):
        self.file_calls.append(url)
        self.stats['requests_made'] += 1
        response = self.files.get(url)
        if response is None:
            raise FetchError(url, "HTTP 404", status=404)
        if isinstance(response, Exception):
            raise response
        self.stats['files_downloaded'] += 1
        return response


class FakeExtractor:
    def __init__(self, result: Optional[ParseResult] = None):
        self.result = result or ParseResult(True, LONG_TEXT, None)
        self.calls: List[str] = []

    async def parse(self, data, file_type):
        self.calls.append(file_type)
        return self.result


@pytest.fixture
def test_settings():
    return Settings(
        MAX_PAGES=5,
        MAX_PROJECTS=50,
        HOURS_FILTER=28,
        PAGE_DELAY_MS=1000,
        DETAIL_DELAY_MS=500,
        FILE_DELAY_MS=500,
        MAX_RETRIES=3,
        MIN_TEXT_LENGTH=50,
        MAX_TEXT_LENGTH=100000,
    )


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(str(tmp_path / "bizsup.db"))


@pytest.fixture
def blob_storage(tmp_path):
    return LocalBlobStorage(str(tmp_path / "blobs"))


@pytest.fixture
def sleep_recorder():
    return RecordingSleep()
