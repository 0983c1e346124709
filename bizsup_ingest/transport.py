# -*- coding: utf-8 -*-
"""
HTTP 전송 클라이언트 - 커넥션 풀 공유, 재시도/백오프, 다운로드 크기 제한
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import parse_qsl, unquote, urlparse

import aiohttp
import chardet

from .config import Settings, settings as default_settings
from .errors import FetchError, FileTooLargeError, HtmlInsteadOfFileError
from .file_classifier import file_name_from_url

logger = logging.getLogger(__name__)

KIND_PAGE = 'page'
KIND_FILE = 'file'

PAGE_ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8'
FILE_ACCEPT = 'application/octet-stream, */*'

# 연결 끊김, 타임아웃, 응답 잘림은 재시도 대상
RETRYABLE_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
)

# 다운로드 URL 경로 끝이 이 확장자면 파일명이 아니라 서버 스크립트
SCRIPT_EXTENSIONS = ('.do', '.php', '.jsp', '.asp', '.aspx', '.html', '.htm')

HTML_SNIFF_BYTES = 512
CHUNK_SIZE = 8192

# 한국 공공기관 사이트 charset 별칭 (CP949가 EUC-KR 상위집합)
CHARSET_ALIASES = {
    'euc-kr': 'cp949',
    'euc_kr': 'cp949',
    'ks_c_5601-1987': 'cp949',
    'ks_c_5601': 'cp949',
    'x-windows-949': 'cp949',
}


@dataclass
class FetchContext:
    """인증이 필요한 다운로드용 요청 컨텍스트"""
    referer: Optional[str] = None
    cookie: Optional[str] = None


@dataclass
class FetchResponse:
    url: str
    status: int
    body: bytes
    content_type: str = ''
    content_disposition: str = ''
    set_cookies: List[str] = field(default_factory=list)


@dataclass
class FetchedPage:
    url: str
    text: str
    cookie: Optional[str] = None


@dataclass
class DownloadedFile:
    url: str
    content: bytes
    file_name: Optional[str] = None
    content_type: str = ''

    @property
    def size(self) -> int:
        return len(self.content)


def looks_like_html(data: bytes) -> bool:
    """다운로드 본문이 HTML 오류 페이지인지 확인"""
    head = data[:HTML_SNIFF_BYTES]
    if head.startswith(b'\xef\xbb\xbf'):
        head = head[3:]
    head = head.lstrip().lower()
    return head.startswith(b'<!doctype') or head.startswith(b'<html')


def cookie_header(set_cookies: List[str]) -> Optional[str]:
    """Set-Cookie 헤더들을 Cookie 요청 헤더로 변환"""
    pairs = [c.split(';')[0].strip() for c in set_cookies if c and c.strip()]
    return '; '.join(p for p in pairs if p) or None


def decode_html(body: bytes, content_type: str = '') -> str:
    """HTML 바이트 디코딩 (헤더 charset -> meta charset -> chardet)"""
    encoding = None

    match = re.search(r'charset=["\']?([\w\-]+)', content_type or '', re.I)
    if match:
        encoding = match.group(1)
    else:
        head = body[:2048].decode('ascii', errors='ignore')
        meta = re.search(r'<meta[^>]+charset=["\']?([\w\-]+)', head, re.I)
        if meta:
            encoding = meta.group(1)

    if not encoding:
        detected = chardet.detect(body[:20000])
        encoding = detected.get('encoding') or 'utf-8'
        logger.debug(f"chardet 인코딩 감지: {encoding} (신뢰도 {detected.get('confidence')})")

    encoding = CHARSET_ALIASES.get(encoding.lower(), encoding)
    try:
        return body.decode(encoding, errors='replace')
    except LookupError:
        return body.decode('utf-8', errors='replace')


def _decode_header_filename(value: str) -> str:
    # aiohttp는 헤더를 UTF-8 + surrogateescape로 디코딩하므로 원래 바이트 복원 가능
    raw = value.encode('utf-8', errors='surrogateescape')
    for encoding in ('utf-8', 'cp949'):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode('utf-8', errors='replace')


def filename_from_content_disposition(content_disposition: str) -> Optional[str]:
    """Content-Disposition 헤더에서 파일명 추출"""
    if not content_disposition:
        return None

    # RFC 5987 형식 우선 시도
    rfc5987_match = re.search(r"filename\*\s*=\s*([^']*)'[^']*'([^;]+)", content_disposition, re.I)
    if rfc5987_match:
        encoding = rfc5987_match.group(1) or 'utf-8'
        try:
            return unquote(rfc5987_match.group(2).strip().strip('"'), encoding=encoding, errors='strict')
        except (UnicodeDecodeError, LookupError) as e:
            logger.debug(f"RFC5987 파일명 처리 실패: {e}")

    filename_match = re.search(r'filename\s*=\s*(?:"([^"]+)"|([^;]+))', content_disposition, re.I)
    if not filename_match:
        return None

    filename = _decode_header_filename((filename_match.group(1) or filename_match.group(2)).strip())
    if re.search(r'%[0-9A-Fa-f]{2}', filename):
        for encoding in ('utf-8', 'cp949'):
            try:
                filename = unquote(filename, encoding=encoding, errors='strict')
                break
            except UnicodeDecodeError:
                continue

    filename = filename.replace('+', ' ').strip()
    return filename or None


def filename_from_url(url: str) -> Optional[str]:
    """URL 경로 또는 쿼리 파라미터에서 파일명 추출"""
    name = file_name_from_url(url)
    if name and '.' in name and not name.lower().endswith(SCRIPT_EXTENSIONS):
        return name

    for key, value in parse_qsl(urlparse(url).query):
        if ('name' in key.lower() or 'file' in key.lower()) and '.' in value:
            return os.path.basename(value)

    return None


class TransportClient:
    """공유 커넥션 풀 기반 비동기 HTTP 클라이언트"""

    def __init__(self, config: Settings = default_settings,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config
        self._sleep = sleep
        self.session: Optional[aiohttp.ClientSession] = None

        self.headers = {
            'User-Agent': config.USER_AGENT,
            'Accept-Language': 'ko-KR,ko;q=0.9',
        }

        self.stats: Dict[str, int] = {
            'requests_made': 0,
            'retries': 0,
            'files_downloaded': 0,
            'total_download_size': 0,
            'errors_encountered': 0,
        }

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        await self.initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        await self.cleanup_session()

    async def initialize_session(self):
        """커넥션 풀 세션 초기화"""
        if self.session is None:
            connector_options: Dict[str, Any] = {
                'limit': self.config.MAX_CONNECTIONS,
                'limit_per_host': self.config.MAX_CONNECTIONS_PER_HOST,
            }
            if not self.config.VERIFY_SSL:
                connector_options['ssl'] = False

            self.session = aiohttp.ClientSession(
                headers=self.headers,
                connector=aiohttp.TCPConnector(**connector_options),
            )

    async def cleanup_session(self):
        """세션 정리"""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _request_headers(self, kind: str, context: Optional[FetchContext]) -> Dict[str, str]:
        headers = {'Accept': FILE_ACCEPT if kind == KIND_FILE else PAGE_ACCEPT}
        if context:
            if context.referer:
                headers['Referer'] = context.referer
            if context.cookie:
                headers['Cookie'] = context.cookie
        return headers

    def backoff_delay(self, attempt: int) -> float:
        """attempt번째 실패 후 대기 시간 (1초부터 2배씩, 상한 있음)"""
        return min(self.config.RETRY_BASE_DELAY * (2 ** (attempt - 1)), self.config.RETRY_MAX_DELAY)

    async def request(self, url: str, kind: str = KIND_PAGE,
                      context: Optional[FetchContext] = None) -> FetchResponse:
        """재시도 포함 요청 - 최종 실패시 FetchError"""
        max_attempts = max(1, self.config.MAX_RETRIES)
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            attempt_msg = f"시도 {attempt}/{max_attempts}"
            try:
                self.stats['requests_made'] += 1
                return await self._fetch_once(url, kind, context)

            except FetchError as e:
                if not e.retryable:
                    logger.error(f"요청 실패 (재시도 안함) {url}: {e}")
                    self.stats['errors_encountered'] += 1
                    raise
                last_error = e

            except RETRYABLE_ERRORS as e:
                last_error = e

            # 리다이렉트 반복, 잘못된 URL 등은 재시도해도 같은 결과
            except (aiohttp.ClientError, ValueError) as e:
                logger.error(f"요청 실패 (재시도 안함) {url}: {e!r}")
                self.stats['errors_encountered'] += 1
                raise FetchError(url, f"요청 실패: {e!r}", status=getattr(e, 'status', None)) from e

            if attempt < max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(f"요청 실패 {url}: {last_error!r} - {attempt_msg}, {delay:g}초 후 재시도")
                self.stats['retries'] += 1
                await self._sleep(delay)
            else:
                logger.error(f"요청 최종 실패 {url}: {last_error!r} - {attempt_msg}")

        self.stats['errors_encountered'] += 1
        status = getattr(last_error, 'status', None)
        raise FetchError(url, f"요청 최종 실패: {last_error!r}", status=status, retryable=True)

    async def _fetch_once(self, url: str, kind: str, context: Optional[FetchContext]) -> FetchResponse:
        """단일 요청 시도"""
        if not self.session:
            await self.initialize_session()

        total = self.config.FILE_TIMEOUT if kind == KIND_FILE else self.config.REQUEST_TIMEOUT
        timeout = aiohttp.ClientTimeout(total=total)

        async with self.session.get(url, headers=self._request_headers(kind, context), timeout=timeout) as response:
            if response.status == 429 or response.status >= 500:
                raise FetchError(url, f"HTTP {response.status}", status=response.status, retryable=True)
            if response.status >= 400:
                raise FetchError(url, f"HTTP {response.status}", status=response.status, retryable=False)

            if kind == KIND_FILE:
                body = await self._read_file_body(url, response)
            else:
                body = await response.read()

            return FetchResponse(
                url=str(response.url),
                status=response.status,
                body=body,
                content_type=response.headers.get('Content-Type', ''),
                content_disposition=response.headers.get('Content-Disposition', ''),
                set_cookies=list(response.headers.getall('Set-Cookie', [])),
            )

    async def _read_file_body(self, url: str, response: aiohttp.ClientResponse) -> bytes:
        """크기 제한을 지키며 스트리밍으로 본문 읽기"""
        max_size = self.config.MAX_FILE_SIZE

        if response.content_length is not None and response.content_length > max_size:
            raise FileTooLargeError(url, max_size)

        buffer = bytearray()
        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
            buffer.extend(chunk)
            if len(buffer) > max_size:
                raise FileTooLargeError(url, max_size)

        return bytes(buffer)

    async def fetch(self, url: str, kind: str = KIND_PAGE, context: Optional[FetchContext] = None) -> bytes:
        """URL 본문 바이트 반환"""
        response = await self.request(url, kind, context)
        if kind == KIND_FILE and looks_like_html(response.body):
            self.stats['errors_encountered'] += 1
            raise HtmlInsteadOfFileError(url)
        return response.body

    async def fetch_page(self, url: str, context: Optional[FetchContext] = None) -> FetchedPage:
        """HTML 페이지 가져오기 (인코딩 자동 판별, 세션 쿠키 포함)"""
        response = await self.request(url, KIND_PAGE, context)
        return FetchedPage(
            url=response.url,
            text=decode_html(response.body, response.content_type),
            cookie=cookie_header(response.set_cookies),
        )

    async def fetch_file(self, url: str, context: Optional[FetchContext] = None) -> DownloadedFile:
        """첨부파일 다운로드 (HTML 오류 페이지 감지, 서버 파일명 추출)"""
        response = await self.request(url, KIND_FILE, context)

        if looks_like_html(response.body):
            self.stats['errors_encountered'] += 1
            raise HtmlInsteadOfFileError(url)

        file_name = filename_from_content_disposition(response.content_disposition) or filename_from_url(response.url)

        self.stats['files_downloaded'] += 1
        self.stats['total_download_size'] += len(response.body)
        logger.info(f"다운로드 완료: {file_name or url} ({len(response.body):,} bytes)")

        return DownloadedFile(
            url=response.url,
            content=response.body,
            file_name=file_name,
            content_type=response.content_type,
        )
