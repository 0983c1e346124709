# -*- coding: utf-8 -*-
"""
상세 페이지 첨부파일 링크 추출기

호스트 판별 함수 -> 추출 함수 레지스트리. 사이트 전용 전략이 없거나 링크를
하나도 찾지 못하면 일반 전략으로 다시 추출한다.
"""

import logging
import re
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import html2text
from bs4 import BeautifulSoup, Tag

from .models import AttachmentCandidate
from .transport import filename_from_url

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = ('.pdf', '.hwp', '.hwpx', '.doc', '.docx', '.xls', '.xlsx', '.zip')
DOCUMENT_TEXT_EXTENSIONS = ('.pdf', '.hwp', '.hwpx')
DOWNLOAD_HINTS = ('download', 'filedown', 'getfile', 'attachfile', 'attach')
IGNORED_HREF_PREFIXES = ('javascript:', '#', 'mailto:', 'tel:')

ONCLICK_FILE_PATTERN = re.compile(r"""['"]([^'"]+\.(?:pdf|hwp|hwpx)[^'"]*)['"]""", re.I)
EGOV_DOWNLOAD_PATTERN = re.compile(
    r"""(?:fn_egov_downFile|fn_download|fileDownload)\(\s*['"]([^'"]+)['"]\s*,\s*['"]([^'"]*)['"]"""
)
# 파일명 뒤 용량 표기: (123KB), [12 Byte], (1.2 MB)
SIZE_SUFFIX_PATTERN = re.compile(r'\s*[\(\[]\s*[\d.,]+\s*(?:bytes?|byte|[KMG]B?)\s*[\)\]]\s*$', re.I)

CONTENT_SELECTORS = ('.view_cont', '.board_view', '.view-content', '.bbs_view', '#content', 'article')

Extractor = Callable[[BeautifulSoup, str], List[AttachmentCandidate]]
HostPredicate = Callable[[str], bool]


def clean_link_text(text: str) -> str:
    """링크 텍스트에서 용량/안내 문구 제거"""
    text = re.sub(r'\s+', ' ', text or '').strip()
    text = SIZE_SUFFIX_PATTERN.sub('', text)
    for noise in ('다운로드', '바로보기', '미리보기'):
        if text.endswith(noise) and len(text) > len(noise):
            text = text[:-len(noise)].strip()
    return text


def _candidate(href: str, page_url: str, text: str = '') -> Optional[AttachmentCandidate]:
    try:
        url = urljoin(page_url, href.strip())
    except ValueError as e:
        logger.warning(f"잘못된 첨부파일 URL 건너뜀: {href!r} ({e})")
        return None
    name = clean_link_text(text)
    if '.' not in name:
        url_name = filename_from_url(url)
        if url_name or not name:
            name = url_name or name or 'attachment'
    return AttachmentCandidate(url=url, file_name=name)


def _usable_href(href: Optional[str]) -> bool:
    if not href or href.strip().lower().startswith(IGNORED_HREF_PREFIXES):
        return False
    try:
        urlparse(href.strip())
    except ValueError:
        logger.warning(f"잘못된 링크 URL 건너뜀: {href!r}")
        return False
    return True


def _append(candidates: List[AttachmentCandidate], href: str, page_url: str, text: str = ''):
    candidate = _candidate(href, page_url, text)
    if candidate is not None:
        candidates.append(candidate)


def _looks_like_file_link(href: str, text: str) -> bool:
    path = urlparse(href).path.lower()
    if path.endswith(FILE_EXTENSIONS):
        return True
    lower_href = href.lower()
    if any(hint in lower_href for hint in DOWNLOAD_HINTS):
        return True
    return text.lower().strip().endswith(DOCUMENT_TEXT_EXTENSIONS)


def dedupe_candidates(candidates: Iterable[AttachmentCandidate]) -> List[AttachmentCandidate]:
    """절대 URL 기준 중복 제거 (발견 순서 유지)"""
    seen = set()
    unique = []
    for candidate in candidates:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        unique.append(candidate)
    return unique


def extract_generic(soup: BeautifulSoup, page_url: str) -> List[AttachmentCandidate]:
    """일반 다운로드 링크 패턴 기반 추출"""
    candidates = []

    for link in soup.select('.file a, .attachment a, .download a, a[href]'):
        href = link.get('href', '')
        text = link.get_text(' ', strip=True)

        if _usable_href(href) and _looks_like_file_link(href, text):
            _append(candidates, href, page_url, text)
            continue

        # onclick 안에 파일 경로가 들어있는 경우
        onclick = link.get('onclick', '')
        match = ONCLICK_FILE_PATTERN.search(onclick) if onclick else None
        if match:
            _append(candidates, match.group(1), page_url, text)

    return candidates


def extract_bizinfo(soup: BeautifulSoup, page_url: str) -> List[AttachmentCandidate]:
    """기업마당 첨부파일 목록 (.attached_file_list)"""
    candidates = []

    containers = soup.select('.attached_file_list li, div.file_list li, .file_name')
    for item in containers:
        link = item.select_one('a[href*="fileDown"], a[href*="getImageFile"], a[href*="download"]')
        if not link or not _usable_href(link.get('href')):
            continue

        name_elem = item.select_one('.file_name')
        text = name_elem.get_text(' ', strip=True) if name_elem else link.get_text(' ', strip=True)
        _append(candidates, link['href'], page_url, text)

    return candidates


def extract_egov(soup: BeautifulSoup, page_url: str) -> List[AttachmentCandidate]:
    """전자정부 프레임워크 게시판 (테크노파크 등) - onclick 다운로드 함수 해석"""
    candidates = []
    parsed = urlparse(page_url)
    site_root = f"{parsed.scheme}://{parsed.netloc}"

    for link in soup.find_all('a', onclick=EGOV_DOWNLOAD_PATTERN):
        match = EGOV_DOWNLOAD_PATTERN.search(link.get('onclick', ''))
        if not match:
            continue
        file_id, file_sn = match.groups()
        download_url = f"{site_root}/cmm/fms/FileDown.do?atchFileId={file_id}&fileSn={file_sn or '0'}"
        _append(candidates, download_url, page_url, link.get_text(' ', strip=True))

    for link in soup.select('.file a[href], .view_file a[href], .board_file a[href], dd.file a[href]'):
        href = link.get('href', '')
        if not _usable_href(href):
            continue
        if 'FileDown.do' in href or 'download' in href.lower():
            _append(candidates, href, page_url, link.get_text(' ', strip=True))

    return candidates


def _host_endswith(*suffixes: str) -> HostPredicate:
    def predicate(host: str) -> bool:
        return any(host.endswith(s) for s in suffixes)
    return predicate


class ExtractorRegistry:
    """호스트 판별 함수와 추출 전략 매핑"""

    def __init__(self, default: Extractor = extract_generic):
        self._entries: List[Tuple[str, HostPredicate, Extractor]] = []
        self.default = default

    def register(self, name: str, predicate: HostPredicate):
        """추출 전략 등록 데코레이터"""
        def decorator(func: Extractor) -> Extractor:
            self._entries.append((name, predicate, func))
            return func
        return decorator

    @property
    def names(self) -> List[str]:
        return [name for name, _, _ in self._entries]

    def resolve(self, page_url: str, strategy: Optional[str] = None) -> Tuple[str, Extractor]:
        """사용할 추출 전략 선택 (명시적 전략명 우선)"""
        if strategy:
            for name, _, func in self._entries:
                if name == strategy:
                    return name, func
            logger.warning(f"등록되지 않은 추출 전략: {strategy} - 호스트 기준으로 선택")

        host = (urlparse(page_url).hostname or '').lower()
        for name, predicate, func in self._entries:
            if predicate(host):
                return name, func

        return 'generic', self.default

    def extract(self, html: str, page_url: str, strategy: Optional[str] = None) -> List[AttachmentCandidate]:
        """상세 페이지에서 첨부파일 링크 추출"""
        soup = BeautifulSoup(html, 'html.parser')
        name, extractor = self.resolve(page_url, strategy)

        candidates = extractor(soup, page_url)
        if not candidates and extractor is not self.default:
            logger.debug(f"{name} 전략에서 첨부파일을 찾지 못함 - 일반 전략 사용")
            candidates = self.default(soup, page_url)

        unique = dedupe_candidates(candidates)
        logger.debug(f"첨부파일 {len(unique)}개 추출 ({name}): {page_url}")
        return unique


def build_default_registry() -> ExtractorRegistry:
    registry = ExtractorRegistry()
    registry.register('bizinfo', _host_endswith('bizinfo.go.kr'))(extract_bizinfo)
    registry.register('egov', _host_endswith('tp.or.kr', 'technopark.kr', 'tpi.or.kr'))(extract_egov)
    return registry


default_registry = build_default_registry()


def extract_content(html: str) -> str:
    """상세 페이지 본문을 마크다운으로 변환"""
    soup = BeautifulSoup(html, 'html.parser')

    content_elem: Optional[Tag] = None
    for selector in CONTENT_SELECTORS:
        content_elem = soup.select_one(selector)
        if content_elem:
            break
    if content_elem is None:
        content_elem = soup.body or soup

    for tag in content_elem.find_all(['script', 'style']):
        tag.decompose()

    h2t = html2text.HTML2Text()
    h2t.ignore_links = False
    h2t.ignore_images = True
    h2t.body_width = 0

    return h2t.handle(str(content_elem)).strip()
