# -*- coding: utf-8 -*-
"""
공고 목록 페이지 파서 (HTML 게시판 / JSON API)
"""

import json
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, List, Optional
from urllib.parse import parse_qsl, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .errors import ListingParseError
from .models import ListingItem

logger = logging.getLogger(__name__)

ROW_SELECTORS = (
    'table.board-list tbody tr',
    'table tbody tr',
    'tr',
    'ul.board-list li',
)

HEADER_WORDS = ('번호', '제목', '구분')
CATEGORY_WORDS = ('지원', '사업', '공모')
ORGANIZATION_WORDS = ('부', '청', '원', '공단')

# 상세 URL에서 게시물 고유번호로 쓰이는 쿼리 파라미터 (앞쪽 우선)
ID_PARAMS = ('pblancId', 'nttSn', 'nttId', 'seq', 'idx', 'bbsSn', 'no')

DATE_PATTERN = re.compile(r'(\d{4}|\d{2})[-./](\d{1,2})[-./](\d{1,2})')

DEFAULT_ORGANIZATION = '미분류'
DEFAULT_CATEGORY = '지원사업'


def _to_date(match) -> Optional[date]:
    year, month, day = (int(g) for g in match.groups())
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_posted_date(text: str) -> Optional[datetime]:
    """YYYY-MM-DD, YYYY.MM.DD, YY.MM.DD 형식 날짜 파싱"""
    if not text:
        return None
    match = DATE_PATTERN.search(text)
    if not match:
        return None
    parsed = _to_date(match)
    return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


def within_window(posted_at: Optional[datetime], now: datetime, hours: int) -> bool:
    """게시일이 최근 hours 시간 이내인지 (날짜 없는 항목은 유지)"""
    if posted_at is None:
        return True
    return posted_at >= now - timedelta(hours=hours)


def page_url(source_url: str, page: int) -> str:
    """목록 페이지 번호에 해당하는 URL 생성"""
    if '{page}' in source_url:
        return source_url.replace('{page}', str(page))

    if re.search(r'[?&]page=\d*', source_url):
        return re.sub(r'([?&])page=\d*', rf'\g<1>page={page}', source_url)

    if page <= 1:
        return source_url

    separator = '&' if '?' in source_url else '?'
    return f"{source_url}{separator}page={page}"


def external_id_from_url(url: Optional[str]) -> Optional[str]:
    """상세 URL의 게시물 번호 파라미터로 외부 ID 생성 (호스트 접두)"""
    if not url:
        return None

    parsed = urlparse(url)
    params = dict(parse_qsl(parsed.query))
    for key in ID_PARAMS:
        value = params.get(key, '').strip()
        if value:
            return f"{parsed.hostname}:{value}"
    return None


def _is_valid_name(name: str) -> bool:
    return bool(name) and len(name) >= 3 and not name.isdigit()


def _row_cells(row: Tag) -> List[Tag]:
    cells = row.find_all('td')
    if not cells and row.name == 'li':
        return [row]
    return cells


def _parse_row(row: Tag, page_url_: str) -> Optional[ListingItem]:
    cells = _row_cells(row)
    if row.name == 'tr' and len(cells) < 2:
        return None

    name = ''
    detail_url = None
    title_cell = None

    for cell in cells:
        link = cell.find('a')
        if link is not None:
            name = re.sub(r'\s+', ' ', link.get_text(' ', strip=True))
            title_cell = cell
            href = (link.get('href') or '').strip()
            # 전자정부 게시판의 javascript: 링크는 상세 URL 없이 둔다
            if href and not href.lower().startswith(('javascript:', '#')):
                try:
                    detail_url = urljoin(page_url_, href)
                except ValueError as e:
                    logger.warning(f"잘못된 상세 URL, 행 건너뜀: {href!r} ({e})")
                    return None
            break

    organization = ''
    category = ''
    posted_at = None
    deadline = None

    for cell in cells:
        if cell is title_cell:
            continue
        text = cell.get_text(' ', strip=True)

        dates = [d for d in (_to_date(m) for m in DATE_PATTERN.finditer(text)) if d]
        if dates:
            if len(dates) >= 2:
                deadline = dates[1]
            elif posted_at is None:
                posted_at = datetime(dates[0].year, dates[0].month, dates[0].day)
            continue

        if 2 < len(text) < 30 and not text.isdigit():
            if not category and any(word in text for word in CATEGORY_WORDS):
                category = text
            if not organization and any(word in text for word in ORGANIZATION_WORDS):
                organization = text

    # 링크가 없으면 두 번째, 세 번째 셀을 제목으로 사용
    if not name and len(cells) >= 2:
        name = cells[1].get_text(' ', strip=True)
        if len(name) < 3 and len(cells) >= 3:
            name = cells[2].get_text(' ', strip=True)

    if not _is_valid_name(name):
        return None

    return ListingItem(
        name=name,
        detail_url=detail_url,
        organization=organization or DEFAULT_ORGANIZATION,
        category=category or DEFAULT_CATEGORY,
        posted_at=posted_at,
        deadline=deadline,
        external_id=external_id_from_url(detail_url),
        summary=name,
    )


def parse_listing(html: str, page_url: str) -> List[ListingItem]:
    """게시판 목록 HTML에서 공고 항목 추출"""
    if not isinstance(html, str) or '<' not in html:
        raise ListingParseError(f"HTML 목록이 아님: {page_url}")

    soup = BeautifulSoup(html, 'html.parser')

    for selector in ROW_SELECTORS:
        rows = soup.select(selector)
        if not rows:
            continue

        items = []
        for idx, row in enumerate(rows):
            if not row.find('td') and row.find('th'):
                continue
            if idx == 0 and any(word in row.get_text() for word in HEADER_WORDS):
                continue

            item = _parse_row(row, page_url)
            if item:
                items.append(item)

        if items:
            logger.debug(f"목록 파싱: {selector} -> {len(items)}개 ({page_url})")
            return items

    logger.debug(f"목록에서 공고를 찾지 못함: {page_url}")
    return []


def _first(item: dict, *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ''):
            return value
    return None


def parse_api_listing(payload: Any, source_url: str) -> List[ListingItem]:
    """JSON API 응답에서 공고 항목 추출 (배열 또는 items/data)"""
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise ListingParseError(f"JSON 파싱 실패: {source_url} - {e}") from e

    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = payload.get('items') or payload.get('data') or []
    else:
        raise ListingParseError(f"지원하지 않는 API 응답 형식: {type(payload).__name__}")

    if not isinstance(records, list):
        raise ListingParseError(f"API 응답 목록 형식 오류: {source_url}")

    items = []
    for record in records:
        if not isinstance(record, dict):
            continue

        record_id = record.get('id')
        deadline = parse_posted_date(str(_first(record, 'deadline', 'endDate') or ''))
        items.append(ListingItem(
            name=_first(record, 'name', 'title') or '정보 없음',
            detail_url=_first(record, 'url', 'detailUrl'),
            organization=_first(record, 'organization', 'agency') or '미상',
            category=_first(record, 'category') or '기타',
            region=_first(record, 'region') or '전국',
            posted_at=parse_posted_date(str(_first(record, 'postedAt', 'createdAt', 'posted_at') or '')),
            deadline=deadline.date() if deadline else None,
            external_id=str(record_id) if record_id is not None else None,
            summary=_first(record, 'summary', 'description') or '',
            description=record.get('description') or '',
        ))

    return items
