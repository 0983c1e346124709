# -*- coding: utf-8 -*-
"""
첨부파일 분류기 - 매직 바이트 기반 형식 판별 및 파싱 우선순위 결정
"""

import os
from typing import Callable, Iterable, List, Sequence, TypeVar
from urllib.parse import unquote, urlparse

from .errors import UnsupportedFormatError

FILE_TYPE_PDF = 'pdf'
FILE_TYPE_HWP = 'hwp'
FILE_TYPE_HWPX = 'hwpx'
FILE_TYPE_UNKNOWN = 'unknown'

DOCUMENT_EXTENSIONS = ('.hwp', '.hwpx', '.pdf')

MIME_TYPES = {
    FILE_TYPE_PDF: 'application/pdf',
    FILE_TYPE_HWP: 'application/x-hwp',
    FILE_TYPE_HWPX: 'application/vnd.hancom.hwpx',
}

# 파싱 대상 키워드 (공고문, 신청서 등)
PARSE_KEYWORDS = (
    '공고', '신청서', '사업계획서', '지원서', '안내', '요강', '지침',
    '신청양식', '제출서류', '평가기준', '선정기준', '모집공고', '사업공고', '참가신청',
)

# 제외 키워드 (이미지, 홍보물 등)
SKIP_KEYWORDS = (
    '로고', '이미지', '배너', '썸네일', '포스터', '사진',
    'photo', 'image', 'logo', 'banner', 'poster',
)

PRIORITY_RULES = (
    (('공고', '모집', '안내'), 100),
    (('신청서', '지원서', '신청양식'), 80),
    (('사업계획서', '계획서'), 70),
    (('평가', '선정', '기준'), 60),
)
PRIORITY_DOCUMENT = 20
PRIORITY_DEFAULT = 10

T = TypeVar('T')


def detect_format(data: bytes) -> str:
    """매직 바이트로 실제 파일 형식 판별 (확장자는 신뢰하지 않음)"""
    if not data or len(data) < 8:
        return FILE_TYPE_UNKNOWN

    if data[:4] == b'%PDF':
        return FILE_TYPE_PDF

    # OLE 복합 문서 (HWP 5.0)
    if data[:4] == b'\xd0\xcf\x11\xe0':
        return FILE_TYPE_HWP

    # ZIP 컨테이너 (HWPX)
    if data[:2] == b'PK':
        return FILE_TYPE_HWPX

    return FILE_TYPE_UNKNOWN


def file_type_from_name(file_name: str) -> str:
    """파일명 확장자로 형식 추정 (다운로드 전 단계용)"""
    if not file_name:
        return FILE_TYPE_UNKNOWN

    ext = os.path.splitext(file_name.lower().strip())[1]
    return {
        '.pdf': FILE_TYPE_PDF,
        '.hwp': FILE_TYPE_HWP,
        '.hwpx': FILE_TYPE_HWPX,
    }.get(ext, FILE_TYPE_UNKNOWN)


def get_mime_type(file_type: str) -> str:
    if file_type not in MIME_TYPES:
        raise UnsupportedFormatError(f"지원하지 않는 파일 형식: {file_type}")
    return MIME_TYPES[file_type]


def file_name_from_url(url: str) -> str:
    """URL 경로의 마지막 조각을 파일명으로 사용"""
    path = unquote(urlparse(url).path)
    return os.path.basename(path)


def should_parse_file(
    file_name: str,
    parse_keywords: Sequence[str] = PARSE_KEYWORDS,
    skip_keywords: Sequence[str] = SKIP_KEYWORDS,
) -> bool:
    """다운로드/파싱할 가치가 있는 파일인지 판단"""
    if not file_name:
        return False

    lower_name = file_name.lower()

    if any(keyword.lower() in lower_name for keyword in skip_keywords):
        return False

    if any(keyword in lower_name for keyword in parse_keywords):
        return True

    return lower_name.strip().endswith(DOCUMENT_EXTENSIONS)


def parsing_priority(file_name: str) -> int:
    """파싱 우선순위 (높을수록 중요)"""
    if not file_name:
        return PRIORITY_DEFAULT

    for keywords, priority in PRIORITY_RULES:
        if any(keyword in file_name for keyword in keywords):
            return priority

    if file_name.lower().strip().endswith(DOCUMENT_EXTENSIONS):
        return PRIORITY_DOCUMENT

    return PRIORITY_DEFAULT


def sort_by_priority(items: Iterable[T], key: Callable[[T], str] = lambda item: item) -> List[T]:
    """우선순위 내림차순 정렬 (같은 순위는 원래 순서 유지)"""
    return sorted(items, key=lambda item: parsing_priority(key(item)), reverse=True)
