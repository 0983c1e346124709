# -*- coding: utf-8 -*-
"""
분야/지역 값 검증 및 정규화

목록 셀 휴리스틱은 분야 칸에 지역이나 날짜가, 지역 칸에 부처명이 들어가는
경우가 잦으므로 저장 전에 허용 값으로 맞춘다.
"""

import dataclasses
import logging
import re
from typing import Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_CATEGORY = "기타"
DEFAULT_REGION = "전국"

VALID_CATEGORIES = (
    "인력", "수출", "창업", "기술", "자금", "판로", "경영", "R&D", "글로벌", "사업화", "기타",
)

VALID_REGIONS = (
    "전국", "서울", "경기", "인천", "강원", "충북", "충남", "대전", "세종", "전북", "전남",
    "광주", "경북", "경남", "대구", "울산", "부산", "제주",
    "강원도", "경상북도", "경상남도", "전라북도", "전라남도", "전북특별자치도", "충청북도", "충청남도",
)

DATE_LIKE = re.compile(r'^\d{4}[-./]\d{2}[-./]\d{2}')

CATEGORY_MAPPING = {
    "시설ㆍ공간ㆍ보육": "기타",
    "행사ㆍ네트워크": "경영",
    "멘토링ㆍ컨설팅ㆍ교육": "경영",
    "내수": "판로",
    "판로ㆍ해외진출": "판로",
    "포항": "기타",
    "수출입": "수출",
    "R&D/기술": "R&D",
    "기술개발": "기술",

    # 자금
    "투자": "자금",
    "투자지원": "자금",
    "금융": "자금",
    "금융지원": "자금",
    "융자": "자금",
    "보증": "자금",
    "보조금": "자금",
    "지원금": "자금",

    # 수출/글로벌
    "수출지원": "수출",
    "해외진출": "글로벌",
    "해외": "글로벌",
    "글로벌지원": "글로벌",
    "수출": "수출",

    # R&D/기술
    "특허": "R&D",
    "연구": "R&D",
    "연구개발": "R&D",
    "기술이전": "기술",
    "인증": "기술",
    "인증지원": "기술",
    "기술지원": "기술",
    "기술사업화": "사업화",

    # 창업
    "창업지원": "창업",
    "스케일업": "창업",
    "액셀러레이팅": "창업",
    "액셀러레이터": "창업",
    "예비창업": "창업",
    "초기창업": "창업",

    # 경영/교육
    "컨설팅": "경영",
    "컨설팅지원": "경영",
    "교육": "인력",
    "교육지원": "인력",
    "네트워크": "경영",
    "멘토링": "경영",

    # 판로
    "마케팅": "판로",
    "홍보": "판로",
    "홍보지원": "판로",
    "판로지원": "판로",

    # 인력
    "인력지원": "인력",
    "고용지원": "인력",
    "채용지원": "인력",
    "일자리": "인력",

    # 사업화
    "사업화지원": "사업화",
    "상용화": "사업화",

    # 시설/공간
    "입주": "기타",
    "입주지원": "기타",
    "공간지원": "기타",
}

# 순서 중요 (앞쪽 키워드 우선)
CATEGORY_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("투자", "자금"),
    ("융자", "자금"),
    ("보증", "자금"),
    ("자금", "자금"),
    ("금융", "자금"),
    ("수출", "수출"),
    ("해외", "글로벌"),
    ("글로벌", "글로벌"),
    ("R&D", "R&D"),
    ("연구", "R&D"),
    ("기술", "기술"),
    ("특허", "R&D"),
    ("창업", "창업"),
    ("스타트업", "창업"),
    ("인력", "인력"),
    ("교육", "인력"),
    ("고용", "인력"),
    ("일자리", "인력"),
    ("컨설팅", "경영"),
    ("멘토링", "경영"),
    ("경영", "경영"),
    ("판로", "판로"),
    ("마케팅", "판로"),
    ("사업화", "사업화"),
)

REGION_MAPPING = {
    "울산광역시": "울산",
    "인천광역시": "인천",
    "서울특별시": "서울",
    "부산광역시": "부산",
    "대구광역시": "대구",
    "대전광역시": "대전",
    "광주광역시": "광주",
    "경기도": "경기",
    "강원도": "강원",
    "충청북도": "충북",
    "충청남도": "충남",
    "전라북도": "전북",
    "전라남도": "전남",
    "경상북도": "경북",
    "경상남도": "경남",
    "제주특별자치도": "제주",
    "전북특별자치도": "전북특별자치도",
    "전북도": "전북특별자치도",
    "세종특별자치시": "세종",

    # 복합 지역은 전국 처리
    "서울/경기": "전국",
    "수도권": "전국",
    "전국 및 해외": "전국",
    "해외": "전국",
    "온라인": "전국",
}

SHORT_REGIONS = (
    "서울", "경기", "인천", "강원", "충북", "충남", "대전", "세종", "전북", "전남",
    "광주", "경북", "경남", "대구", "울산", "부산", "제주",
)

MINISTRY_WORDS = ("부", "청", "원")

# 기관명 패턴 먼저, 그다음 일반 지역명 (구체적인 것부터)
ORGANIZATION_REGION_PATTERNS = (
    (re.compile(r'서울(?:산업진흥원|테크노파크|창조경제혁신센터|창업지원센터)'), "서울"),
    (re.compile(r'경기(?:도경제과학진흥원|테크노파크|창조경제혁신센터)'), "경기"),
    (re.compile(r'인천(?:테크노파크|창조경제혁신센터|경제자유구역)'), "인천"),
    (re.compile(r'부산(?:테크노파크|창조경제혁신센터|경제진흥원)'), "부산"),
    (re.compile(r'대구(?:테크노파크|창조경제혁신센터|경북테크노파크)'), "대구"),
    (re.compile(r'광주(?:테크노파크|창조경제혁신센터|전남테크노파크)'), "광주"),
    (re.compile(r'대전(?:테크노파크|창조경제혁신센터|충남테크노파크)'), "대전"),
    (re.compile(r'울산(?:테크노파크|창조경제혁신센터)'), "울산"),
    (re.compile(r'강원(?:테크노파크|창조경제혁신센터)'), "강원"),
    (re.compile(r'충북(?:테크노파크|창조경제혁신센터)'), "충북"),
    (re.compile(r'충남(?:테크노파크|창조경제혁신센터)'), "충남"),
    (re.compile(r'전북(?:테크노파크|창조경제혁신센터)'), "전북"),
    (re.compile(r'전남(?:테크노파크|창조경제혁신센터)'), "전남"),
    (re.compile(r'경북(?:테크노파크|창조경제혁신센터)'), "경북"),
    (re.compile(r'경남(?:테크노파크|창조경제혁신센터)'), "경남"),
    (re.compile(r'제주(?:테크노파크|창조경제혁신센터)'), "제주"),
)

REGION_PATTERNS = (
    (re.compile(r'서울(?:특별시|시)?'), "서울"),
    (re.compile(r'부산(?:광역시|시)?'), "부산"),
    (re.compile(r'대구(?:광역시|시)?'), "대구"),
    (re.compile(r'인천(?:광역시|시)?'), "인천"),
    (re.compile(r'광주(?:광역시|시)?'), "광주"),
    (re.compile(r'대전(?:광역시|시)?'), "대전"),
    (re.compile(r'울산(?:광역시|시)?'), "울산"),
    (re.compile(r'세종(?:특별자치시|시)?'), "세종"),
    # 경기도 뒤에 다른 한글이 붙으면 (경기침체 등) 지역이 아님
    (re.compile(r'경기(?:도)?(?![\uAC00-\uD7AF])'), "경기"),
    (re.compile(r'강원(?:특별자치도|도)?'), "강원"),
    (re.compile(r'충청북도|충북'), "충북"),
    (re.compile(r'충청남도|충남'), "충남"),
    (re.compile(r'전라북도|전북(?:특별자치도)?'), "전북"),
    (re.compile(r'전라남도|전남'), "전남"),
    (re.compile(r'경상북도|경북'), "경북"),
    (re.compile(r'경상남도|경남'), "경남"),
    (re.compile(r'제주(?:특별자치도|도)?'), "제주"),
)


def validate_category(value: Optional[str]) -> str:
    """분야 값 정규화 (알 수 없으면 기타)"""
    if not value or not value.strip():
        return DEFAULT_CATEGORY

    trimmed = value.strip()

    if trimmed in VALID_CATEGORIES:
        return trimmed

    if trimmed in VALID_REGIONS:
        logger.warning(f"분야 칸에 지역명 '{trimmed}' - 기타로 처리")
        return DEFAULT_CATEGORY

    if DATE_LIKE.match(trimmed):
        logger.warning(f"분야 칸에 날짜 '{trimmed}' - 기타로 처리")
        return DEFAULT_CATEGORY

    if trimmed in CATEGORY_MAPPING:
        logger.debug(f"분야 매핑: {trimmed} -> {CATEGORY_MAPPING[trimmed]}")
        return CATEGORY_MAPPING[trimmed]

    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in trimmed:
            logger.debug(f"분야 부분 일치: {trimmed} ({keyword}) -> {category}")
            return category

    logger.warning(f"알 수 없는 분야 '{trimmed}' - 기타로 처리")
    return DEFAULT_CATEGORY


def validate_region(value: Optional[str]) -> str:
    """지역 값 정규화 (알 수 없으면 전국)"""
    if not value or not value.strip():
        return DEFAULT_REGION

    trimmed = value.strip()

    if trimmed in VALID_REGIONS:
        return trimmed

    if DATE_LIKE.match(trimmed):
        logger.warning(f"지역 칸에 날짜 '{trimmed}' - 전국으로 처리")
        return DEFAULT_REGION

    if trimmed in VALID_CATEGORIES:
        logger.warning(f"지역 칸에 분야 '{trimmed}' - 전국으로 처리")
        return DEFAULT_REGION

    if any(word in trimmed for word in MINISTRY_WORDS):
        logger.warning(f"지역 칸에 기관명 '{trimmed}' - 전국으로 처리")
        return DEFAULT_REGION

    if trimmed in REGION_MAPPING:
        logger.debug(f"지역 매핑: {trimmed} -> {REGION_MAPPING[trimmed]}")
        return REGION_MAPPING[trimmed]

    for region in SHORT_REGIONS:
        if region in trimmed:
            logger.debug(f"지역 부분 일치: {trimmed} -> {region}")
            return region

    logger.warning(f"알 수 없는 지역 '{trimmed}' - 전국으로 처리")
    return DEFAULT_REGION


def extract_region_from_text(text: Optional[str]) -> Optional[str]:
    """공고 제목/기관명에서 지역 추출"""
    if not text:
        return None

    for pattern, region in ORGANIZATION_REGION_PATTERNS:
        if pattern.search(text):
            return region

    for pattern, region in REGION_PATTERNS:
        if pattern.search(text):
            return region

    return None


def validate_project(item: T) -> T:
    """공고 항목의 분야/지역 정규화 (원본은 변경하지 않음)"""
    region = validate_region(getattr(item, 'region', None))

    if region == DEFAULT_REGION:
        extracted = extract_region_from_text(getattr(item, 'name', ''))
        if extracted:
            logger.debug(f"제목에서 지역 추출: {extracted}")
        else:
            extracted = extract_region_from_text(getattr(item, 'organization', ''))
            if extracted:
                logger.debug(f"기관명에서 지역 추출: {extracted}")
        region = extracted or region

    return dataclasses.replace(
        item,
        category=validate_category(getattr(item, 'category', None)),
        region=region,
    )
