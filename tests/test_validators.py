# -*- coding: utf-8 -*-
import pytest

from bizsup_ingest.models import ListingItem
from bizsup_ingest.validators import (
    extract_region_from_text,
    validate_category,
    validate_project,
    validate_region,
)


@pytest.mark.parametrize("value, expected", [
    ("R&D", "R&D"),
    ("", "기타"),
    (None, "기타"),
    ("서울", "기타"),
    ("2024-01-01", "기타"),
    ("투자지원", "자금"),
    ("행사ㆍ네트워크", "경영"),
    ("해외진출 지원사업", "글로벌"),
    ("스타트업 육성", "창업"),
    ("우주항공", "기타"),
])
def test_validate_category(value, expected):
    assert validate_category(value) == expected


@pytest.mark.parametrize("value, expected", [
    ("부산", "부산"),
    ("충청북도", "충청북도"),
    (None, "전국"),
    ("2024.03.01", "전국"),
    ("창업", "전국"),
    ("중소벤처기업부", "전국"),
    ("서울특별시", "서울"),
    ("전북도", "전북특별자치도"),
    ("온라인", "전국"),
    ("경기 성남시", "경기"),
    ("해외 현지", "전국"),
])
def test_validate_region(value, expected):
    assert validate_region(value) == expected


@pytest.mark.parametrize("text, expected", [
    ("부산테크노파크", "부산"),
    ("대구경북테크노파크", "대구"),
    ("전라남도 소재 기업 모집", "전남"),
    ("2024 경기도 스마트공장 지원", "경기"),
    ("경기침체 대응 긴급 자금", None),
    ("", None),
])
def test_extract_region_from_text(text, expected):
    assert extract_region_from_text(text) == expected


def test_validate_project_extracts_region_from_name_then_organization():
    item = ListingItem(name="2024 대구 스마트공장 지원", organization="중소벤처기업부", category="기술지원")
    validated = validate_project(item)

    assert validated.region == "대구"
    assert validated.category == "기술"
    # 원본은 그대로
    assert item.region == ""
    assert item.category == "기술지원"

    from_org = validate_project(ListingItem(name="스마트공장 구축 지원", organization="울산테크노파크"))
    assert from_org.region == "울산"


def test_validate_project_keeps_explicit_region():
    item = ListingItem(name="서울 소재 기업 공고", organization="기관", region="제주")
    assert validate_project(item).region == "제주"
