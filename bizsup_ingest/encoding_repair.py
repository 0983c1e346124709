# -*- coding: utf-8 -*-
"""
인코딩 손상 탐지/복구 엔진

정부 사이트 첨부파일명과 추출 텍스트는 UTF-8 바이트를 EUC-KR/CP949 또는
Latin-1로 잘못 읽은 상태로 들어오는 경우가 많다. 손상 여부는 서로 독립된
패턴 검사로 판정하고, 복구는 순서가 정해진 변환 전략을 차례로 시도한다.

모든 함수는 순수 함수이며 네트워크/저장소에 의존하지 않는다.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional, Sequence, Tuple
from urllib.parse import unquote

logger = logging.getLogger(__name__)

KOREAN_CODECS = ('euc_kr', 'cp949')

# UTF-8 바이트를 단일/이중 바이트 한국어 코드페이지로 잘못 읽었을 때 나타나는 희귀 음절
RARE_SYLLABLES = frozenset(
    "혚혞혱혗쨀혶쨉짠쨋혻혵혲혷혙혢짼짯쨍혩혰혮쩍혳혬쨔쨈혡혛쨌쩌쨊쨁짢짧짜짤짭짖쩐쩔쩜"
    "혫혜혝혟혤혯혼횁횃횅횆횉횊횋횎횏횐횑횒횓횔횕횖횗횘횙횚횛횜"
)

# Latin-1 -> UTF-8 -> CP949 연쇄 변환에서 나타나는 음절
MOJIBAKE_SYLLABLES = frozenset(
    "챘챙챗챠챨챵챶챷챸챹챺챻챼챽챾챿쨀쨁쨂쨃쨄쨅쨆쨇쨈쨉쨊쨋쨌쨍쨎쨏"
)

JAMO_CLUSTER = re.compile(r'[\u3131-\u3163]{2,}')
HAN_RUN = re.compile(r'[\u4E00-\u9FFF]{3,}')
HAN_HANGUL_JOIN = re.compile(r'[\u4E00-\u9FFF][\uAC00-\uD7A3]')
HANGUL_SYLLABLE = re.compile(r'[\uAC00-\uD7A3]')
PERCENT_ESCAPE = re.compile(r'%[0-9A-Fa-f]{2}')

LATIN1_SIGNATURES = (
    re.compile(r'[ÃÂ]{2,}'),
    re.compile(r'Ã[\x80-\xBF]'),
    # 한글 UTF-8 3바이트 시퀀스를 Latin-1로 읽은 흔적
    re.compile(r'[\xEA-\xED][\x80-\xBF]{2}'),
    # EUC-KR 한글 바이트 쌍을 Latin-1로 읽은 흔적
    re.compile(r'(?:[\xB0-\xC8][\xA1-\xFE]){2,}'),
    # EUC-KR 한글 바이트 쌍이 우연히 UTF-8 2바이트 문자로 해석된 흔적
    re.compile(
        r'[\u00A1-\u00BF\u00E1-\u00FF\u0121-\u013F\u0161-\u017F'
        r'\u01A1-\u01BF\u01E1-\u01FF\u0221-\u023F]{2,}'
    ),
)

REPLACEMENT_CHAR = '\uFFFD'


@dataclass(frozen=True)
class CorruptionRules:
    """손상 판정 규칙 (경험적으로 수집된 값이므로 교체 가능)"""
    rare_syllables: FrozenSet[str] = field(default=RARE_SYLLABLES)
    mojibake_syllables: FrozenSet[str] = field(default=MOJIBAKE_SYLLABLES)
    min_rare_hits: int = 2
    # KS X 1001 밖의 확장 완성형 음절 (CP949로만 표현 가능)
    flag_extended_hangul: bool = True
    min_extended_hits: int = 2
    # 한자 바로 뒤에 한글이 붙는 패턴 (0이면 비활성)
    min_han_hangul_joins: int = 2


DEFAULT_RULES = CorruptionRules()


def is_extended_hangul(char: str) -> bool:
    """KS X 1001 완성형 2,350자에 없는 한글 음절 여부"""
    if not HANGUL_SYLLABLE.match(char):
        return False
    encoded = char.encode('cp949')
    return encoded[0] < 0xA1 or encoded[1] < 0xA1


def has_valid_korean(text: str) -> bool:
    """정상 한글 음절 포함 여부"""
    if not text or REPLACEMENT_CHAR in text:
        return False
    return bool(HANGUL_SYLLABLE.search(text))


def is_corrupted(text: str, rules: CorruptionRules = DEFAULT_RULES) -> bool:
    """인코딩 손상 여부 판정 - 검사 중 하나라도 걸리면 손상"""
    if not text or text.isascii():
        return False

    if JAMO_CLUSTER.search(text):
        return True

    if any(pattern.search(text) for pattern in LATIN1_SIGNATURES):
        return True

    if REPLACEMENT_CHAR in text:
        return True

    if HAN_RUN.search(text):
        return True

    rare_hits = sum(1 for ch in text if ch in rules.rare_syllables)
    if rare_hits >= rules.min_rare_hits:
        return True

    mojibake_hits = sum(1 for ch in text if ch in rules.mojibake_syllables)
    if mojibake_hits >= rules.min_rare_hits:
        return True

    if rules.flag_extended_hangul:
        extended_hits = sum(1 for ch in text if is_extended_hangul(ch))
        if extended_hits >= rules.min_extended_hits:
            return True

    if rules.min_han_hangul_joins and len(HAN_HANGUL_JOIN.findall(text)) >= rules.min_han_hangul_joins:
        return True

    return False


# 복구 전략 - 각 전략은 str -> Optional[str], 변환 불가시 None

def latin1_to_utf8(text: str) -> Optional[str]:
    """Latin-1로 디코딩된 바이트를 UTF-8로 재해석"""
    try:
        return text.encode('latin-1').decode('utf-8')
    except UnicodeError:
        return None


def euc_kr_roundtrip(text: str) -> Optional[str]:
    """EUC-KR로 잘못 읽힌 UTF-8 복구"""
    try:
        return text.encode('euc_kr').decode('utf-8')
    except UnicodeError:
        return None


def cp949_roundtrip(text: str) -> Optional[str]:
    """CP949로 잘못 읽힌 UTF-8 복구"""
    try:
        return text.encode('cp949').decode('utf-8')
    except UnicodeError:
        return None


def chained_latin1_roundtrip(text: str) -> Optional[str]:
    """Latin-1 중간 단계를 거친 이중 변환 복구"""
    for codec in KOREAN_CODECS:
        try:
            intermediate = text.encode(codec).decode('utf-8')
            return intermediate.encode('latin-1').decode('utf-8')
        except UnicodeError:
            continue
    return None


def raw_bytes_korean_decode(text: str) -> Optional[str]:
    """코드포인트를 원시 바이트로 보고 한국어 코드페이지로 바로 디코딩"""
    if any(ord(ch) > 0xFF for ch in text):
        return None
    raw = text.encode('latin-1')
    for codec in KOREAN_CODECS:
        try:
            return raw.decode(codec)
        except UnicodeError:
            continue
    return None


def reverse_korean_decode(text: str) -> Optional[str]:
    """UTF-8 바이트 자체를 한국어 코드페이지로 디코딩 (역방향)"""
    raw = text.encode('utf-8')
    for codec in KOREAN_CODECS:
        try:
            return raw.decode(codec)
        except UnicodeError:
            continue
    return None


Strategy = Callable[[str], Optional[str]]

REPAIR_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ('latin1_to_utf8', latin1_to_utf8),
    ('euc_kr_roundtrip', euc_kr_roundtrip),
    ('cp949_roundtrip', cp949_roundtrip),
    ('chained_latin1_roundtrip', chained_latin1_roundtrip),
    ('raw_bytes_korean_decode', raw_bytes_korean_decode),
    ('reverse_korean_decode', reverse_korean_decode),
)


def repair_with_strategy(
    text: str,
    rules: CorruptionRules = DEFAULT_RULES,
    strategies: Sequence[Tuple[str, Strategy]] = REPAIR_STRATEGIES,
) -> Tuple[str, Optional[str]]:
    """손상된 문자열 복구 - (결과, 성공한 전략명) 반환"""
    if not is_corrupted(text, rules):
        return text, None

    for name, strategy in strategies:
        candidate = strategy(text)
        if candidate is None or candidate == text:
            continue
        if has_valid_korean(candidate) and not is_corrupted(candidate, rules):
            logger.debug(f"인코딩 복구 성공 ({name}): {text!r} -> {candidate!r}")
            return candidate, name

    logger.debug(f"인코딩 복구 실패, 원본 유지: {text!r}")
    return text, None


def repair_text(
    text: str,
    rules: CorruptionRules = DEFAULT_RULES,
    strategies: Sequence[Tuple[str, Strategy]] = REPAIR_STRATEGIES,
) -> str:
    """손상된 문자열 복구 - 실패시 원본 그대로 반환"""
    repaired, _ = repair_with_strategy(text, rules, strategies)
    return repaired


def sanitize_filename(filename: str) -> str:
    """파일명 정리"""
    if not filename or not filename.strip():
        return "unnamed_file"

    filename = filename.strip()

    # Windows/Linux 파일 시스템 금지 문자 제거
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', filename)

    # 연속된 공백을 하나로
    filename = re.sub(r'\s+', ' ', filename)

    filename = filename.strip('._- ')
    if not filename:
        return "unnamed_file"

    max_length = 200
    if len(filename) > max_length:
        name_parts = filename.rsplit('.', 1)
        if len(name_parts) == 2 and len(name_parts[1]) <= 10:
            name, ext = name_parts
            filename = name[:max_length - len(ext) - 1] + '.' + ext
        else:
            filename = filename[:max_length]

    # 예약된 파일명 처리 (Windows)
    reserved_names = {'CON', 'PRN', 'AUX', 'NUL'}
    reserved_names.update(f'COM{i}' for i in range(1, 10))
    reserved_names.update(f'LPT{i}' for i in range(1, 10))
    if filename.rsplit('.', 1)[0].upper() in reserved_names:
        filename = '_' + filename

    return filename


def repair_filename(filename: str, rules: CorruptionRules = DEFAULT_RULES) -> str:
    """첨부파일 표시명 복구 (URL 디코딩 -> 인코딩 복구 -> 정리)"""
    if not filename:
        return "unnamed_file"

    if PERCENT_ESCAPE.search(filename):
        for codec in ('utf-8',) + KOREAN_CODECS:
            try:
                filename = unquote(filename, encoding=codec, errors='strict')
                break
            except UnicodeError:
                continue

    return sanitize_filename(repair_text(filename, rules))
