# -*- coding: utf-8 -*-
"""
문서 텍스트 추출 어댑터

HWP/HWPX/PDF 바이트를 외부 text_parser 서비스로 보내 텍스트를 받는다.
서비스가 실패하면 PDF에 한해 pdfminer로 직접 추출한다.
"""

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, Optional

import aiohttp
from pdfminer.high_level import extract_text as pdf_extract_text

from .config import settings
from .file_classifier import FILE_TYPE_PDF, MIME_TYPES

logger = logging.getLogger(__name__)

EXTRACT_TEXT_ENDPOINT = '/api/v1/extract/hwp-to-text'
HEALTH_ENDPOINT = '/health'
HEALTH_TIMEOUT = 5


@dataclass
class ParseResult:
    success: bool
    text: Optional[str] = None
    error: Optional[str] = None


def text_from_response(payload: Dict[str, Any]) -> str:
    """서비스 응답에서 텍스트 꺼내기 (text -> content -> content.text -> paragraphs)"""
    if payload.get('text'):
        return payload['text']

    content = payload.get('content')
    if isinstance(content, str):
        return content

    if isinstance(content, dict):
        if content.get('text'):
            return content['text']
        paragraphs = content.get('paragraphs') or []
        texts = [p.get('text') for p in paragraphs if isinstance(p, dict)]
        return '\n\n'.join(t for t in texts if t and t.strip())

    return ''


def interpret_response(payload: Any) -> ParseResult:
    """서비스 응답 JSON을 ParseResult로 변환"""
    if not isinstance(payload, dict):
        return ParseResult(False, None, f"예상하지 못한 응답 형식: {type(payload).__name__}")

    if (payload.get('success') is False or payload.get('status') == 'error'
            or payload.get('error') or payload.get('detail')):
        error = payload.get('error') or payload.get('detail') or payload.get('message') or 'Unknown parser error'
        return ParseResult(False, None, str(error))

    return ParseResult(True, text_from_response(payload), None)


def _extract_pdf_text(data: bytes) -> str:
    return pdf_extract_text(BytesIO(data))


class TextExtractor:
    """text_parser 서비스 클라이언트 (PDF 로컬 대체 추출 포함)"""

    def __init__(self, base_url: str = settings.TEXT_PARSER_URL,
                 timeout: float = settings.TEXT_PARSER_TIMEOUT,
                 pdf_fallback: bool = True):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.pdf_fallback = pdf_fallback

    async def _post_document(self, data: bytes, file_type: str) -> ParseResult:
        form = aiohttp.FormData()
        form.add_field(
            'file', data,
            filename=f"document.{file_type}",
            content_type=MIME_TYPES.get(file_type, 'application/octet-stream'),
        )
        form.add_field('mode', 'text')

        url = f"{self.base_url}{EXTRACT_TEXT_ENDPOINT}"
        logger.info(f"{file_type.upper()} 텍스트 추출 요청: {url}")

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, data=form) as response:
                if response.status >= 400:
                    return ParseResult(False, None, f"Parser failed: {response.status} {response.reason}")
                payload = await response.json(content_type=None)

        return interpret_response(payload)

    async def _parse_pdf_locally(self, data: bytes) -> ParseResult:
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, _extract_pdf_text, data)
        except Exception as e:
            logger.warning(f"pdfminer 추출 실패: {e}")
            return ParseResult(False, None, f"pdfminer 추출 실패: {e}")
        return ParseResult(True, text, None)

    async def parse(self, data: bytes, file_type: str) -> ParseResult:
        """문서 텍스트 추출 - 예외를 올리지 않고 ParseResult로 반환"""
        try:
            result = await self._post_document(data, file_type)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            result = ParseResult(False, None, f"Parser failed: {e!r}")

        if result.success:
            logger.info(f"텍스트 추출 완료: {len(result.text or ''):,}자")
            return result

        logger.warning(f"텍스트 추출 서비스 실패 ({file_type}): {result.error}")

        if file_type == FILE_TYPE_PDF and self.pdf_fallback:
            logger.info("PDF 로컬 추출로 대체")
            fallback = await self._parse_pdf_locally(data)
            if fallback.success:
                return fallback

        return result

    async def health(self) -> bool:
        """서비스 상태 확인"""
        try:
            timeout = aiohttp.ClientTimeout(total=HEALTH_TIMEOUT)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.base_url}{HEALTH_ENDPOINT}") as response:
                    return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"텍스트 추출 서비스 응답 없음: {e!r}")
            return False
