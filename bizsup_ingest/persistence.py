# -*- coding: utf-8 -*-
"""
공고/첨부파일 저장 계층

공고는 자연키(외부 ID 또는 공고명+기관)로 생성/갱신하고, 첨부파일은 모든
다운로드가 끝난 뒤 한 번에 교체한다. 첨부파일 하나의 실패는 해당 레코드의
parse_error로만 남고 다른 첨부파일 처리에 영향을 주지 않는다.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple

from .config import Settings, settings as default_settings
from .detail_extractor import dedupe_candidates
from .encoding_repair import repair_filename, repair_text
from .errors import StoreError
from .file_classifier import (
    FILE_TYPE_UNKNOWN,
    detect_format,
    file_type_from_name,
    get_mime_type,
    should_parse_file,
    sort_by_priority,
)
from .models import Attachment, AttachmentCandidate, HarvestedAnnouncement
from .storage import generate_storage_path
from .transport import FetchContext, filename_from_url

logger = logging.getLogger(__name__)


class AnnouncementPersister:
    """공고 저장 및 첨부파일 다운로드/텍스트 추출"""

    def __init__(self, store, transport, storage, extractor,
                 config: Settings = default_settings,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.store = store
        self.transport = transport
        self.storage = storage
        self.extractor = extractor
        self.config = config
        self._sleep = sleep

    def _is_url_derived(self, candidate: AttachmentCandidate, file_name: str) -> bool:
        if '.' not in file_name:
            return True
        url_name = filename_from_url(candidate.url)
        return bool(url_name) and file_name == repair_filename(url_name)

    async def process_attachment(self, announcement_id: int, candidate: AttachmentCandidate,
                                 referer: Optional[str] = None, cookie: Optional[str] = None) -> Attachment:
        """첨부파일 한 건 처리 (다운로드 -> 형식 판별 -> 저장 -> 텍스트 추출)"""
        file_name = repair_filename(candidate.file_name)
        record = Attachment(
            source_url=candidate.url,
            file_name=file_name,
            file_type=file_type_from_name(file_name),
            should_parse=should_parse_file(file_name),
            announcement_id=announcement_id,
        )

        if not record.should_parse:
            logger.debug(f"파싱 대상 아님, 다운로드 건너뜀: {file_name}")
            return record

        # 1. 다운로드
        try:
            downloaded = await self.transport.fetch_file(candidate.url, FetchContext(referer=referer, cookie=cookie))
        except Exception as e:
            logger.warning(f"첨부파일 다운로드 실패: {file_name} - {e}")
            record.parse_error = f"Download failed: {e}"
            return record

        if downloaded.file_name and self._is_url_derived(candidate, file_name):
            server_name = repair_filename(downloaded.file_name)
            if server_name != 'unnamed_file':
                record.file_name = server_name

        record.file_size = downloaded.size

        # 2. 실제 형식 판별 (확장자 무시)
        file_type = detect_format(downloaded.content)
        record.file_type = file_type
        # 알 수 없는 형식은 저장/파싱 대상에서 제외 (오류 아님)
        if file_type == FILE_TYPE_UNKNOWN:
            logger.info(f"지원하지 않는 파일 형식, 저장/파싱 제외: {record.file_name}")
            record.should_parse = False
            return record

        # 3. 원본 저장
        storage_path = generate_storage_path(announcement_id, file_type)
        try:
            await self.storage.put(downloaded.content, storage_path, get_mime_type(file_type))
        except Exception as e:
            logger.error(f"첨부파일 저장 실패: {record.file_name} - {e}")
            record.parse_error = f"Upload failed: {e}"
            return record
        record.storage_path = storage_path

        # 4. 텍스트 추출
        try:
            result = await self.extractor.parse(downloaded.content, file_type)
        except Exception as e:
            logger.error(f"텍스트 추출 실패: {record.file_name} - {e}")
            record.parse_error = f"Parse failed: {e}"
            return record

        text = (result.text or '').strip()
        if result.success and len(text) > self.config.MIN_TEXT_LENGTH:
            record.parsed_text = repair_text(text)[:self.config.MAX_TEXT_LENGTH]
            record.is_parsed = True
            logger.info(f"텍스트 추출 성공: {record.file_name} ({len(record.parsed_text):,}자)")
        else:
            record.parse_error = (result.error if not result.success and result.error else 'No text extracted')
            logger.warning(f"텍스트 없음: {record.file_name} - {record.parse_error}")

        return record

    async def save(self, announcement: HarvestedAnnouncement) -> bool:
        """공고 저장 - 신규 생성이면 True"""
        announcement_id, created = self.store.upsert_announcement(announcement)

        candidates = [
            dataclasses.replace(candidate, file_name=repair_filename(candidate.file_name))
            for candidate in dedupe_candidates(announcement.attachments)
        ]
        ordered = sort_by_priority(candidates, key=lambda c: c.file_name)

        attachments: List[Attachment] = []
        for index, candidate in enumerate(ordered):
            attachment = await self.process_attachment(
                announcement_id, candidate,
                referer=announcement.detail_url or announcement.source_url,
                cookie=announcement.cookie,
            )
            attachments.append(attachment)

            # 다운로드를 시도한 첨부파일 뒤에만 대기
            if should_parse_file(candidate.file_name) and index < len(ordered) - 1:
                await self._sleep(self.config.FILE_DELAY_MS / 1000)

        self.store.replace_attachments(announcement_id, attachments)

        parsed = sum(1 for a in attachments if a.is_parsed)
        action = "신규" if created else "갱신"
        logger.info(f"공고 {action}: {announcement.name} (첨부 {len(attachments)}개, 텍스트 {parsed}개)")
        return created

    async def save_all(self, announcements: Iterable[HarvestedAnnouncement]) -> Tuple[int, int]:
        """공고 목록 저장 - (신규 수, 갱신 수)"""
        new_count = 0
        updated_count = 0

        for announcement in announcements:
            try:
                if await self.save(announcement):
                    new_count += 1
                else:
                    updated_count += 1
            except StoreError:
                raise
            except Exception as e:
                logger.error(f"공고 저장 실패 '{announcement.name}': {e}")
                continue

        return new_count, updated_count
