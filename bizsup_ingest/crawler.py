# -*- coding: utf-8 -*-
"""
수집 루프 제어기

목록 페이지 순회(수집) -> 상세 페이지 방문(첨부파일 추출) -> 저장 순서로
수집 작업 하나를 처리하고 작업 상태(pending -> running -> completed/failed)를
기록한다.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .config import Settings, settings as default_settings
from .detail_extractor import ExtractorRegistry, default_registry, extract_content
from .errors import FetchError, IngestError, ListingParseError
from .listing import page_url, parse_api_listing, parse_listing, within_window
from .models import JOB_COMPLETED, JOB_FAILED, CrawlJob, HarvestedAnnouncement, ListingItem, Source
from .transport import FetchContext
from .validators import validate_project

logger = logging.getLogger(__name__)

STOP_PAGE_FETCH_FAILED = 'page_fetch_failed'
STOP_MAX_PROJECTS = 'max_projects'
STOP_EMPTY_PAGES = 'empty_pages'
STOP_MAX_PAGES = 'max_pages'

# 연속으로 새 항목이 없는 페이지가 이만큼 나오면 중단
MAX_EMPTY_PAGES = 2


@dataclass
class CollectResult:
    items: List[ListingItem] = field(default_factory=list)
    pages_fetched: int = 0
    stop_reason: str = STOP_MAX_PAGES
    cookie: Optional[str] = None
    last_page_url: Optional[str] = None


def _item_key(item: ListingItem):
    return item.external_id or item.detail_url or (item.name, item.organization)


class CrawlController:
    """수집 작업 실행기"""

    def __init__(self, store, transport, persister,
                 registry: ExtractorRegistry = default_registry,
                 config: Settings = default_settings,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.transport = transport
        self.persister = persister
        self.registry = registry
        self.config = config
        self._sleep = sleep
        self._clock = clock

    async def collect(self, source: Source) -> CollectResult:
        """목록 페이지를 1페이지부터 순서대로 수집"""
        result = CollectResult()
        now = self._clock()
        seen = set()
        empty_pages = 0
        referer = None

        for page in range(1, self.config.MAX_PAGES + 1):
            url = page_url(source.url, page)
            logger.info(f"목록 페이지 {page} 수집: {url}")

            try:
                fetched = await self.transport.fetch_page(url, FetchContext(referer=referer, cookie=result.cookie))
            except FetchError as e:
                logger.error(f"목록 페이지 {page} 가져오기 실패 - 수집 중단: {e}")
                result.stop_reason = STOP_PAGE_FETCH_FAILED
                break

            result.pages_fetched += 1
            result.cookie = fetched.cookie or result.cookie
            result.last_page_url = url
            referer = url

            try:
                if source.type == 'api':
                    parsed = parse_api_listing(fetched.text, url)
                else:
                    parsed = parse_listing(fetched.text, url)
            except ListingParseError as e:
                logger.warning(f"목록 페이지 {page} 파싱 실패: {e}")
                parsed = []

            fresh = []
            for item in parsed:
                key = _item_key(item)
                if key in seen or not within_window(item.posted_at, now, self.config.HOURS_FILTER):
                    continue
                seen.add(key)
                fresh.append(item)

            logger.info(f"페이지 {page}: {len(parsed)}개 중 {len(fresh)}개 수집 대상")
            result.items.extend(fresh)

            if len(result.items) >= self.config.MAX_PROJECTS:
                result.items = result.items[:self.config.MAX_PROJECTS]
                result.stop_reason = STOP_MAX_PROJECTS
                logger.info(f"최대 수집 개수 도달: {self.config.MAX_PROJECTS}개")
                break

            empty_pages = 0 if fresh else empty_pages + 1
            if empty_pages >= MAX_EMPTY_PAGES:
                result.stop_reason = STOP_EMPTY_PAGES
                logger.info(f"연속 {MAX_EMPTY_PAGES}페이지에 새 공고 없음 - 수집 중단")
                break

            if page >= self.config.MAX_PAGES:
                result.stop_reason = STOP_MAX_PAGES
                break

            await self._sleep(self.config.PAGE_DELAY_MS / 1000)

        return result

    async def harvest(self, source: Source, items: Iterable[ListingItem],
                      cookie: Optional[str] = None, listing_url: Optional[str] = None) -> List[HarvestedAnnouncement]:
        """상세 페이지 방문 - 첨부파일 링크와 본문 추출"""
        items = list(items)
        harvested = []

        for index, item in enumerate(items, 1):
            item = validate_project(item)
            attachments = []
            description = item.description

            if item.detail_url:
                logger.info(f"[{index}/{len(items)}] {item.name}")
                try:
                    page = await self.transport.fetch_page(
                        item.detail_url, FetchContext(referer=listing_url or source.url, cookie=cookie)
                    )
                    attachments = self.registry.extract(page.text, page.url, source.strategy)
                    description = description or extract_content(page.text)
                    cookie = page.cookie or cookie
                    if attachments:
                        logger.info(f"  첨부파일 {len(attachments)}개 발견")
                except (IngestError, ValueError) as e:
                    logger.error(f"  상세 페이지 처리 실패 - 첨부파일 없이 진행: {e}")
                    attachments = []

                if index < len(items):
                    await self._sleep(self.config.DETAIL_DELAY_MS / 1000)
            else:
                logger.info(f"[{index}/{len(items)}] {item.name} - 상세 URL 없음")

            harvested.append(HarvestedAnnouncement(
                name=item.name,
                organization=item.organization,
                source_url=source.url,
                external_id=item.external_id,
                category=item.category,
                region=item.region,
                summary=item.summary or item.name,
                description=description,
                detail_url=item.detail_url,
                posted_at=item.posted_at,
                deadline=item.deadline,
                attachments=attachments,
                cookie=cookie,
            ))

        with_files = sum(1 for h in harvested if h.attachments)
        logger.info(f"첨부파일 있는 공고: {with_files}/{len(harvested)}")
        return harvested

    async def run_job(self, job_id: int) -> Dict[str, int]:
        """수집 작업 1건 실행"""
        job = self.store.get_job(job_id)
        if job is None:
            raise IngestError("크롤 작업을 찾을 수 없습니다")

        source = self.store.get_source(job.source_id)
        start_time = self._clock()
        self.store.mark_job_running(job_id, now=start_time)

        counts = {'projects_found': 0, 'projects_new': 0, 'projects_updated': 0}
        collected = CollectResult()
        status = JOB_FAILED
        try:
            if source is None:
                raise IngestError(f"수집 대상을 찾을 수 없습니다: {job.source_id}")

            logger.info(f"수집 시작: [{job_id}] {source.name} ({source.url})")
            collected = await self.collect(source)
            harvested = await self.harvest(source, collected.items, collected.cookie, collected.last_page_url)
            new_count, updated_count = await self.persister.save_all(harvested)

            counts = {
                'projects_found': len(harvested),
                'projects_new': new_count,
                'projects_updated': updated_count,
            }
            self.store.mark_job_finished(
                job_id, JOB_COMPLETED,
                found=counts['projects_found'], new=new_count, updated=updated_count,
                now=self._clock(),
            )
            status = JOB_COMPLETED

        except Exception as e:
            logger.error(f"수집 작업 실패 [{job_id}]: {e}")
            self.store.mark_job_finished(job_id, JOB_FAILED, error=str(e), now=self._clock())
            raise

        finally:
            self._print_job_stats(job_id, status, start_time, collected, counts)

        self.store.touch_source(source.id, self._clock())
        return counts

    async def _run_with_result(self, job_id: int) -> Dict[str, Any]:
        """작업 실행 결과를 요약 딕셔너리로 반환 (실패해도 예외를 올리지 않음)"""
        start_time = datetime.now()
        result: Dict[str, Any] = {
            'job_id': job_id,
            'status': 'running',
            'start_time': start_time,
            'end_time': None,
            'duration': 0,
            'error': None,
            'stats': {},
        }

        try:
            result['stats'] = await self.run_job(job_id)
            result['status'] = JOB_COMPLETED
        except Exception as e:
            result['status'] = JOB_FAILED
            result['error'] = str(e)

        result['end_time'] = datetime.now()
        result['duration'] = (result['end_time'] - start_time).total_seconds()
        return result

    async def run_jobs(self, job_ids: Iterable[int], concurrent: bool = False) -> List[Dict[str, Any]]:
        """여러 작업 실행 (concurrent=True면 동시에)"""
        job_ids = list(job_ids)
        if concurrent:
            return list(await asyncio.gather(*(self._run_with_result(job_id) for job_id in job_ids)))

        results = []
        for job_id in job_ids:
            results.append(await self._run_with_result(job_id))
        return results

    async def process_pending_jobs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """대기 중인 작업을 오래된 순으로 처리"""
        jobs = self.store.pending_jobs(limit or self.config.PENDING_JOB_BATCH)
        logger.info(f"대기 중인 수집 작업 {len(jobs)}개")
        return await self.run_jobs(job.id for job in jobs)

    def enqueue(self, source_id: int) -> CrawlJob:
        """수집 작업 등록 (pending)"""
        if self.store.get_source(source_id) is None:
            raise IngestError(f"수집 대상을 찾을 수 없습니다: {source_id}")
        job = self.store.create_job(source_id, now=self._clock())
        logger.info(f"수집 작업 등록: [{job.id}] source={source_id}")
        return job

    def _print_job_stats(self, job_id: int, status: str, start_time: datetime,
                         collected: CollectResult, counts: Dict[str, int]):
        duration = (self._clock() - start_time).total_seconds()
        stats = getattr(self.transport, 'stats', {})

        logger.info("=" * 60)
        logger.info(f"📊 수집 작업 [{job_id}] 통계 ({status})")
        logger.info("=" * 60)
        logger.info(f"⏱️  실행 시간: {duration:.1f}초 (중단 사유: {collected.stop_reason})")
        logger.info(f"📄 목록 페이지: {collected.pages_fetched}개, 수집 항목: {len(collected.items)}개")
        logger.info(f"🆕 신규 {counts['projects_new']}개 / 🔄 갱신 {counts['projects_updated']}개")
        logger.info(f"🌐 HTTP 요청: {stats.get('requests_made', 0)}개")
        logger.info(f"📁 다운로드 파일: {stats.get('files_downloaded', 0)}개")
        if stats.get('errors_encountered', 0) > 0:
            logger.warning(f"⚠️  발생한 오류: {stats['errors_encountered']}개")
        logger.info("=" * 60)
