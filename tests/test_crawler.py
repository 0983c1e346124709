# -*- coding: utf-8 -*-
import pytest

from bizsup_ingest.crawler import (
    STOP_EMPTY_PAGES,
    STOP_MAX_PAGES,
    STOP_MAX_PROJECTS,
    STOP_PAGE_FETCH_FAILED,
    CrawlController,
)
from bizsup_ingest.errors import IngestError, StoreError
from bizsup_ingest.models import JOB_COMPLETED, JOB_FAILED, JOB_PENDING, ListingItem, Source
from bizsup_ingest.persistence import AnnouncementPersister

from .conftest import FIXED_NOW, FakeExtractor, FakeTransport

LIST_URL = "https://www.example.go.kr/list.do"
PAGE_2 = LIST_URL + "?page=2"
PAGE_3 = LIST_URL + "?page=3"

EMPTY_BOARD = "<html><body><table><tbody></tbody></table></body></html>"


def board(*ids, posted="2024-03-16"):
    rows = ''.join(
        f'<tr><td>{n}</td><td><a href="/view.do?pblancId=PBLN_{n}">창업지원 공고 {n}</a></td>'
        f'<td>중소벤처기업부</td><td>{posted}</td></tr>'
        for n in ids
    )
    return f'<html><body><table class="board-list"><tbody>{rows}</tbody></table></body></html>'


class FakePersister:
    """save_all 호출을 기록하고 준비된 결과(또는 예외)를 순서대로 돌려줌"""

    def __init__(self, *results):
        self.results = list(results)
        self.saved = []

    async def save_all(self, announcements):
        announcements = list(announcements)
        self.saved.append(announcements)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _controller(store, pages, config, sleep, persister=None):
    transport = FakeTransport(pages=pages)
    controller = CrawlController(store, transport, persister or FakePersister(),
                                 config=config, sleep=sleep, clock=lambda: FIXED_NOW)
    return controller, transport


@pytest.fixture
def source(store):
    return store.add_source(Source(name="기업마당", url=LIST_URL))


@pytest.mark.asyncio
async def test_collect_stops_after_two_pages_without_new_items(store, source, test_settings, sleep_recorder):
    pages = {LIST_URL: board(1, 2), PAGE_2: board(1, 2), PAGE_3: EMPTY_BOARD}
    controller, transport = _controller(store, pages, test_settings, sleep_recorder)

    result = await controller.collect(source)

    assert [item.external_id for item in result.items] == ["www.example.go.kr:PBLN_1", "www.example.go.kr:PBLN_2"]
    assert transport.page_calls == [LIST_URL, PAGE_2, PAGE_3]
    assert result.pages_fetched == 3
    assert result.stop_reason == STOP_EMPTY_PAGES
    assert sleep_recorder.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_collect_respects_max_pages(store, source, test_settings, sleep_recorder):
    config = test_settings.model_copy(update={'MAX_PAGES': 2})
    pages = {LIST_URL: board(1), PAGE_2: board(2), PAGE_3: board(3)}
    controller, transport = _controller(store, pages, config, sleep_recorder)

    result = await controller.collect(source)

    assert len(result.items) == 2
    assert transport.page_calls == [LIST_URL, PAGE_2]
    assert result.stop_reason == STOP_MAX_PAGES
    assert sleep_recorder.delays == [1.0]


@pytest.mark.asyncio
async def test_collect_keeps_items_when_page_fetch_fails(store, source, test_settings, sleep_recorder):
    controller, _ = _controller(store, {LIST_URL: board(1, 2)}, test_settings, sleep_recorder)

    result = await controller.collect(source)

    assert len(result.items) == 2
    assert result.pages_fetched == 1
    assert result.stop_reason == STOP_PAGE_FETCH_FAILED


@pytest.mark.asyncio
async def test_collect_truncates_at_max_projects(store, source, test_settings, sleep_recorder):
    config = test_settings.model_copy(update={'MAX_PROJECTS': 3})
    pages = {LIST_URL: board(1, 2), PAGE_2: board(3, 4), PAGE_3: board(5)}
    controller, transport = _controller(store, pages, config, sleep_recorder)

    result = await controller.collect(source)

    assert [item.name for item in result.items] == ["창업지원 공고 1", "창업지원 공고 2", "창업지원 공고 3"]
    assert result.stop_reason == STOP_MAX_PROJECTS
    assert PAGE_3 not in transport.page_calls


@pytest.mark.asyncio
async def test_collect_filters_old_items(store, source, test_settings, sleep_recorder):
    page = """
    <table class="board-list"><tbody>
      <tr><td>1</td><td><a href="/view.do?pblancId=PBLN_1">창업지원 공고 1</a></td><td>2024-03-16</td></tr>
      <tr><td>2</td><td><a href="/view.do?pblancId=PBLN_2">창업지원 공고 2</a></td><td>2024-03-10</td></tr>
    </tbody></table>
    """
    controller, _ = _controller(store, {LIST_URL: page}, test_settings, sleep_recorder)

    result = await controller.collect(source)

    assert [item.name for item in result.items] == ["창업지원 공고 1"]


@pytest.mark.asyncio
async def test_harvest_visits_detail_pages(store, source, test_settings, sleep_recorder):
    detail_ok = "https://www.example.go.kr/view.do?pblancId=A"
    detail_missing = "https://www.example.go.kr/view.do?pblancId=B"
    pages = {
        detail_ok: """
        <html><body><div class="view_cont"><p>사업개요 안내</p>
          <a href="/files/notice.hwp">모집공고.hwp</a></div></body></html>
        """,
    }
    controller, transport = _controller(store, pages, test_settings, sleep_recorder)
    items = [
        ListingItem(name="부산 창업지원 공고", detail_url=detail_ok, organization="중소벤처기업부",
                    category="창업지원", external_id="www.example.go.kr:A"),
        ListingItem(name="수출 지원 안내", detail_url=detail_missing, organization="경기도청"),
        ListingItem(name="상세 없는 공고", organization="기관"),
    ]

    harvested = await controller.harvest(source, items, cookie="JSESSIONID=1", listing_url=LIST_URL)

    assert transport.page_calls == [detail_ok, detail_missing]
    assert sleep_recorder.delays == [0.5, 0.5]
    assert len(harvested) == 3

    first = harvested[0]
    assert [a.url for a in first.attachments] == ["https://www.example.go.kr/files/notice.hwp"]
    assert "사업개요 안내" in first.description
    assert first.region == "부산"
    assert first.category == "창업"
    assert first.summary == "부산 창업지원 공고"
    assert first.cookie == "JSESSIONID=1"
    assert first.source_url == LIST_URL

    assert harvested[1].attachments == []
    assert harvested[2].detail_url is None


@pytest.mark.asyncio
async def test_run_job_records_counts(store, source, test_settings, sleep_recorder):
    persister = FakePersister((1, 1))
    controller, _ = _controller(store, {LIST_URL: board(1, 2)}, test_settings, sleep_recorder, persister)
    job = store.create_job(source.id)

    counts = await controller.run_job(job.id)

    assert counts == {'projects_found': 2, 'projects_new': 1, 'projects_updated': 1}
    assert len(persister.saved[0]) == 2

    finished = store.get_job(job.id)
    assert finished.status == JOB_COMPLETED
    assert (finished.projects_found, finished.projects_new, finished.projects_updated) == (2, 1, 1)
    assert finished.started_at == FIXED_NOW
    assert store.get_source(source.id).last_crawled == FIXED_NOW


@pytest.mark.asyncio
async def test_run_job_failure_marks_job_failed(store, source, test_settings, sleep_recorder):
    persister = FakePersister(RuntimeError("저장소 연결 끊김"))
    controller, _ = _controller(store, {LIST_URL: board(1)}, test_settings, sleep_recorder, persister)
    job = store.create_job(source.id)

    with pytest.raises(RuntimeError):
        await controller.run_job(job.id)

    failed = store.get_job(job.id)
    assert failed.status == JOB_FAILED
    assert failed.error_message == "저장소 연결 끊김"
    assert store.get_source(source.id).last_crawled is None


@pytest.mark.asyncio
async def test_run_job_unknown_job(store, test_settings, sleep_recorder):
    controller, _ = _controller(store, {}, test_settings, sleep_recorder)
    with pytest.raises(IngestError):
        await controller.run_job(404)


@pytest.mark.asyncio
async def test_process_pending_jobs_continues_after_failure(store, source, test_settings, sleep_recorder):
    persister = FakePersister(RuntimeError("실패"), (1, 0))
    controller, _ = _controller(store, {LIST_URL: board(1)}, test_settings, sleep_recorder, persister)
    first = store.create_job(source.id, now=FIXED_NOW)
    second = store.create_job(source.id, now=FIXED_NOW)

    results = await controller.process_pending_jobs()

    assert [r['job_id'] for r in results] == [first.id, second.id]
    assert [r['status'] for r in results] == [JOB_FAILED, JOB_COMPLETED]
    assert results[0]['error'] == "실패"
    assert results[1]['stats']['projects_new'] == 1
    assert store.pending_jobs() == []


def test_enqueue(store, source, test_settings, sleep_recorder):
    controller, _ = _controller(store, {}, test_settings, sleep_recorder)

    job = controller.enqueue(source.id)
    assert job.status == JOB_PENDING
    assert job.created_at == FIXED_NOW

    with pytest.raises(IngestError):
        controller.enqueue(999)


@pytest.mark.asyncio
async def test_malformed_detail_link_skips_only_that_row(store, source, test_settings, sleep_recorder):
    listing = board(1).replace(
        '<tbody>',
        '<tbody><tr><td>9</td><td><a href="http://[broken/view">깨진 링크 공고</a></td>'
        '<td>중소벤처기업부</td><td>2024-03-16</td></tr>',
    )
    persister = FakePersister((1, 0))
    controller, _ = _controller(store, {LIST_URL: listing}, test_settings, sleep_recorder, persister)
    job = store.create_job(source.id)

    counts = await controller.run_job(job.id)

    assert counts['projects_found'] == 1
    assert [a.name for a in persister.saved[0]] == ["창업지원 공고 1"]
    assert store.get_job(job.id).status == JOB_COMPLETED


@pytest.mark.asyncio
async def test_harvest_keeps_item_when_detail_raises(store, source, test_settings, sleep_recorder):
    broken = "https://www.example.go.kr/view.do?pblancId=A"
    failing = "https://www.example.go.kr/view.do?pblancId=B"
    pages = {broken: ValueError("Invalid IPv6 URL"), failing: IngestError("상세 파싱 실패")}
    controller, _ = _controller(store, pages, test_settings, sleep_recorder)
    items = [
        ListingItem(name="부산 창업지원 공고", detail_url=broken, organization="중소벤처기업부"),
        ListingItem(name="수출 지원 안내", detail_url=failing, organization="경기도청"),
    ]

    harvested = await controller.harvest(source, items)

    assert [h.name for h in harvested] == ["부산 창업지원 공고", "수출 지원 안내"]
    assert all(h.attachments == [] for h in harvested)


@pytest.mark.asyncio
async def test_run_job_fails_when_store_write_fails(store, source, blob_storage, test_settings,
                                                    sleep_recorder, monkeypatch):
    transport = FakeTransport(pages={LIST_URL: board(1, 2)})
    persister = AnnouncementPersister(store, transport, blob_storage, FakeExtractor(),
                                      config=test_settings, sleep=sleep_recorder)
    controller = CrawlController(store, transport, persister,
                                 config=test_settings, sleep=sleep_recorder, clock=lambda: FIXED_NOW)

    def locked(announcement, now=None):
        raise StoreError("database is locked")

    monkeypatch.setattr(store, 'upsert_announcement', locked)
    job = store.create_job(source.id)

    with pytest.raises(StoreError):
        await controller.run_job(job.id)

    failed = store.get_job(job.id)
    assert failed.status == JOB_FAILED
    assert failed.error_message == "database is locked"
    assert store.count_announcements() == 0
