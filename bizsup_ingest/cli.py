# -*- coding: utf-8 -*-
"""
정부지원사업 공고 수집기 CLI
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import Settings, settings as default_settings
from .crawler import CrawlController
from .maintenance import repair_attachment_filenames
from .models import JOB_COMPLETED, JOB_FAILED, Source
from .persistence import AnnouncementPersister
from .storage import LocalBlobStorage
from .store import SQLiteStore
from .text_extraction import TextExtractor
from .transport import TransportClient

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def build_settings(args: argparse.Namespace) -> Settings:
    """명령행 옵션으로 설정 덮어쓰기"""
    overrides: Dict[str, Any] = {}
    if args.db:
        overrides['DATABASE_PATH'] = args.db
    if args.storage_dir:
        overrides['STORAGE_DIR'] = args.storage_dir
    if args.pages is not None:
        overrides['MAX_PAGES'] = args.pages
    if args.max_projects is not None:
        overrides['MAX_PROJECTS'] = args.max_projects
    if args.hours is not None:
        overrides['HOURS_FILTER'] = args.hours
    if args.verbose:
        overrides['LOG_LEVEL'] = 'DEBUG'
    return default_settings.model_copy(update=overrides)


def print_summary(results: List[Dict[str, Any]], start_time: datetime):
    """실행 결과 요약 출력"""
    if not results:
        print("실행된 수집 작업이 없습니다.")
        return

    total_time = (datetime.now() - start_time).total_seconds()
    completed = [r for r in results if r['status'] == JOB_COMPLETED]
    failed = [r for r in results if r['status'] == JOB_FAILED]

    print("\n" + "=" * 80)
    print("수집 작업 실행 결과 요약")
    print("=" * 80)
    print(f"전체 실행 시간: {total_time:.1f}초")
    print(f"총 작업 수: {len(results)}")
    print(f"성공: {len(completed)}개")
    print(f"실패: {len(failed)}개")

    if completed:
        print(f"\n✅ 성공한 작업들:")
        for result in sorted(completed, key=lambda x: x['job_id']):
            stats = result['stats']
            print(f"  - 작업 {result['job_id']}: {result['duration']:.1f}초, "
                  f"공고 {stats.get('projects_found', 0)}개 "
                  f"(신규 {stats.get('projects_new', 0)}, 갱신 {stats.get('projects_updated', 0)})")

    if failed:
        print(f"\n❌ 실패한 작업들:")
        for result in sorted(failed, key=lambda x: x['job_id']):
            print(f"  - 작업 {result['job_id']}: {result['error']}")

    print("=" * 80)


async def _run_jobs(store: SQLiteStore, config: Settings, source_ids: List[int] = None,
                    limit: Optional[int] = None, concurrent: bool = False) -> List[Dict[str, Any]]:
    async with TransportClient(config) as transport:
        persister = AnnouncementPersister(
            store, transport,
            LocalBlobStorage(config.STORAGE_DIR),
            TextExtractor(config.TEXT_PARSER_URL, config.TEXT_PARSER_TIMEOUT),
            config,
        )
        controller = CrawlController(store, transport, persister, config=config)

        if source_ids is None:
            return await controller.process_pending_jobs(limit)

        job_ids = [controller.enqueue(source_id).id for source_id in source_ids]
        return await controller.run_jobs(job_ids, concurrent=concurrent)


def cmd_add_source(args, config: Settings, store: SQLiteStore) -> int:
    source = store.add_source(Source(name=args.name, url=args.url, type=args.type, strategy=args.strategy))
    print(f"수집 대상 등록 완료: [{source.id}] {source.name} ({source.url})")
    return 0


def cmd_sources(args, config: Settings, store: SQLiteStore) -> int:
    sources = store.list_sources()
    print(f"등록된 수집 대상: {len(sources)}개")
    for source in sources:
        last = source.last_crawled.strftime('%Y-%m-%d %H:%M') if source.last_crawled else '-'
        strategy = source.strategy or 'auto'
        print(f"{source.id:4d}. {source.name:20s} {source.type:4s} {strategy:8s} {last:16s} {source.url}")
    return 0


def cmd_crawl(args, config: Settings, store: SQLiteStore) -> int:
    start_time = datetime.now()
    results = asyncio.run(_run_jobs(store, config, source_ids=args.source_ids, concurrent=args.concurrent))
    print_summary(results, start_time)
    return 1 if any(r['status'] == JOB_FAILED for r in results) else 0


def cmd_run_pending(args, config: Settings, store: SQLiteStore) -> int:
    start_time = datetime.now()
    results = asyncio.run(_run_jobs(store, config, limit=args.limit))
    print_summary(results, start_time)
    return 1 if any(r['status'] == JOB_FAILED for r in results) else 0


def cmd_repair_filenames(args, config: Settings, store: SQLiteStore) -> int:
    report = repair_attachment_filenames(store, dry_run=not args.apply, limit=args.limit)

    print("\n" + "=" * 80)
    print("첨부파일명 복구 결과" + (" (DRY RUN - 변경 없음)" if report.dry_run else ""))
    print("=" * 80)
    print(f"검사: {report.scanned}개, 손상: {report.corrupted}개, 복구: {report.repaired}개, 실패: {report.failed}개")
    for attachment_id, before, after, strategy in report.changes:
        print(f"  [{attachment_id}] {before} -> {after} ({strategy})")
    if report.dry_run and report.changes:
        print("\n실제로 적용하려면 --apply 옵션을 사용하세요.")
    print("=" * 80)
    return 0


def cmd_health(args, config: Settings, store: SQLiteStore) -> int:
    extractor = TextExtractor(config.TEXT_PARSER_URL, config.TEXT_PARSER_TIMEOUT)
    available = asyncio.run(extractor.health())
    print(f"텍스트 추출 서비스 ({config.TEXT_PARSER_URL}): {'✅ 정상' if available else '❌ 응답 없음'}")
    return 0 if available else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='bizsup-ingest', description='정부지원사업 공고 수집기')
    parser.add_argument('--db', help='SQLite 데이터베이스 경로')
    parser.add_argument('--storage-dir', help='첨부파일 저장 디렉토리')
    parser.add_argument('--pages', '-p', type=int, help='수집할 최대 페이지 수')
    parser.add_argument('--max-projects', type=int, help='작업당 최대 공고 수')
    parser.add_argument('--hours', type=int, help='최근 몇 시간 이내 공고만 수집')
    parser.add_argument('--log-file', help='로그 파일 경로')
    parser.add_argument('--verbose', '-v', action='store_true', help='디버그 로그 출력')

    subparsers = parser.add_subparsers(dest='command', required=True)

    add_source = subparsers.add_parser('add-source', help='수집 대상 등록')
    add_source.add_argument('name')
    add_source.add_argument('url', help='목록 URL ({page} 자리표시 사용 가능)')
    add_source.add_argument('--type', choices=('web', 'api'), default='web')
    add_source.add_argument('--strategy', help='상세 페이지 추출 전략 (bizinfo, egov 등)')
    add_source.set_defaults(func=cmd_add_source)

    sources = subparsers.add_parser('sources', help='수집 대상 목록')
    sources.set_defaults(func=cmd_sources)

    crawl = subparsers.add_parser('crawl', help='수집 대상 즉시 수집')
    crawl.add_argument('source_ids', nargs='+', type=int, metavar='SOURCE_ID')
    crawl.add_argument('--concurrent', action='store_true', help='여러 대상을 동시에 수집')
    crawl.set_defaults(func=cmd_crawl)

    run_pending = subparsers.add_parser('run-pending', help='대기 중인 수집 작업 처리')
    run_pending.add_argument('--limit', type=int, help='처리할 최대 작업 수')
    run_pending.set_defaults(func=cmd_run_pending)

    repair = subparsers.add_parser('repair-filenames', help='손상된 첨부파일명 복구')
    repair.add_argument('--apply', action='store_true', help='검사만 하지 않고 실제로 수정')
    repair.add_argument('--limit', type=int, help='검사할 최대 첨부파일 수')
    repair.set_defaults(func=cmd_repair_filenames)

    health = subparsers.add_parser('health', help='텍스트 추출 서비스 상태 확인')
    health.set_defaults(func=cmd_health)

    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    config = build_settings(args)
    setup_logging(config.LOG_LEVEL, args.log_file)

    try:
        store = SQLiteStore(config.DATABASE_PATH)
        exit_code = args.func(args, config, store)
    except KeyboardInterrupt:
        print("\n\n사용자에 의해 중단되었습니다.")
        sys.exit(1)
    except Exception as e:
        logger.error(f"실행 중 오류 발생: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
