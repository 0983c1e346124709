# -*- coding: utf-8 -*-
"""
SQLite 저장소 - 수집 대상, 수집 작업, 공고, 첨부파일
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import StoreError
from .models import (
    JOB_PENDING,
    JOB_RUNNING,
    JOB_TRANSITIONS,
    Attachment,
    CrawlJob,
    HarvestedAnnouncement,
    Source,
)

logger = logging.getLogger(__name__)

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS sources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'web',
        strategy TEXT,
        last_crawled TEXT,
        is_active BOOLEAN DEFAULT TRUE,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS crawl_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        projects_found INTEGER DEFAULT 0,
        projects_new INTEGER DEFAULT 0,
        projects_updated INTEGER DEFAULT 0,
        error_message TEXT,
        created_at TEXT NOT NULL,
        started_at TEXT,
        completed_at TEXT,
        FOREIGN KEY (source_id) REFERENCES sources(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS announcements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id TEXT UNIQUE,
        name TEXT NOT NULL,
        organization TEXT NOT NULL,
        category TEXT,
        region TEXT,
        summary TEXT,
        description TEXT,
        source_url TEXT,
        detail_url TEXT,
        posted_at TEXT,
        deadline TEXT,
        crawled_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS attachments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        announcement_id INTEGER NOT NULL,
        source_url TEXT NOT NULL,
        file_name TEXT NOT NULL,
        file_type TEXT NOT NULL DEFAULT 'unknown',
        file_size INTEGER DEFAULT 0,
        storage_path TEXT,
        should_parse BOOLEAN DEFAULT FALSE,
        is_parsed BOOLEAN DEFAULT FALSE,
        parsed_text TEXT,
        parse_error TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (announcement_id) REFERENCES announcements(id) ON DELETE CASCADE
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_announcements_name_org ON announcements(name, organization)',
    'CREATE INDEX IF NOT EXISTS idx_crawl_jobs_status ON crawl_jobs(status, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_attachments_announcement ON attachments(announcement_id)',
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec='microseconds') if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row['id'],
        name=row['name'],
        url=row['url'],
        type=row['type'],
        strategy=row['strategy'],
        last_crawled=_parse_ts(row['last_crawled']),
        is_active=bool(row['is_active']),
    )


def _row_to_job(row: sqlite3.Row) -> CrawlJob:
    return CrawlJob(
        id=row['id'],
        source_id=row['source_id'],
        status=row['status'],
        projects_found=row['projects_found'],
        projects_new=row['projects_new'],
        projects_updated=row['projects_updated'],
        error_message=row['error_message'],
        created_at=_parse_ts(row['created_at']),
        started_at=_parse_ts(row['started_at']),
        completed_at=_parse_ts(row['completed_at']),
    )


def _row_to_attachment(row: sqlite3.Row) -> Attachment:
    return Attachment(
        id=row['id'],
        announcement_id=row['announcement_id'],
        source_url=row['source_url'],
        file_name=row['file_name'],
        file_type=row['file_type'],
        file_size=row['file_size'],
        storage_path=row['storage_path'],
        should_parse=bool(row['should_parse']),
        is_parsed=bool(row['is_parsed']),
        parsed_text=row['parsed_text'],
        parse_error=row['parse_error'],
        created_at=_parse_ts(row['created_at']),
    )


def _announcement_values(record: HarvestedAnnouncement) -> Dict[str, Any]:
    deadline = record.deadline.isoformat() if isinstance(record.deadline, date) else None
    return {
        'external_id': record.external_id,
        'name': record.name,
        'organization': record.organization,
        'category': record.category,
        'region': record.region,
        'summary': record.summary,
        'description': record.description,
        'source_url': record.source_url,
        'detail_url': record.detail_url,
        'posted_at': _ts(record.posted_at),
        'deadline': deadline,
    }


class SQLiteStore:
    """수집 결과 저장소"""

    def __init__(self, db_path: str = "bizsup.db"):
        self.db_path = db_path
        if db_path != ':memory:':
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    @contextmanager
    def get_connection(self, immediate: bool = False):
        """트랜잭션 단위 커넥션 - 성공시 커밋, 실패시 롤백"""
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute('PRAGMA foreign_keys=ON;')
            conn.execute('BEGIN IMMEDIATE' if immediate else 'BEGIN')
            yield conn
            conn.execute('COMMIT')
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute('ROLLBACK')
            raise StoreError(f"데이터베이스 오류: {e}") from e
        except Exception:
            if conn.in_transaction:
                conn.execute('ROLLBACK')
            raise
        finally:
            conn.close()

    def init_database(self):
        """테이블 생성"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            try:
                conn.execute('PRAGMA journal_mode=WAL;')
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"데이터베이스 초기화 실패: {e}") from e

    # 수집 대상

    def add_source(self, source: Source) -> Source:
        now = datetime.now()
        with self.get_connection() as conn:
            cursor = conn.execute(
                'INSERT INTO sources (name, url, type, strategy, is_active, created_at) VALUES (?, ?, ?, ?, ?, ?)',
                (source.name, source.url, source.type, source.strategy, source.is_active, _ts(now)),
            )
            source_id = cursor.lastrowid
        logger.info(f"수집 대상 등록: [{source_id}] {source.name} ({source.url})")
        return self.get_source(source_id)

    def get_source(self, source_id: int) -> Optional[Source]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM sources WHERE id = ?', (source_id,)).fetchone()
        return _row_to_source(row) if row else None

    def list_sources(self, active_only: bool = False) -> List[Source]:
        query = 'SELECT * FROM sources'
        if active_only:
            query += ' WHERE is_active = 1'
        with self.get_connection() as conn:
            rows = conn.execute(query + ' ORDER BY id').fetchall()
        return [_row_to_source(row) for row in rows]

    def touch_source(self, source_id: int, last_crawled: datetime):
        with self.get_connection() as conn:
            conn.execute('UPDATE sources SET last_crawled = ? WHERE id = ?', (_ts(last_crawled), source_id))

    # 수집 작업

    def create_job(self, source_id: int, now: Optional[datetime] = None) -> CrawlJob:
        with self.get_connection() as conn:
            cursor = conn.execute(
                'INSERT INTO crawl_jobs (source_id, status, created_at) VALUES (?, ?, ?)',
                (source_id, JOB_PENDING, _ts(now or datetime.now())),
            )
            job_id = cursor.lastrowid
        return self.get_job(job_id)

    def get_job(self, job_id: int) -> Optional[CrawlJob]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM crawl_jobs WHERE id = ?', (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def pending_jobs(self, limit: int = 5) -> List[CrawlJob]:
        """대기 중인 작업 (오래된 순)"""
        with self.get_connection() as conn:
            rows = conn.execute(
                'SELECT * FROM crawl_jobs WHERE status = ? ORDER BY created_at, id LIMIT ?',
                (JOB_PENDING, limit),
            ).fetchall()
        return [_row_to_job(row) for row in rows]

    def _transition(self, conn: sqlite3.Connection, job_id: int, new_status: str):
        row = conn.execute('SELECT status FROM crawl_jobs WHERE id = ?', (job_id,)).fetchone()
        if row is None:
            raise StoreError(f"수집 작업 없음: {job_id}")
        if new_status not in JOB_TRANSITIONS.get(row['status'], ()):
            raise StoreError(f"잘못된 작업 상태 전이: {row['status']} -> {new_status} (작업 {job_id})")

    def mark_job_running(self, job_id: int, now: Optional[datetime] = None):
        with self.get_connection(immediate=True) as conn:
            self._transition(conn, job_id, JOB_RUNNING)
            conn.execute(
                'UPDATE crawl_jobs SET status = ?, started_at = ? WHERE id = ?',
                (JOB_RUNNING, _ts(now or datetime.now()), job_id),
            )

    def mark_job_finished(self, job_id: int, status: str, found: int = 0, new: int = 0, updated: int = 0,
                          error: Optional[str] = None, now: Optional[datetime] = None):
        with self.get_connection(immediate=True) as conn:
            self._transition(conn, job_id, status)
            conn.execute(
                '''UPDATE crawl_jobs
                   SET status = ?, projects_found = ?, projects_new = ?, projects_updated = ?,
                       error_message = ?, completed_at = ?
                   WHERE id = ?''',
                (status, found, new, updated, error, _ts(now or datetime.now()), job_id),
            )

    # 공고

    def _find(self, conn: sqlite3.Connection, external_id: Optional[str],
              name: Optional[str], organization: Optional[str]) -> Optional[sqlite3.Row]:
        if external_id:
            return conn.execute('SELECT * FROM announcements WHERE external_id = ?', (external_id,)).fetchone()
        return conn.execute(
            'SELECT * FROM announcements WHERE name = ? AND organization = ? ORDER BY id LIMIT 1',
            (name, organization),
        ).fetchone()

    def find_announcement(self, external_id: Optional[str] = None, name: Optional[str] = None,
                          organization: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """외부 ID가 있으면 외부 ID로, 없으면 (공고명, 기관) 으로 조회"""
        with self.get_connection() as conn:
            row = self._find(conn, external_id, name, organization)
        return dict(row) if row else None

    def _insert(self, conn: sqlite3.Connection, record: HarvestedAnnouncement, now: datetime) -> int:
        values = _announcement_values(record)
        values.update(crawled_at=_ts(now), created_at=_ts(now), updated_at=_ts(now))
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)
        cursor = conn.execute(f'INSERT INTO announcements ({columns}) VALUES ({placeholders})', tuple(values.values()))
        return cursor.lastrowid

    def _update(self, conn: sqlite3.Connection, announcement_id: int, record: HarvestedAnnouncement, now: datetime):
        values = _announcement_values(record)
        values.update(crawled_at=_ts(now), updated_at=_ts(now))
        assignments = ', '.join(f'{column} = ?' for column in values)
        conn.execute(
            f'UPDATE announcements SET {assignments} WHERE id = ?',
            tuple(values.values()) + (announcement_id,),
        )

    def insert_announcement(self, record: HarvestedAnnouncement, now: Optional[datetime] = None) -> int:
        with self.get_connection() as conn:
            return self._insert(conn, record, now or datetime.now())

    def update_announcement(self, announcement_id: int, record: HarvestedAnnouncement,
                            now: Optional[datetime] = None):
        with self.get_connection() as conn:
            self._update(conn, announcement_id, record, now or datetime.now())

    def delete_announcement(self, announcement_id: int):
        """공고 삭제 (첨부파일 함께 삭제)"""
        with self.get_connection() as conn:
            conn.execute('DELETE FROM announcements WHERE id = ?', (announcement_id,))

    def get_announcement(self, announcement_id: int) -> Optional[Dict[str, Any]]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM announcements WHERE id = ?', (announcement_id,)).fetchone()
        return dict(row) if row else None

    def count_announcements(self) -> int:
        with self.get_connection() as conn:
            return conn.execute('SELECT COUNT(*) FROM announcements').fetchone()[0]

    def upsert_announcement(self, record: HarvestedAnnouncement, now: Optional[datetime] = None) -> Tuple[int, bool]:
        """조회와 생성/갱신을 하나의 쓰기 트랜잭션으로 처리 - (id, 신규 여부)"""
        now = now or datetime.now()
        with self.get_connection(immediate=True) as conn:
            existing = self._find(conn, record.external_id, record.name, record.organization)
            if existing:
                self._update(conn, existing['id'], record, now)
                return existing['id'], False
            return self._insert(conn, record, now), True

    # 첨부파일

    def replace_attachments(self, announcement_id: int, attachments: Iterable[Attachment]) -> int:
        """공고의 첨부파일 목록 교체 (삭제 후 삽입을 한 트랜잭션으로)"""
        now = _ts(datetime.now())
        rows = [
            (announcement_id, a.source_url, a.file_name, a.file_type, a.file_size, a.storage_path,
             a.should_parse, a.is_parsed, a.parsed_text, a.parse_error, now)
            for a in attachments
        ]
        with self.get_connection(immediate=True) as conn:
            conn.execute('DELETE FROM attachments WHERE announcement_id = ?', (announcement_id,))
            conn.executemany(
                '''INSERT INTO attachments
                   (announcement_id, source_url, file_name, file_type, file_size, storage_path,
                    should_parse, is_parsed, parsed_text, parse_error, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                rows,
            )
        return len(rows)

    def list_attachments(self, announcement_id: int) -> List[Attachment]:
        with self.get_connection() as conn:
            rows = conn.execute(
                'SELECT * FROM attachments WHERE announcement_id = ? ORDER BY id', (announcement_id,)
            ).fetchall()
        return [_row_to_attachment(row) for row in rows]

    def list_all_attachments(self, limit: Optional[int] = None) -> List[Attachment]:
        query = 'SELECT * FROM attachments ORDER BY id'
        params: Tuple = ()
        if limit is not None:
            query += ' LIMIT ?'
            params = (limit,)
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_attachment(row) for row in rows]

    def update_attachment_name(self, attachment_id: int, file_name: str):
        with self.get_connection() as conn:
            conn.execute('UPDATE attachments SET file_name = ? WHERE id = ?', (file_name, attachment_id))
