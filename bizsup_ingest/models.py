# -*- coding: utf-8 -*-
"""
수집 데이터 모델
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Tuple

# 작업 상태
JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

JOB_TRANSITIONS = {
    JOB_PENDING: (JOB_RUNNING,),
    JOB_RUNNING: (JOB_COMPLETED, JOB_FAILED),
    JOB_COMPLETED: (),
    JOB_FAILED: (),
}


@dataclass
class Source:
    """수집 대상 사이트"""
    name: str
    url: str
    type: str = "web"
    strategy: Optional[str] = None
    last_crawled: Optional[datetime] = None
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class CrawlJob:
    """수집 작업 1회 실행 기록"""
    source_id: int
    status: str = JOB_PENDING
    projects_found: int = 0
    projects_new: int = 0
    projects_updated: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JOB_COMPLETED, JOB_FAILED)


@dataclass
class ListingItem:
    """목록 페이지에서 추출한 공고 한 건"""
    name: str
    detail_url: Optional[str] = None
    organization: str = ""
    category: str = ""
    region: str = ""
    posted_at: Optional[datetime] = None
    deadline: Optional[date] = None
    external_id: Optional[str] = None
    summary: str = ""
    description: str = ""


@dataclass
class AttachmentCandidate:
    url: str
    file_name: str


@dataclass
class HarvestedAnnouncement:
    """상세 페이지까지 수집된 공고"""
    name: str
    organization: str
    source_url: str
    external_id: Optional[str] = None
    category: str = "기타"
    region: str = "전국"
    summary: str = ""
    description: str = ""
    detail_url: Optional[str] = None
    posted_at: Optional[datetime] = None
    deadline: Optional[date] = None
    attachments: List[AttachmentCandidate] = field(default_factory=list)
    cookie: Optional[str] = None

    @property
    def natural_key(self) -> Tuple:
        if self.external_id:
            return ("external_id", self.external_id)
        return ("name", self.name, self.organization)


@dataclass
class Attachment:
    """공고 첨부파일 레코드"""
    source_url: str
    file_name: str
    file_type: str = "unknown"
    file_size: int = 0
    storage_path: Optional[str] = None
    should_parse: bool = False
    is_parsed: bool = False
    parsed_text: Optional[str] = None
    parse_error: Optional[str] = None
    announcement_id: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None
