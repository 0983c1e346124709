# -*- coding: utf-8 -*-
"""
저장된 첨부파일명 인코딩 일괄 복구
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .encoding_repair import has_valid_korean, is_corrupted, repair_with_strategy

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    scanned: int = 0
    corrupted: int = 0
    repaired: int = 0
    failed: int = 0
    dry_run: bool = True
    # (첨부파일 id, 복구 전, 복구 후, 전략명)
    changes: List[Tuple[int, str, str, str]] = field(default_factory=list)


def repair_attachment_filenames(store, dry_run: bool = True, limit: Optional[int] = None) -> RepairReport:
    """손상된 첨부파일명 검색 및 복구 (dry_run이면 DB 변경 없음)"""
    report = RepairReport(dry_run=dry_run)

    for attachment in store.list_all_attachments(limit=limit):
        report.scanned += 1
        if not is_corrupted(attachment.file_name):
            continue

        report.corrupted += 1
        repaired, strategy = repair_with_strategy(attachment.file_name)

        if strategy is None or repaired == attachment.file_name or not has_valid_korean(repaired):
            report.failed += 1
            logger.warning(f"복구 실패 [{attachment.id}]: {attachment.file_name!r}")
            continue

        report.changes.append((attachment.id, attachment.file_name, repaired, strategy))
        report.repaired += 1
        logger.info(f"{'[DRY RUN] ' if dry_run else ''}[{attachment.id}] {attachment.file_name} -> {repaired} ({strategy})")

        if not dry_run:
            store.update_attachment_name(attachment.id, repaired)

    logger.info(f"파일명 검사 {report.scanned}개, 손상 {report.corrupted}개, 복구 {report.repaired}개, 실패 {report.failed}개")
    return report
