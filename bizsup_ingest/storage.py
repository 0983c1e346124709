# -*- coding: utf-8 -*-
"""
첨부파일 원본 저장소 (로컬 파일시스템)
"""

import logging
import os
import secrets
import string
import time
from datetime import datetime
from typing import Dict, Optional

import aiofiles

logger = logging.getLogger(__name__)

RANDOM_ALPHABET = string.ascii_lowercase + string.digits
RANDOM_LENGTH = 8


def generate_storage_path(announcement_id: int, file_type: str, now: Optional[datetime] = None) -> str:
    """저장 경로 생성 - 원본 파일명은 사용하지 않음"""
    timestamp = int((now.timestamp() if now else time.time()) * 1000)
    suffix = ''.join(secrets.choice(RANDOM_ALPHABET) for _ in range(RANDOM_LENGTH))
    return f"projects/{announcement_id}/{timestamp}_{suffix}.{file_type}"


class LocalBlobStorage:
    """루트 디렉토리 아래에 바이트를 저장하는 blob 저장소"""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full_path]) != self.root or full_path == self.root:
            raise ValueError(f"저장소 루트를 벗어나는 경로: {path}")
        return full_path

    async def put(self, data: bytes, path: str, content_type: str = 'application/octet-stream') -> Dict[str, str]:
        full_path = self._resolve(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)

        async with aiofiles.open(full_path, 'wb') as f:
            await f.write(data)

        logger.debug(f"파일 저장: {path} ({len(data):,} bytes, {content_type})")
        return {'path': path}

    async def get(self, path: str) -> bytes:
        async with aiofiles.open(self._resolve(path), 'rb') as f:
            return await f.read()

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._resolve(path))
