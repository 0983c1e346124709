# -*- coding: utf-8 -*-
import re
from datetime import datetime, timezone

import pytest

from bizsup_ingest.storage import generate_storage_path


def test_storage_path_format():
    path = generate_storage_path(42, "pdf")
    assert re.match(r'^projects/42/\d+_[a-z0-9]{8}\.pdf$', path)


def test_storage_path_uses_millisecond_timestamp():
    now = datetime(2024, 3, 16, 3, 0, 0, 123000, tzinfo=timezone.utc)
    path = generate_storage_path(7, "hwp", now=now)
    assert path.startswith(f"projects/7/{int(now.timestamp() * 1000)}_")
    assert path.endswith(".hwp")


def test_storage_paths_are_unique():
    now = datetime(2024, 3, 16, tzinfo=timezone.utc)
    assert len({generate_storage_path(1, "pdf", now=now) for _ in range(20)}) == 20


@pytest.mark.asyncio
async def test_put_and_get(blob_storage):
    result = await blob_storage.put(b"%PDF-1.4", "projects/1/a.pdf", "application/pdf")

    assert result == {'path': "projects/1/a.pdf"}
    assert blob_storage.exists("projects/1/a.pdf")
    assert await blob_storage.get("projects/1/a.pdf") == b"%PDF-1.4"
    assert not blob_storage.exists("projects/1/b.pdf")


@pytest.mark.asyncio
async def test_paths_outside_root_are_rejected(blob_storage):
    with pytest.raises(ValueError):
        await blob_storage.put(b"x", "../evil.pdf")
    with pytest.raises(ValueError):
        blob_storage.exists("")
