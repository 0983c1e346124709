# -*- coding: utf-8 -*-
import pytest

from bizsup_ingest import cli
from bizsup_ingest.models import Attachment, HarvestedAnnouncement
from bizsup_ingest.store import SQLiteStore


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, 'setup_logging', lambda level='INFO', log_file=None: None)
    return str(tmp_path / "cli.db")


def test_add_source_and_list(db_path, capsys):
    cli.main(["--db", db_path, "add-source", "기업마당", "https://www.bizinfo.go.kr/list.do", "--strategy", "bizinfo"])
    cli.main(["--db", db_path, "sources"])

    output = capsys.readouterr().out
    assert "수집 대상 등록 완료: [1] 기업마당" in output
    assert "등록된 수집 대상: 1개" in output
    assert "bizinfo" in output


def test_crawl_unknown_source_exits_with_error(db_path):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--db", db_path, "crawl", "99"])
    assert exc_info.value.code == 1


def test_repair_filenames_dry_run_then_apply(db_path, capsys):
    broken = "모집공고.hwp".encode("utf-8").decode("latin-1")
    store = SQLiteStore(db_path)
    announcement_id, _ = store.upsert_announcement(
        HarvestedAnnouncement(name="창업지원 공고", organization="중소벤처기업부", source_url="https://x.kr")
    )
    store.replace_attachments(announcement_id, [Attachment(source_url="https://x.kr/1", file_name=broken)])

    cli.main(["--db", db_path, "repair-filenames"])
    output = capsys.readouterr().out
    assert "DRY RUN" in output
    assert "--apply" in output
    assert store.list_attachments(announcement_id)[0].file_name == broken

    cli.main(["--db", db_path, "repair-filenames", "--apply"])
    assert store.list_attachments(announcement_id)[0].file_name == "모집공고.hwp"


def test_build_settings_overrides():
    args = cli.build_parser().parse_args(["--pages", "3", "--hours", "48", "-v", "sources"])
    config = cli.build_settings(args)

    assert config.MAX_PAGES == 3
    assert config.HOURS_FILTER == 48
    assert config.LOG_LEVEL == "DEBUG"
