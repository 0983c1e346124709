# -*- coding: utf-8 -*-
from bizsup_ingest.detail_extractor import (
    ExtractorRegistry,
    build_default_registry,
    clean_link_text,
    default_registry,
    extract_content,
)
from bizsup_ingest.models import AttachmentCandidate

GENERIC_PAGE = """
<html><body>
  <div class="board_view">
    <p>본문</p>
    <div class="file"><a href="/download?id=1">2024 모집공고.hwp</a></div>
    <a href="https://host/files/report.hwp">report.hwp</a>
    <div class="attachment"><a href="https://host/files/report.hwp">보고서 받기</a></div>
    <a href="/board/list">목록</a>
    <a href="javascript:history.back()">뒤로</a>
  </div>
</body></html>
"""


def test_generic_extraction_resolves_and_dedupes_links():
    candidates = default_registry.extract(GENERIC_PAGE, "https://host/board/view?id=7")

    assert [c.url for c in candidates] == [
        "https://host/download?id=1",
        "https://host/files/report.hwp",
    ]
    assert candidates[0].file_name == "2024 모집공고.hwp"
    assert candidates[1].file_name == "report.hwp"


def test_generic_extraction_reads_onclick_paths():
    html = '<a href="#" onclick="window.open(\'/upload/guide.pdf\')">안내서</a>'
    candidates = default_registry.extract(html, "https://host/view")
    assert candidates == [AttachmentCandidate(url="https://host/upload/guide.pdf", file_name="guide.pdf")]


def test_egov_onclick_download_is_rebuilt():
    html = """
    <dl><dd class="file">
      <a href="#none" onclick="fn_egov_downFile('FILE_000000000012345','0'); return false;">2024 모집공고.hwp [123 Byte]</a>
      <a href="#none" onclick="fn_egov_downFile('FILE_000000000012345','1'); return false;">신청서.hwp (45KB)</a>
    </dd></dl>
    """
    candidates = default_registry.extract(html, "https://www.gtp.or.kr/board/view.do?nttId=1")

    assert [c.url for c in candidates] == [
        "https://www.gtp.or.kr/cmm/fms/FileDown.do?atchFileId=FILE_000000000012345&fileSn=0",
        "https://www.gtp.or.kr/cmm/fms/FileDown.do?atchFileId=FILE_000000000012345&fileSn=1",
    ]
    assert [c.file_name for c in candidates] == ["2024 모집공고.hwp", "신청서.hwp"]


def test_bizinfo_attachment_list():
    html = """
    <div class="attached_file_list"><ul>
      <li><span class="file_name">2024년 창업지원 공고.hwp</span>
          <a href="/cmm/fms/getImageFile.do?atchFileId=FILE_1&amp;fileSn=0">다운로드</a></li>
    </ul></div>
    """
    page = "https://www.bizinfo.go.kr/web/lay1/bbs/S1T122C128/AS/74/view.do?pblancId=PBLN_1"
    candidates = default_registry.extract(html, page)

    assert candidates == [AttachmentCandidate(
        url="https://www.bizinfo.go.kr/cmm/fms/getImageFile.do?atchFileId=FILE_1&fileSn=0",
        file_name="2024년 창업지원 공고.hwp",
    )]


def test_site_strategy_falls_back_to_generic_when_empty():
    html = '<div><a href="/files/guide.pdf">guide.pdf</a></div>'
    candidates = default_registry.extract(html, "https://www.bizinfo.go.kr/view.do")
    assert [c.url for c in candidates] == ["https://www.bizinfo.go.kr/files/guide.pdf"]


def test_resolve_prefers_explicit_strategy():
    registry = build_default_registry()
    assert registry.resolve("https://example.com/view", "egov")[0] == "egov"
    assert registry.resolve("https://www.bizinfo.go.kr/view")[0] == "bizinfo"
    assert registry.resolve("https://example.com/view", "missing")[0] == "generic"


def test_register_custom_strategy():
    registry = ExtractorRegistry()

    @registry.register("custom", lambda host: host == "files.example.org")
    def extract_custom(soup, page_url):
        return [AttachmentCandidate(url=page_url + "#file", file_name="custom.pdf")]

    assert registry.names == ["custom"]
    assert registry.extract("<html></html>", "https://files.example.org/a") == [
        AttachmentCandidate(url="https://files.example.org/a#file", file_name="custom.pdf"),
    ]


def test_clean_link_text():
    assert clean_link_text("  공고문.hwp  (1.2 MB) ") == "공고문.hwp"
    assert clean_link_text("신청서.hwp 다운로드") == "신청서.hwp"


def test_extract_content_converts_body_to_markdown():
    html = """
    <html><body>
      <div id="header">메뉴</div>
      <div class="view_cont"><h2>사업개요</h2><p>지원 내용 안내</p><script>alert('x')</script></div>
    </body></html>
    """
    content = extract_content(html)
    assert "사업개요" in content
    assert "지원 내용 안내" in content
    assert "alert" not in content
    assert "메뉴" not in content


def test_malformed_link_is_skipped():
    html = """
    <div class="file">
      <a href="http://[x/a.pdf">깨진 링크.pdf</a>
      <a href="/files/guide.pdf">신청 안내.pdf</a>
    </div>
    """
    candidates = default_registry.extract(html, "https://host/board/view?id=7")
    assert candidates == [AttachmentCandidate(url="https://host/files/guide.pdf", file_name="신청 안내.pdf")]
