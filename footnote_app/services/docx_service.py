"""
docx_service.py — 각주 번호가 포함된 주석 문서를 Word 파일로 출력.

문서 구성:
  제목    — "문서 각주 생성 결과"
  본문    — 줄 단위 단락, 참조 마커(<sup>N)</sup>)는 위첨자 "N)"로 표시
  각주    — "각주" 제목 + 번호 순 "N) 본문" (본문 내 줄바꿈은 줄 나눔으로 유지)
"""
import logging
import re
from datetime import datetime
from pathlib import Path

from docx import Document
from docx.enum.text import WD_BREAK
from docx.shared import Pt

from footnote_app.models.annotation_model import Footnote
from footnote_app.utils.marker_utils import split_references, strip_selection_markers

logger = logging.getLogger(__name__)

TITLE = "문서 각주 생성 결과"
FOOTNOTE_HEADING = "각주"

_FONT_NAME = "맑은 고딕"
_REFERENCE_SIZE = Pt(8)

# 참조 마커(<sup>)를 제외한 HTML 태그
_HTML_TAG_RE = re.compile(r"<(?!/?sup>)[^>]*>")


def _clean_body(text: str) -> str:
    """선택 마커와 기타 태그 제거, 참조 마커만 유지."""
    text = _HTML_TAG_RE.sub("", text)
    return strip_selection_markers(text).strip()


def _add_body_paragraph(doc, line: str):
    para = doc.add_paragraph()
    para.paragraph_format.space_after = Pt(10)
    for text, number in split_references(line):
        run = para.add_run(text)
        run.font.name = _FONT_NAME
        if number is not None:
            run.font.superscript = True
            run.font.size = _REFERENCE_SIZE
    return para


def _add_footnote_paragraph(doc, footnote: Footnote):
    para = doc.add_paragraph()
    para.paragraph_format.space_after = Pt(7.5)

    label = para.add_run(f"{footnote.position}) ")
    label.bold = True
    label.font.name = _FONT_NAME

    for i, line in enumerate(footnote.body.split("\n")):
        run = para.add_run()
        run.font.name = _FONT_NAME
        if i > 0:
            run.add_break(WD_BREAK.LINE)
        run.add_text(line)
    return para


def build_document(document_text: str, footnotes: list[Footnote]):
    """python-docx Document 객체 생성 (저장하지 않음)."""
    doc = Document()
    doc.add_heading(TITLE, level=1)

    body = _clean_body(document_text)
    for line in re.split(r"\n+", body):
        if line.strip():
            _add_body_paragraph(doc, line.strip())

    if footnotes:
        doc.add_heading(FOOTNOTE_HEADING, level=2)
        for footnote in sorted(footnotes, key=lambda fn: fn.position):
            _add_footnote_paragraph(doc, footnote)

    return doc


# ─── 공개 API ────────────────────────────────────────────────────

async def generate_docx(
    document_text: str,
    footnotes: list[Footnote],
    output_dir: Path,
) -> Path:
    """
    주석 문서를 Word 파일로 저장.
    document_text: 선택 마커가 제거되고 참조 마커만 남은 최종 문서
    반환: 저장된 파일 경로
    """
    doc = build_document(document_text, footnotes)

    # 파일명: footnote_document_{날짜}.docx
    date_str = datetime.now().strftime("%Y-%m-%d")
    filename = f"footnote_document_{date_str}.docx"
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / filename

    doc.save(str(output_path))
    logger.info("DOCX 저장 완료: %s (각주 %d개)", output_path, len(footnotes))
    return output_path
