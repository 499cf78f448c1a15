"""
업로드 문서(Word/TXT/PDF) → 평문 텍스트 변환 서비스.
부분 추출 결과는 허용하지 않음 — 실패하면 ExtractionError로 문서 로드 자체를 중단.
"""
import io
import logging
from pathlib import Path

from footnote_app.errors import ExtractionError

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TXT_MEDIA_TYPE  = "text/plain"
PDF_MEDIA_TYPE  = "application/pdf"

SUPPORTED_FORMATS = "DOCX, TXT, PDF"


# ─────────────────────────────────────────────────────
# 공개 API
# ─────────────────────────────────────────────────────

async def extract_text(filename: str, content: bytes, media_type: str | None = None) -> str:
    """
    업로드된 파일 내용을 평문으로 변환.
    포맷은 확장자 → 선언된 MIME 타입 → magic bytes 순으로 감지.
    """
    fmt = _detect_format(filename, content, media_type)
    if fmt is None:
        raise ExtractionError(
            filename,
            f"지원하지 않는 파일 형식입니다. (지원 형식: {SUPPORTED_FORMATS})\n"
            f"업로드된 파일: {filename}, MIME 타입: {media_type}",
        )

    if fmt == "docx":
        text = _extract_docx(filename, content)
    elif fmt == "pdf":
        text = _extract_pdf(filename, content)
    else:
        text = _extract_txt(filename, content)

    text = text.strip()
    if not text:
        raise ExtractionError(filename, "문서에서 텍스트를 추출할 수 없습니다.")

    logger.info("텍스트 추출 완료: %s (%s, %d자)", filename, fmt, len(text))
    return text


def _detect_format(filename: str, content: bytes, media_type: str | None) -> str | None:
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".docx" or media_type == DOCX_MEDIA_TYPE:
        return "docx"
    if suffix == ".pdf" or media_type == PDF_MEDIA_TYPE:
        return "pdf"
    if suffix == ".txt" or media_type == TXT_MEDIA_TYPE:
        return "txt"

    # magic bytes fallback (일부 브라우저는 DOCX를 application/octet-stream으로 보냄)
    header = content[:4]
    if header == b"PK\x03\x04":  # ZIP → docx
        return "docx"
    if header == b"%PDF":
        return "pdf"
    return None


# ─────────────────────────────────────────────────────
# 포맷별 추출
# ─────────────────────────────────────────────────────

def _extract_docx(filename: str, content: bytes) -> str:
    """python-docx 기반. 단락 텍스트를 줄바꿈으로 연결 (테이블 셀은 탭 구분)."""
    import docx

    try:
        doc = docx.Document(io.BytesIO(content))
    except Exception as e:
        logger.error("DOCX 파싱 오류 (%s): %s", filename, e)
        raise ExtractionError(
            filename,
            "DOCX 파일을 읽을 수 없습니다. 파일이 손상되었거나 올바른 형식이 아닐 수 있습니다.",
        ) from e

    parts = [para.text for para in doc.paragraphs]
    for table in doc.tables:
        parts.append(_table_to_text(table))
    return "\n".join(parts)


def _table_to_text(table) -> str:
    rows = []
    for row in table.rows:
        cells = [cell.text.replace("\n", " ").strip() for cell in row.cells]
        rows.append("\t".join(cells))
    return "\n".join(rows)


def _extract_txt(filename: str, content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionError(filename, "텍스트 파일은 UTF-8 인코딩이어야 합니다.") from e


def _extract_pdf(filename: str, content: bytes) -> str:
    """pdfplumber 기반. 페이지별 텍스트를 빈 줄로 구분."""
    import pdfplumber

    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            pages = [page.extract_text(x_tolerance=3, y_tolerance=3) or "" for page in pdf.pages]
    except Exception as e:
        logger.error("PDF 파싱 오류 (%s): %s", filename, e)
        raise ExtractionError(
            filename,
            "PDF 파일을 읽을 수 없습니다. 파일이 손상되었거나 올바른 형식이 아닐 수 있습니다.",
        ) from e

    return "\n\n".join(p.strip() for p in pages if p.strip())
