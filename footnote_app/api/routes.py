"""
FastAPI 라우터 — 문서 파싱, 정의 생성, 주석 세션(단어 선택/각주) 조작, DOCX 다운로드.
"""
import logging
from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from footnote_app.config import settings
from footnote_app.errors import ExtractionError, NotFoundError, ProviderError, ValidationError
from footnote_app.models.annotation_model import (
    ClearPolicy,
    Footnote,
    SessionSnapshot,
    WordDefinition,
)
from footnote_app.services.definition_service import DefinitionService
from footnote_app.services.docx_service import generate_docx
from footnote_app.services.extract_service import DOCX_MEDIA_TYPE, extract_text
from footnote_app.services.footnote_service import renumber_document
from footnote_app.services.session_service import AnnotationSession
from footnote_app.utils.session_store import (
    cleanup_expired_sessions,
    create_session,
    delete_session,
    get_session,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# 세션 밖 단발성 정의 생성 요청에 쓰이는 기본 생성기 (테스트에서 교체 가능)
definition_provider: DefinitionService | None = None


def get_definition_provider() -> DefinitionService:
    global definition_provider
    if definition_provider is None:
        definition_provider = DefinitionService()
    return definition_provider


# ─────────────────────────────────────────────────────────────────
# 요청 모델
# ─────────────────────────────────────────────────────────────────

class TextRequest(BaseModel):
    text: str


class GenerateDefinitionRequest(BaseModel):
    text: str
    word: str


class SelectWordRequest(BaseModel):
    text: str


class ClearRequest(BaseModel):
    policy: ClearPolicy | None = None


class RenumberRequest(BaseModel):
    document: str
    footnotes: list[Footnote]


class RenumberResponse(BaseModel):
    document: str
    footnotes: list[Footnote]


# ─────────────────────────────────────────────────────────────────
# 공통 헬퍼
# ─────────────────────────────────────────────────────────────────

def _session_or_404(session_id: str) -> AnnotationSession:
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="해당 세션을 찾을 수 없습니다.")
    return session


async def _read_upload(file: UploadFile) -> str:
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    content = await file.read()
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"파일 크기는 {settings.MAX_FILE_SIZE_MB}MB 이하여야 합니다.")

    # 파일명 None 방어 (일부 클라이언트에서 filename이 None으로 올 수 있음)
    filename = file.filename or "upload"
    try:
        return await extract_text(filename, content, file.content_type)
    except ExtractionError as e:
        logger.warning("문서 파싱 실패: %s", e)
        raise HTTPException(status_code=400, detail=e.message)


# ─────────────────────────────────────────────────────────────────
# 단발성 API
# ─────────────────────────────────────────────────────────────────

@router.post("/parse-document")
async def parse_document(file: UploadFile = File(..., description="문서 파일 (.docx, .txt, .pdf)")):
    text = await _read_upload(file)
    return {"text": text}


@router.post("/generate-definition", response_model=WordDefinition)
async def generate_definition(req: GenerateDefinitionRequest):
    if not req.text or not req.word:
        raise HTTPException(status_code=400, detail="텍스트와 단어가 필요합니다.")
    try:
        return await get_definition_provider().generate(req.text, req.word)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"정의 생성 중 오류가 발생했습니다: {e.message}")


@router.post("/renumber", response_model=RenumberResponse)
async def renumber(req: RenumberRequest):
    document, footnotes = renumber_document(req.document, req.footnotes)
    return RenumberResponse(document=document, footnotes=footnotes)


# ─────────────────────────────────────────────────────────────────
# 세션
# ─────────────────────────────────────────────────────────────────

@router.post("/sessions", response_model=SessionSnapshot)
async def create_text_session(req: TextRequest):
    text = req.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="텍스트를 입력하세요.")
    # 만료된 세션 정리 (요청마다 가볍게 실행)
    cleanup_expired_sessions()
    return create_session(text, provider=get_definition_provider()).snapshot()


@router.post("/sessions/upload", response_model=SessionSnapshot)
async def create_upload_session(file: UploadFile = File(..., description="문서 파일 (.docx, .txt, .pdf)")):
    text = await _read_upload(file)
    cleanup_expired_sessions()
    return create_session(text, provider=get_definition_provider()).snapshot()


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session_snapshot(session_id: str):
    return _session_or_404(session_id).snapshot()


@router.delete("/sessions/{session_id}")
async def reset_session(session_id: str):
    if not delete_session(session_id):
        raise HTTPException(status_code=404, detail="해당 세션을 찾을 수 없습니다.")
    return {"session_id": session_id, "deleted": True}


# ─────────────────────────────────────────────────────────────────
# 단어 선택
# ─────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/words", response_model=SessionSnapshot)
async def select_word(session_id: str, req: SelectWordRequest):
    session = _session_or_404(session_id)
    try:
        session.select_word(req.text)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/words/clear", response_model=SessionSnapshot)
async def clear_words(session_id: str, req: ClearRequest | None = None):
    session = _session_or_404(session_id)
    session.clear_all(req.policy if req else None)
    return session.snapshot()


@router.delete("/sessions/{session_id}/words/{word_id}", response_model=SessionSnapshot)
async def deselect_word(session_id: str, word_id: str):
    session = _session_or_404(session_id)
    try:
        session.deselect_word(word_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return session.snapshot()


# ─────────────────────────────────────────────────────────────────
# 정의 생성 / 항목 선택
# ─────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/words/{word_id}/definition", response_model=SessionSnapshot)
async def generate_word_definition(session_id: str, word_id: str):
    session = _session_or_404(session_id)
    try:
        await session.generate_one(word_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/definitions", response_model=SessionSnapshot)
async def generate_all_definitions(session_id: str):
    session = _session_or_404(session_id)
    await session.generate_all()
    return session.snapshot()


@router.post("/sessions/{session_id}/words/{word_id}/lines/{index}/toggle", response_model=SessionSnapshot)
async def toggle_definition_line(session_id: str, word_id: str, index: int):
    session = _session_or_404(session_id)
    try:
        session.toggle_line(word_id, index)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IndexError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


# ─────────────────────────────────────────────────────────────────
# 각주
# ─────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/words/{word_id}/footnote", response_model=SessionSnapshot)
async def commit_footnote(session_id: str, word_id: str):
    session = _session_or_404(session_id)
    try:
        session.commit_footnote(word_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.delete("/sessions/{session_id}/words/{word_id}/footnote", response_model=SessionSnapshot)
async def remove_footnote(session_id: str, word_id: str):
    session = _session_or_404(session_id)
    session.remove_footnote(word_id)
    return session.snapshot()


@router.delete("/sessions/{session_id}/footnotes/{footnote_id}", response_model=SessionSnapshot)
async def remove_footnote_by_id(session_id: str, footnote_id: str):
    session = _session_or_404(session_id)
    session.remove_footnote_by_id(footnote_id)
    return session.snapshot()


@router.post("/sessions/{session_id}/footnotes/renumber", response_model=SessionSnapshot)
async def renumber_footnotes(session_id: str):
    session = _session_or_404(session_id)
    session.renumber()
    return session.snapshot()


# ─────────────────────────────────────────────────────────────────
# GET /api/sessions/{session_id}/export
# ─────────────────────────────────────────────────────────────────

@router.get("/sessions/{session_id}/export")
async def export_docx(session_id: str):
    session = _session_or_404(session_id)
    if not session.original:
        raise HTTPException(status_code=400, detail="내보낼 문서가 없습니다.")

    try:
        output_path = await generate_docx(
            session.export_text(),
            session.footnotes,
            output_dir=settings.outputs_dir / session_id,
        )
    except Exception:
        logger.exception("[%s] DOCX 생성 중 오류 발생", session_id)
        raise HTTPException(status_code=500, detail="DOCX 파일 생성 중 오류가 발생했습니다.")

    filename = output_path.name
    return FileResponse(
        path=str(output_path),
        media_type=DOCX_MEDIA_TYPE,
        filename=filename,
    )
