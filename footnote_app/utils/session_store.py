"""
주석 세션 저장소 (in-memory).
서버 재시작 시 초기화됨 — 세션 간 영속성은 범위 밖.
"""
import logging
import time

from footnote_app.config import settings
from footnote_app.services.session_service import AnnotationSession

logger = logging.getLogger(__name__)

# session_id → AnnotationSession
_store: dict[str, AnnotationSession] = {}


def create_session(text: str, provider=None) -> AnnotationSession:
    session = AnnotationSession(text, provider=provider)
    _store[session.session_id] = session
    logger.info("세션 생성: %s (문서 %d자)", session.session_id, len(text))
    return session


def get_session(session_id: str) -> AnnotationSession | None:
    return _store.get(session_id)


def delete_session(session_id: str) -> bool:
    return _store.pop(session_id, None) is not None


def cleanup_expired_sessions() -> int:
    """TTL 초과(마지막 변경 기준) 세션 정리. 반환값: 삭제된 세션 수."""
    ttl_sec = settings.SESSION_TTL_MINUTES * 60
    now = time.time()
    expired = [
        sid for sid, session in list(_store.items())
        if now - session.updated_at > ttl_sec
    ]
    for sid in expired:
        del _store[sid]
    if expired:
        logger.info("만료된 세션 %d개 정리 완료", len(expired))
    return len(expired)


def clear_sessions() -> None:
    _store.clear()
