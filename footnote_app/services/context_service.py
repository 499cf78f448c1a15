"""
context_service.py — 정의 생성용 문맥(앞뒤 문장) 추출.

LLM이 어떤 출현 위치의 단어를 설명해야 하는지 알 수 있도록
대상 문장 안의 단어 하나만 [[단어]]로 다시 표시해서 넘긴다.
"""
import logging
import re

from footnote_app.config import settings
from footnote_app.utils.marker_utils import boundary_pattern, wrap_at

logger = logging.getLogger(__name__)

# 문장 구분자: . ! ? 연속은 하나의 구분자로 취급
_SENTENCE_RE = re.compile(r"[^.!?]+")


def split_sentences(text: str) -> list[tuple[int, int, str]]:
    """
    문장 분리. 반환: [(start, end, sentence), ...] (공백뿐인 문장 제외)
    start/end는 원문 기준 오프셋.
    """
    return [
        (m.start(), m.end(), m.group())
        for m in _SENTENCE_RE.finditer(text)
        if m.group().strip()
    ]


def extract_context(
    document: str,
    word: str,
    position: int,
    before: int | None = None,
    after: int | None = None,
    fallback: int | None = None,
) -> str:
    """
    position이 속한 문장 기준 앞뒤 before/after 문장을 포함한 문맥 반환.
    대상 문장 안에서 position 위치의 출현(없으면 첫 번째 경계 매칭)만 [[단어]]로 표시.
    대상 문장을 찾지 못하면 앞쪽 fallback개 문장을 표시 없이 반환.
    """
    before   = settings.CONTEXT_SENTENCES_BEFORE if before   is None else before
    after    = settings.CONTEXT_SENTENCES_AFTER  if after    is None else after
    fallback = settings.FALLBACK_SENTENCES       if fallback is None else fallback

    sentences = split_sentences(document)

    target = -1
    for i, (start, end, _) in enumerate(sentences):
        if start <= position <= end:
            target = i
            break

    if target == -1:
        logger.warning("문맥 추출: '%s' 위치(%d)의 문장 없음 — 앞 %d문장 사용", word, position, fallback)
        return ". ".join(s.strip() for _, _, s in sentences[:fallback])

    lo = max(0, target - before)
    hi = min(len(sentences), target + after + 1)
    window = [s for _, _, s in sentences[lo:hi]]

    rel = target - lo
    # position에 해당하는 출현을 우선 표시, 없으면 문장 안의 첫 번째 매칭
    offset = position - sentences[target][0]
    matches = list(boundary_pattern(word).finditer(window[rel]))
    m = next((m for m in matches if m.start() <= offset < m.end()), matches[0] if matches else None)
    if m:
        window[rel] = wrap_at(window[rel], m.start(), m.end() - m.start())
    else:
        logger.debug("문맥 추출: 대상 문장에서 '%s' 경계 매칭 실패 — 표시 없이 반환", word)

    return ". ".join(s.strip() for s in window)
