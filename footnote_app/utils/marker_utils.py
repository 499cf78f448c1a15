"""
문서 내 마커 처리 유틸.

선택 마커:  [[단어]]            — 정의 생성을 위해 선택했지만 아직 각주가 아닌 단어
참조 마커:  단어<sup>N)</sup>   — N번 각주가 붙은 단어 (내보내기 시에도 유지)

단어 매칭은 항상 리터럴(정규식 메타문자 이스케이프) 기준이며,
경계 검사는 ASCII 단어 문자([A-Za-z0-9_])만 단어의 일부로 간주한다.
따라서 "cat"은 "category"에 매칭되지 않고, 한글 단어는 조사가 붙어 있어도 매칭된다.

mark / unmark는 주석 문서 문자열을 직접 다루는 클라이언트용 API다.
세션은 원문을 바꾸지 않고 footnote_service.render_document로 문서를 다시 만든다.
"""
import re

SELECTION_OPEN  = "[["
SELECTION_CLOSE = "]]"

# 각주 삽입 직후 재정렬 전까지만 쓰이는 임시 번호
PROVISIONAL_NUMBER = 999

REFERENCE_RE = re.compile(r"<sup>(\d+)\)</sup>")
_SELECTION_ANY_RE = re.compile(r"\[\[([^\]]+)\]\]")

_ASCII_WORD = "A-Za-z0-9_"


def escape(word: str) -> str:
    return re.escape(word)


def selection_form(word: str) -> str:
    return f"{SELECTION_OPEN}{word}{SELECTION_CLOSE}"


def reference_tag(number: int) -> str:
    return f"<sup>{number})</sup>"


def reference_form(word: str, number: int) -> str:
    return f"{word}{reference_tag(number)}"


def boundary_pattern(word: str) -> re.Pattern:
    """경계 인식 패턴 (대소문자 무시)."""
    return re.compile(
        rf"(?<![{_ASCII_WORD}]){escape(word)}(?![{_ASCII_WORD}])",
        re.IGNORECASE,
    )


def selection_pattern(word: str) -> re.Pattern:
    """[[단어]] 패턴 (대소문자 무시). 괄호 자체가 경계 역할."""
    return re.compile(
        rf"{escape(SELECTION_OPEN)}({escape(word)}){escape(SELECTION_CLOSE)}",
        re.IGNORECASE,
    )


def reference_pattern(word: str) -> re.Pattern:
    """단어<sup>임의 번호)</sup> 패턴 (대소문자 무시). 앞쪽은 ASCII 경계 검사."""
    return re.compile(
        rf"(?<![{_ASCII_WORD}])({escape(word)})<sup>\d+\)</sup>",
        re.IGNORECASE,
    )


# ─────────────────────────────────────────────────────
# 문자열 단위 표시/해제
# ─────────────────────────────────────────────────────

def mark(document: str, word: str) -> str:
    """첫 번째 리터럴 출현만 [[단어]]로 감싼다. 없으면 원문 그대로 반환."""
    if not word:
        return document
    idx = document.find(word)
    if idx == -1:
        return document
    return wrap_at(document, idx, len(word))


def wrap_at(text: str, start: int, length: int) -> str:
    end = start + length
    return text[:start] + selection_form(text[start:end]) + text[end:]


def unmark(document: str, word: str) -> str:
    """
    모든 [[단어]]를 괄호 안의 원래 텍스트로 복원 (대소문자 무시).
    괄호 안 텍스트를 그대로 돌려놓으므로 mark → unmark 결과는 원문과 동일.
    """
    return selection_pattern(word).sub(lambda m: m.group(1), document)


def strip_selection_markers(document: str) -> str:
    """남아 있는 모든 [[...]] 선택 마커 제거 (내보내기용)."""
    return _SELECTION_ANY_RE.sub(r"\1", document)


# ─────────────────────────────────────────────────────
# 출현 위치 탐색
# ─────────────────────────────────────────────────────

def _overlaps(start: int, end: int, taken: list[tuple[int, int]]) -> bool:
    return any(start < t_end and t_start < end for t_start, t_end in taken)


def find_free_occurrence(
    text: str,
    word: str,
    taken: list[tuple[int, int]] | None = None,
    boundary: bool = False,
) -> int:
    """
    이미 표시된 구간(taken)과 겹치지 않는 첫 번째 출현 위치. 없으면 -1.

    boundary=False: 대소문자 구분 리터럴 매칭 (사용자 선택 텍스트 그대로)
    boundary=True : 경계 인식 + 대소문자 무시 (각주 삽입 fallback)
    """
    if not word:
        return -1
    taken = taken or []

    if boundary:
        for m in boundary_pattern(word).finditer(text):
            if not _overlaps(m.start(), m.end(), taken):
                return m.start()
        return -1

    idx = text.find(word)
    while idx != -1:
        if not _overlaps(idx, idx + len(word), taken):
            return idx
        idx = text.find(word, idx + 1)
    return -1


def split_references(text: str) -> list[tuple[str, int | None]]:
    """
    본문을 (텍스트, None) / (참조 번호 텍스트, 번호) 조각으로 분리.
    예: "고양이<sup>1)</sup>는" → [("고양이", None), ("1)", 1), ("는", None)]
    """
    parts: list[tuple[str, int | None]] = []
    last = 0
    for m in REFERENCE_RE.finditer(text):
        if m.start() > last:
            parts.append((text[last:m.start()], None))
        number = int(m.group(1))
        parts.append((f"{number})", number))
        last = m.end()
    if last < len(text):
        parts.append((text[last:], None))
    return parts
