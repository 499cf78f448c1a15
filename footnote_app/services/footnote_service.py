"""
footnote_service.py — 각주 상태 관리 (★핵심★).

핵심 원칙:
  원본 문서는 절대 수정하지 않는다.
  선택 단어와 각주는 원본 오프셋에 고정된 레코드로만 관리하고,
  화면/내보내기용 문서는 render_document() 한 번으로 매번 새로 만든다.
  → 정규식으로 마커를 찾아 문자열을 고쳐 쓰는 방식의 누적 오류가 없음.

각주 번호는 항상 문서 내 위치(오프셋) 순서로 1..N 재계산.
삽입/삭제 후에는 반드시 renumber()가 호출된다.
"""
import logging
import uuid

from footnote_app.errors import NotFoundError, ValidationError
from footnote_app.models.annotation_model import (
    Footnote,
    SelectedWord,
    WordDefinitionResult,
    WordState,
)
from footnote_app.services.selection_service import example_selected, selected_definition_lines
from footnote_app.utils.marker_utils import (
    PROVISIONAL_NUMBER,
    find_free_occurrence,
    reference_form,
    reference_pattern,
    reference_tag,
    selection_form,
)

logger = logging.getLogger(__name__)

BULLET = "ㆍ"
EXAMPLE_LABEL = "예시"


def build_footnote_body(result: WordDefinitionResult) -> str:
    """
    각주 본문: 첫 줄은 단어, 이후 선택된 정의 한 줄씩 + (선택 시) 예시.
    예:
      고양이
      ㆍ식육목 고양잇과의 포유류
      ㆍ예시: 고양이가 창가에서 잔다.
    """
    lines = selected_definition_lines(result)
    if example_selected(result):
        lines.append(f"{EXAMPLE_LABEL}: {result.definition.example}")
    if not lines:
        raise ValidationError(f"'{result.word}' 각주에 포함할 항목을 하나 이상 선택하세요.")
    formatted = "\n".join(f"{BULLET}{line}" for line in lines)
    return f"{result.word}\n{formatted}"


class FootnoteRegistry:
    """원본 문서에 고정된 각주 목록."""

    def __init__(self, original: str) -> None:
        self.original = original
        self.footnotes: list[Footnote] = []

    # ─────────────────────────────────────────────────
    # 조회
    # ─────────────────────────────────────────────────

    def get(self, footnote_id: str) -> Footnote | None:
        return next((fn for fn in self.footnotes if fn.id == footnote_id), None)

    def spans(self) -> list[tuple[int, int]]:
        return [(fn.offset, fn.offset + len(fn.word)) for fn in self.footnotes]

    def is_anchored(self, offset: int, word: str) -> bool:
        """offset 위치에 해당 단어가 실제로 있는지 (대소문자 무시)."""
        if offset < 0 or not word:
            return False
        return self.original[offset: offset + len(word)].lower() == word.lower()

    # ─────────────────────────────────────────────────
    # 삽입 / 삭제
    # ─────────────────────────────────────────────────

    def commit(
        self,
        result: WordDefinitionResult,
        selected: SelectedWord | None,
        taken: list[tuple[int, int]],
    ) -> Footnote | None:
        """
        정의가 선택된 단어를 각주로 삽입.
        위치 우선순위: 선택 시 기록된 [[단어]] 위치 → 경계 매칭되는 첫 번째 빈 출현.
        위치를 찾지 못하면 아무것도 바꾸지 않고 None 반환.
        taken: 다른 선택 단어/각주가 이미 차지한 구간.
        """
        if result.state != WordState.DEFINED:
            raise ValidationError(
                f"'{result.word}'은(는) 각주로 삽입할 수 없는 상태입니다: {result.state.value}"
            )
        body = build_footnote_body(result)

        try:
            offset = self._locate_anchor(result.word, selected, taken)
        except NotFoundError as e:
            logger.warning("각주 삽입 건너뜀: %s", e)
            return None

        footnote = Footnote(
            id=f"footnote-{uuid.uuid4()}",
            word=result.word,
            body=body,
            position=PROVISIONAL_NUMBER,
            offset=offset,
            word_id=result.word_id,
        )
        self.footnotes = self.footnotes + [footnote]
        self.renumber()
        result.footnote_id = footnote.id

        logger.info("각주 삽입: '%s' (offset=%d, 총 %d개)", result.word, offset, len(self.footnotes))
        return self.get(footnote.id)

    def _locate_anchor(
        self,
        word: str,
        selected: SelectedWord | None,
        taken: list[tuple[int, int]],
    ) -> int:
        if selected is not None and self.is_anchored(selected.position, word):
            return selected.position

        offset = find_free_occurrence(self.original, word, taken, boundary=True)
        if offset == -1:
            raise NotFoundError(f"문서에서 '{word}' 위치를 찾을 수 없습니다.")
        return offset

    def remove(self, result: WordDefinitionResult) -> Footnote | None:
        """
        단어의 각주 제거. 단어는 다시 [[단어]] 선택 상태로 돌아간다.
        result 자체는 삭제하지 않고 footnote_id만 해제.
        """
        if result.footnote_id is None:
            logger.warning("각주 제거 건너뜀: '%s'은(는) 각주 상태가 아님", result.word)
            return None
        removed = self.remove_footnote(result.footnote_id)
        if removed is not None:
            result.footnote_id = None
        return removed

    def remove_footnote(self, footnote_id: str) -> Footnote | None:
        footnote = self.get(footnote_id)
        if footnote is None:
            logger.warning("각주 제거 건너뜀: footnote_id=%s 없음", footnote_id)
            return None

        self.footnotes = [fn for fn in self.footnotes if fn.id != footnote_id]
        self.renumber()
        logger.info("각주 제거: '%s' (남은 각주 %d개)", footnote.word, len(self.footnotes))
        return footnote

    def clear(self) -> None:
        self.footnotes = []

    # ─────────────────────────────────────────────────
    # 번호 재정렬
    # ─────────────────────────────────────────────────

    def renumber(self) -> list[Footnote]:
        """
        문서 위치 순서대로 1..N 번호 재부여 (동일 위치는 기존 순서 유지).
        원본에서 위치를 확인할 수 없는 각주는 목록에서 제외된다.
        이미 정렬된 상태면 아무것도 바뀌지 않음.
        """
        located: list[Footnote] = []
        for fn in self.footnotes:
            if self.is_anchored(fn.offset, fn.word):
                located.append(fn)
            else:
                logger.warning(
                    "[orphaned-footnote] 참조 위치를 찾을 수 없어 번호 재정렬에서 제외: id=%s, word=%r, offset=%d",
                    fn.id, fn.word, fn.offset,
                )

        located.sort(key=lambda fn: fn.offset)
        self.footnotes = [
            fn if fn.position == i else fn.model_copy(update={"position": i})
            for i, fn in enumerate(located, 1)
        ]
        return self.footnotes


# ─────────────────────────────────────────────────────
# 문서 렌더링
# ─────────────────────────────────────────────────────

def render_document(
    original: str,
    selections: list[tuple[int, str]],
    footnotes: list[Footnote],
    include_selections: bool = True,
) -> str:
    """
    원본 + 레코드 → 주석 문서.
    selections: [(offset, word), ...] — [[단어]]로 표시할 선택 단어
    footnotes : 단어<sup>N)</sup>로 표시할 각주
    include_selections=False: 내보내기용 (선택 마커 없이 각주 번호만)
    원문 텍스트는 그대로 유지하고 마커만 덧붙인다.
    """
    edits: list[tuple[int, int, int | None]] = []
    if include_selections:
        edits.extend((offset, len(word), None) for offset, word in selections)
    edits.extend((fn.offset, len(fn.word), fn.position) for fn in footnotes)
    edits.sort(key=lambda e: e[0])

    out: list[str] = []
    cursor = 0
    for offset, length, number in edits:
        if offset < cursor or offset < 0:
            logger.warning("렌더링: 겹치는 표시 구간 무시 (offset=%d, length=%d)", offset, length)
            continue
        text = original[offset: offset + length]
        out.append(original[cursor:offset])
        out.append(selection_form(text) if number is None else reference_form(text, number))
        cursor = offset + length
    out.append(original[cursor:])
    return "".join(out)


def renumber_document(document: str, footnotes: list[Footnote]) -> tuple[str, list[Footnote]]:
    """
    문자열 기반 번호 재정렬 — 클라이언트가 가진 주석 문서용.
    각 각주의 '단어<sup>N)</sup>' 위치를 찾아 위치 순으로 정렬 후 번호를 다시 쓴다.
    같은 단어의 각주가 여러 개면 앞에서부터 아직 배정되지 않은 참조를 사용.
    참조를 찾지 못한 각주는 결과 목록에서 제외.
    """
    claimed: list[tuple[int, int]] = []
    found: list[tuple[int, int, str, Footnote]] = []   # (start, end, 단어 원문, footnote)

    for fn in footnotes:
        match = next(
            (
                m for m in reference_pattern(fn.word).finditer(document)
                if not any(m.start() < c_end and c_start < m.end() for c_start, c_end in claimed)
            ),
            None,
        )
        if match is None:
            logger.warning(
                "[orphaned-footnote] 문서에서 참조를 찾을 수 없어 제외: id=%s, word=%r", fn.id, fn.word,
            )
            continue
        claimed.append((match.start(), match.end()))
        found.append((match.start(), match.end(), match.group(1), fn))

    found.sort(key=lambda f: f[0])

    out: list[str] = []
    cursor = 0
    renumbered: list[Footnote] = []
    for i, (start, end, word_text, fn) in enumerate(found, 1):
        out.append(document[cursor:start])
        out.append(word_text + reference_tag(i))
        cursor = end
        renumbered.append(fn.model_copy(update={"position": i}))
    out.append(document[cursor:])

    return "".join(out), renumbered
