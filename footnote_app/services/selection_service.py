"""
정의 항목 선택 상태 — 각주에 포함할 정의 줄/예시 토글.
selected_lines[i] (i < 정의 개수) = i번째 정의, selected_lines[-1] = 예시.
"""
from footnote_app.errors import ValidationError
from footnote_app.models.annotation_model import WordDefinition, WordDefinitionResult, WordState


def init_selection(definition: WordDefinition) -> list[bool]:
    """정의 수신 직후: 모든 정의 + 예시 선택."""
    return [True] * (len(definition.definition) + 1)


def toggle_line(result: WordDefinitionResult, index: int) -> None:
    if result.state == WordState.FOOTNOTED:
        raise ValidationError(f"'{result.word}'은(는) 이미 각주로 삽입되어 수정할 수 없습니다.")
    if result.definition is None:
        raise ValidationError(f"'{result.word}'의 정의가 아직 없습니다.")

    if not 0 <= index < len(result.selected_lines):
        raise IndexError(f"selected_lines 범위 초과: {index} (길이 {len(result.selected_lines)})")
    result.selected_lines[index] = not result.selected_lines[index]


def selected_definition_lines(result: WordDefinitionResult) -> list[str]:
    """선택된 정의 줄 목록 (예시 제외)."""
    if result.definition is None:
        return []
    return [
        line
        for line, on in zip(result.definition.definition, result.selected_lines)
        if on
    ]


def example_selected(result: WordDefinitionResult) -> bool:
    if result.definition is None:
        return False
    idx = len(result.definition.definition)
    return idx < len(result.selected_lines) and result.selected_lines[idx]
