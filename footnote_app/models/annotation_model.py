from enum import Enum
from pydantic import BaseModel, Field, computed_field, field_validator


class WordState(str, Enum):
    SELECTED  = "selected"    # 문서에 [[단어]]로 표시됨, 정의 없음
    DEFINING  = "defining"    # 정의 생성 중
    DEFINED   = "defined"     # 정의 수신 완료, 항목 선택 가능
    FOOTNOTED = "footnoted"   # 각주로 삽입됨 (선택 항목 변경 불가)
    ERROR     = "error"       # 정의 생성 실패 (재시도 가능)


class ClearPolicy(str, Enum):
    """전체 선택 해제 시 이미 각주로 삽입된 단어 처리 방식."""
    KEEP_FOOTNOTES   = "keep_footnotes"     # 각주는 그대로 유지
    REMOVE_FOOTNOTES = "remove_footnotes"   # 각주도 제거하고 원문 복원


class SelectedWord(BaseModel):
    """
    사용자가 선택한 단어 1개.
    position은 원본 문서 기준 선택 시점의 첫 번째(미사용) 출현 위치.
    """
    id: str
    word: str
    position: int


class WordDefinition(BaseModel):
    """LLM이 생성한 단어 정의. 수신 후 불변 — 재생성 시 통째로 교체."""
    word: str
    definition: list[str] = Field(min_length=1)
    example: str

    @field_validator("definition", mode="before")
    @classmethod
    def _promote_scalar(cls, v):
        # definition이 문자열 하나로 오는 경우 1개짜리 리스트로 변환
        if isinstance(v, str):
            return [v]
        return v


class WordDefinitionResult(BaseModel):
    """
    단어별 정의 생성 결과 + 각주 삽입 상태.
    selected_lines: 정의 항목별 선택 여부 + 마지막 1칸은 예시 선택 여부.
    """
    word_id: str
    word: str
    definition: WordDefinition | None = None
    selected_lines: list[bool] = Field(default_factory=list)
    loading: bool = False
    error: str | None = None
    footnote_id: str | None = None

    @computed_field
    @property
    def state(self) -> WordState:
        if self.footnote_id is not None:
            return WordState.FOOTNOTED
        if self.loading:
            return WordState.DEFINING
        if self.error is not None:
            return WordState.ERROR
        if self.definition is not None:
            return WordState.DEFINED
        return WordState.SELECTED


class Footnote(BaseModel):
    """
    삽입된 각주 1개.
    position은 현재 표시 번호일 뿐 — 삽입/삭제 후 재정렬 시 매번 다시 계산됨.
    offset은 원본 문서에서 각주가 붙은 단어의 시작 위치 (-1 = 위치 정보 없음).
    """
    id: str
    word: str
    body: str
    position: int
    offset: int = -1
    word_id: str | None = None


class SessionSnapshot(BaseModel):
    """API 응답용 세션 전체 상태."""
    session_id: str
    original: str
    document: str
    selected_words: list[SelectedWord]
    results: list[WordDefinitionResult]
    footnotes: list[Footnote]
