"""
session_service.py — 문서 1개에 대한 주석 작업 세션.

세션이 단독으로 소유하는 상태:
  original       — 업로드/붙여넣은 원문 (불변, 위치 탐색·문맥 추출 기준)
  selected_words — 선택 단어 목록
  results        — 단어별 정의 생성 결과
  registry       — 각주 목록
  document       — 위 상태로부터 렌더링한 주석 문서 (변경 연산마다 1회 재계산)

구조 변경 연산(선택/해제/각주 삽입·제거/재정렬)은 모두 동기 + 락 안에서 실행되어
중간 상태가 외부에 보이지 않는다. 정의 생성만 비동기로 병렬 실행되며,
각 작업은 자기 단어의 결과만 갱신한다.
"""
import asyncio
import logging
import threading
import time
import uuid

from footnote_app.config import settings
from footnote_app.errors import NotFoundError, ProviderError, ValidationError
from footnote_app.models.annotation_model import (
    ClearPolicy,
    Footnote,
    SelectedWord,
    SessionSnapshot,
    WordDefinitionResult,
    WordState,
)
from footnote_app.services.context_service import extract_context
from footnote_app.services.footnote_service import FootnoteRegistry, render_document
from footnote_app.services import selection_service
from footnote_app.utils.marker_utils import find_free_occurrence

logger = logging.getLogger(__name__)

GENERATION_FAILED_MSG = "정의 생성에 실패했습니다."


class AnnotationSession:

    def __init__(self, original: str, provider=None, session_id: str | None = None) -> None:
        """
        provider: async generate(context_text, word) -> WordDefinition 을 가진 객체.
                  None이면 첫 생성 요청 시 DefinitionService()를 만든다.
        """
        self.session_id = session_id or str(uuid.uuid4())
        self.original = original
        self.provider = provider
        self.selected_words: list[SelectedWord] = []
        self.results: list[WordDefinitionResult] = []
        self.registry = FootnoteRegistry(original)
        self.created_at = time.time()
        self.updated_at = self.created_at
        self._lock = threading.RLock()
        self._document = original

    # ─────────────────────────────────────────────────
    # 조회
    # ─────────────────────────────────────────────────

    @property
    def document(self) -> str:
        return self._document

    @property
    def footnotes(self) -> list[Footnote]:
        return list(self.registry.footnotes)

    def export_text(self) -> str:
        """내보내기용 문서: 선택 마커 없이 각주 번호만 남긴다."""
        with self._lock:
            return render_document(self.original, [], self.registry.footnotes, include_selections=False)

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                session_id=self.session_id,
                original=self.original,
                document=self._document,
                selected_words=[w.model_copy() for w in self.selected_words],
                results=[r.model_copy(deep=True) for r in self.results],
                footnotes=[fn.model_copy() for fn in self.registry.footnotes],
            )

    def find_word(self, word_id: str) -> SelectedWord | None:
        return next((w for w in self.selected_words if w.id == word_id), None)

    def find_result(self, word_id: str) -> WordDefinitionResult | None:
        return next((r for r in self.results if r.word_id == word_id), None)

    def _require_word(self, word_id: str) -> SelectedWord:
        word = self.find_word(word_id)
        if word is None:
            raise NotFoundError(f"선택된 단어를 찾을 수 없습니다: {word_id}")
        return word

    def _is_footnoted(self, word_id: str) -> bool:
        result = self.find_result(word_id)
        return result is not None and result.footnote_id is not None

    def _taken(self, exclude_word_id: str | None = None) -> list[tuple[int, int]]:
        """이미 [[단어]] 또는 각주로 표시된 원문 구간."""
        spans = [
            (w.position, w.position + len(w.word))
            for w in self.selected_words
            if w.id != exclude_word_id and not self._is_footnoted(w.id)
        ]
        spans.extend(
            (fn.offset, fn.offset + len(fn.word))
            for fn in self.registry.footnotes
            if exclude_word_id is None or fn.word_id != exclude_word_id
        )
        return spans

    # ─────────────────────────────────────────────────
    # 렌더링 (모든 구조 변경의 마지막 단계)
    # ─────────────────────────────────────────────────

    def _render(self) -> None:
        live_ids = {fn.id for fn in self.registry.footnotes}
        for r in self.results:
            if r.footnote_id is not None and r.footnote_id not in live_ids:
                logger.warning("'%s'의 각주(%s)가 목록에 없어 연결 해제", r.word, r.footnote_id)
                r.footnote_id = None

        selections = [
            (w.position, w.word)
            for w in self.selected_words
            if not self._is_footnoted(w.id)
        ]
        self._document = render_document(self.original, selections, self.registry.footnotes)
        self.updated_at = time.time()

    # ─────────────────────────────────────────────────
    # 단어 선택 / 해제
    # ─────────────────────────────────────────────────

    def select_word(self, raw_selection: str) -> SelectedWord:
        text = (raw_selection or "").strip()
        if not text:
            raise ValidationError("선택된 텍스트가 없습니다.")
        if len(text) > settings.MAX_SELECTION_LENGTH:
            raise ValidationError(
                f"{settings.MAX_SELECTION_LENGTH}자를 초과하는 텍스트는 선택할 수 없습니다. ({len(text)}자)"
            )

        with self._lock:
            if any(w.word == text for w in self.selected_words):
                raise ValidationError(f"이미 선택된 단어입니다: {text}")

            offset = find_free_occurrence(self.original, text, self._taken())
            if offset == -1:
                raise ValidationError(f"문서에서 선택 가능한 '{text}'을(를) 찾을 수 없습니다.")

            word = SelectedWord(id=f"word-{uuid.uuid4()}", word=text, position=offset)
            self.selected_words = self.selected_words + [word]
            self._render()

        logger.info("[%s] 단어 선택: '%s' (offset=%d)", self.session_id, text, offset)
        return word

    def deselect_word(self, word_id: str) -> None:
        """선택 해제. 각주로 삽입된 단어면 각주도 함께 제거."""
        with self._lock:
            word = self._require_word(word_id)
            result = self.find_result(word_id)
            if result is not None and result.footnote_id is not None:
                self.registry.remove(result)

            self.selected_words = [w for w in self.selected_words if w.id != word_id]
            self.results = [r for r in self.results if r.word_id != word_id]
            self._render()

        logger.info("[%s] 단어 선택 해제: '%s'", self.session_id, word.word)

    def clear_all(self, policy: ClearPolicy | str | None = None) -> None:
        """
        전체 선택 해제.
        KEEP_FOOTNOTES  : 각주는 문서에 그대로 남고 단어 연결만 끊김
        REMOVE_FOOTNOTES: 각주까지 모두 제거 → 원문 복원
        """
        policy = ClearPolicy(policy or settings.CLEAR_ALL_POLICY)
        with self._lock:
            if policy == ClearPolicy.REMOVE_FOOTNOTES:
                self.registry.clear()
            else:
                self.registry.footnotes = [
                    fn.model_copy(update={"word_id": None}) for fn in self.registry.footnotes
                ]
            self.selected_words = []
            self.results = []
            self._render()

        logger.info("[%s] 전체 선택 해제 (policy=%s)", self.session_id, policy.value)

    # ─────────────────────────────────────────────────
    # 정의 생성
    # ─────────────────────────────────────────────────

    def _provider(self):
        if self.provider is None:
            from footnote_app.services.definition_service import DefinitionService
            self.provider = DefinitionService()
        return self.provider

    def _begin_generation(self, word: SelectedWord) -> WordDefinitionResult:
        result = self.find_result(word.id)
        if result is None:
            result = WordDefinitionResult(word_id=word.id, word=word.word, loading=True)
            self.results = self.results + [result]
        elif result.state == WordState.FOOTNOTED:
            raise ValidationError(f"'{word.word}'은(는) 각주로 삽입되어 있어 정의를 다시 생성할 수 없습니다.")
        else:
            result.loading = True
            result.error = None
        return result

    def _live_result(self, word_id: str) -> WordDefinitionResult | None:
        """생성 중에 선택 해제된 단어의 결과는 되살리지 않는다."""
        if self.find_word(word_id) is None:
            return None
        return self.find_result(word_id)

    def _fail_generation(self, word_id: str, message: str) -> None:
        with self._lock:
            result = self._live_result(word_id)
            if result is None:
                return
            result.loading = False
            result.error = message

    async def _run_generation(self, word: SelectedWord) -> None:
        # 기존 각주 마커가 문장 분리를 방해하지 않도록 항상 원문 기준
        context = extract_context(self.original, word.word, word.position)
        try:
            definition = await self._provider().generate(context, word.word)
        except ProviderError as e:
            logger.warning("[%s] %s", self.session_id, e)
            self._fail_generation(word.id, f"{GENERATION_FAILED_MSG} ({e.message})")
            return

        with self._lock:
            result = self._live_result(word.id)
            if result is None:
                logger.info("[%s] 선택 해제된 단어 '%s'의 늦은 정의 응답 폐기", self.session_id, word.word)
                return
            result.definition = definition
            result.selected_lines = selection_service.init_selection(definition)
            result.loading = False
            result.error = None

    async def generate_one(self, word_id: str) -> WordDefinitionResult | None:
        """단어 1개 정의 생성 (실패 후 재시도도 동일 경로)."""
        with self._lock:
            word = self._require_word(word_id)
            self._begin_generation(word)

        try:
            await self._run_generation(word)
        except Exception:
            self._fail_generation(word_id, GENERATION_FAILED_MSG)
            raise
        return self.find_result(word_id)

    async def generate_all(self) -> list[WordDefinitionResult]:
        """
        각주 상태가 아닌 모든 선택 단어의 정의를 병렬 생성.
        한 단어의 실패는 다른 단어에 영향 없음.
        """
        with self._lock:
            targets = [w for w in self.selected_words if not self._is_footnoted(w.id)]
            for word in targets:
                self._begin_generation(word)

        if not targets:
            return []

        semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_GENERATIONS)

        async def run_one(word: SelectedWord) -> None:
            async with semaphore:
                await self._run_generation(word)

        results_raw = await asyncio.gather(*(run_one(w) for w in targets), return_exceptions=True)

        # 예상치 못한 예외도 해당 단어 오류로만 기록하고 계속 진행
        for word, r in zip(targets, results_raw):
            if isinstance(r, Exception):
                logger.error("[%s] '%s' 정의 생성 중 예외: %s", self.session_id, word.word, r)
                self._fail_generation(word.id, GENERATION_FAILED_MSG)

        done = sum(1 for w in targets if (r := self.find_result(w.id)) and r.state == WordState.DEFINED)
        logger.info("[%s] 정의 일괄 생성 완료: %d/%d", self.session_id, done, len(targets))
        return [r for w in targets if (r := self.find_result(w.id)) is not None]

    # ─────────────────────────────────────────────────
    # 정의 항목 선택 / 각주
    # ─────────────────────────────────────────────────

    def toggle_line(self, word_id: str, index: int) -> WordDefinitionResult:
        with self._lock:
            result = self.find_result(word_id)
            if result is None:
                raise NotFoundError(f"정의 결과를 찾을 수 없습니다: {word_id}")
            selection_service.toggle_line(result, index)
            self.updated_at = time.time()
            return result

    def commit_footnote(self, word_id: str) -> Footnote | None:
        with self._lock:
            result = self.find_result(word_id)
            if result is None:
                logger.warning("[%s] 각주 삽입 건너뜀: word_id=%s 정의 결과 없음", self.session_id, word_id)
                return None
            footnote = self.registry.commit(result, self.find_word(word_id), self._taken(exclude_word_id=word_id))
            self._render()
            return footnote

    def remove_footnote(self, word_id: str) -> Footnote | None:
        with self._lock:
            result = self.find_result(word_id)
            if result is None:
                logger.warning("[%s] 각주 제거 건너뜀: word_id=%s 정의 결과 없음", self.session_id, word_id)
                return None
            removed = self.registry.remove(result)
            self._render()
            return removed

    def remove_footnote_by_id(self, footnote_id: str) -> Footnote | None:
        """선택 목록과 연결이 끊긴 각주(전체 해제 후 남은 각주) 제거용."""
        with self._lock:
            removed = self.registry.remove_footnote(footnote_id)
            self._render()
            return removed

    def renumber(self) -> list[Footnote]:
        """각주 번호 수동 재정렬. 이미 정렬되어 있으면 변화 없음."""
        with self._lock:
            self.registry.renumber()
            self._render()
            return self.footnotes

    def state_of(self, word_id: str) -> WordState | None:
        if self.find_word(word_id) is None:
            return None
        result = self.find_result(word_id)
        return WordState.SELECTED if result is None else result.state
