import asyncio

import pytest

from footnote_app.config import settings
from footnote_app.errors import NotFoundError, ValidationError
from footnote_app.models.annotation_model import ClearPolicy, WordDefinition, WordState
from footnote_app.services.session_service import AnnotationSession
from footnote_app.utils.marker_utils import REFERENCE_RE

from tests.conftest import SAMPLE_TEXT, BlockingProvider, FakeProvider


def _numbers(document):
    return [int(n) for n in REFERENCE_RE.findall(document)]


def _assert_consistent(session):
    footnotes = session.footnotes
    assert _numbers(session.document) == list(range(1, len(footnotes) + 1))
    for word in session.selected_words:
        if session.state_of(word.id) != WordState.FOOTNOTED:
            assert session.document.count(f"[[{word.word}]]") == 1
    for result in session.results:
        if result.definition is not None:
            assert len(result.selected_lines) == len(result.definition.definition) + 1


def _define_and_commit(session, text):
    word = session.select_word(text)
    asyncio.run(session.generate_one(word.id))
    session.commit_footnote(word.id)
    return word


# ─── selection ───────────────────────────────────────────────────

def test_select_marks_first_occurrence_only(session):
    word = session.select_word("mammals")

    assert word.position == SAMPLE_TEXT.index("mammals")
    assert session.document == "Cats are [[mammals]]. Dogs are mammals too. Birds can fly."
    assert session.state_of(word.id) == WordState.SELECTED


def test_select_then_deselect_restores_original(session):
    word = session.select_word("  mammals ")
    session.deselect_word(word.id)

    assert session.document == SAMPLE_TEXT
    assert session.selected_words == []


def test_select_rejects_duplicate_and_long_and_missing(session):
    session.select_word("Dogs")
    with pytest.raises(ValidationError):
        session.select_word("Dogs")
    with pytest.raises(ValidationError):
        session.select_word("x" * (settings.MAX_SELECTION_LENGTH + 1))
    with pytest.raises(ValidationError):
        session.select_word("zebra")
    with pytest.raises(ValidationError):
        session.select_word("   ")
    assert [w.word for w in session.selected_words] == ["Dogs"]


def test_select_overlapping_text_uses_next_free_occurrence(session):
    session.select_word("mammals")
    second = session.select_word("mammal")

    assert second.position == SAMPLE_TEXT.index("mammals too")
    assert session.document == "Cats are [[mammals]]. Dogs are [[mammal]]s too. Birds can fly."


def test_deselect_unknown_word_raises_not_found(session):
    with pytest.raises(NotFoundError):
        session.deselect_word("word-missing")


# ─── generation ──────────────────────────────────────────────────

def test_generate_uses_original_context_with_single_marker(session, provider):
    word = session.select_word("mammals")
    result = asyncio.run(session.generate_one(word.id))

    context, asked = provider.calls[0]
    assert asked == "mammals"
    assert context == "Cats are [[mammals]]. Dogs are mammals too. Birds can fly"
    assert result.state == WordState.DEFINED
    assert result.selected_lines == [True, True, True]


def test_scalar_definition_is_promoted():
    provider = FakeProvider()

    async def generate(context_text, word):
        return WordDefinition.model_validate({"word": "x", "definition": "single string", "example": "e"})

    provider.generate = generate
    session = AnnotationSession("x marks the spot.", provider=provider)
    word = session.select_word("x")
    result = asyncio.run(session.generate_one(word.id))

    assert result.definition.definition == ["single string"]
    assert result.selected_lines == [True, True]


def test_generate_all_isolates_failures():
    provider = FakeProvider(fail_words={"Dogs"})
    session = AnnotationSession(SAMPLE_TEXT, provider=provider)
    words = [session.select_word(t) for t in ("Cats", "Dogs", "Birds")]

    asyncio.run(session.generate_all())

    states = [session.state_of(w.id) for w in words]
    assert states == [WordState.DEFINED, WordState.ERROR, WordState.DEFINED]
    assert session.find_result(words[0].id).definition.word == "Cats"
    assert session.find_result(words[2].id).definition.word == "Birds"
    assert "정의 생성에 실패했습니다" in session.find_result(words[1].id).error

    # 재시도
    provider.fail_words.clear()
    asyncio.run(session.generate_one(words[1].id))
    assert session.state_of(words[1].id) == WordState.DEFINED
    assert session.find_result(words[1].id).error is None


def test_generate_all_skips_footnoted_words(session, provider):
    committed = _define_and_commit(session, "Cats")
    other = session.select_word("Birds")
    calls_before = len(provider.calls)

    asyncio.run(session.generate_all())

    assert [w for _, w in provider.calls[calls_before:]] == ["Birds"]
    assert session.state_of(committed.id) == WordState.FOOTNOTED
    assert session.state_of(other.id) == WordState.DEFINED


def test_regenerating_footnoted_word_is_rejected(session):
    word = _define_and_commit(session, "Cats")
    with pytest.raises(ValidationError):
        asyncio.run(session.generate_one(word.id))


def test_late_result_for_deselected_word_is_discarded():
    provider = BlockingProvider()
    session = AnnotationSession(SAMPLE_TEXT, provider=provider)
    word = session.select_word("Dogs")

    async def scenario():
        task = asyncio.create_task(session.generate_one(word.id))
        for _ in range(3):
            await asyncio.sleep(0)
        assert session.state_of(word.id) == WordState.DEFINING
        session.deselect_word(word.id)
        provider.release.set()
        return await task

    assert asyncio.run(scenario()) is None
    assert session.results == []
    assert session.document == SAMPLE_TEXT


# ─── footnotes ───────────────────────────────────────────────────

def test_commit_then_remove_restores_marked_state(session):
    word = session.select_word("Dogs")
    asyncio.run(session.generate_one(word.id))
    marked = session.document

    footnote = session.commit_footnote(word.id)
    assert session.document == "Cats are mammals. Dogs<sup>1)</sup> are mammals too. Birds can fly."
    assert footnote.body.startswith("Dogs\nㆍ")
    assert session.state_of(word.id) == WordState.FOOTNOTED
    assert len(session.footnotes) == 1

    session.remove_footnote(word.id)
    assert session.document == marked
    assert session.footnotes == []
    assert session.state_of(word.id) == WordState.DEFINED
    _assert_consistent(session)


def test_recommit_keeps_document_order_numbering(session):
    a = _define_and_commit(session, "Cats")
    b = _define_and_commit(session, "Birds")

    session.remove_footnote(b.id)
    assert [(fn.word, fn.position) for fn in session.footnotes] == [("Cats", 1)]

    session.commit_footnote(b.id)
    assert [(fn.word, fn.position) for fn in session.footnotes] == [("Cats", 1), ("Birds", 2)]
    assert session.find_result(a.id).footnote_id == session.footnotes[0].id
    _assert_consistent(session)


def test_commit_out_of_order_renumbers_by_position(session):
    _define_and_commit(session, "Birds")
    _define_and_commit(session, "Dogs")
    _define_and_commit(session, "Cats")

    assert [fn.word for fn in session.footnotes] == ["Cats", "Dogs", "Birds"]
    assert session.document == (
        "Cats<sup>1)</sup> are mammals. Dogs<sup>2)</sup> are mammals too. Birds<sup>3)</sup> can fly."
    )
    _assert_consistent(session)


def test_commit_with_no_selected_lines_is_rejected(session):
    word = session.select_word("Dogs")
    asyncio.run(session.generate_one(word.id))
    for i in range(3):
        session.toggle_line(word.id, i)

    with pytest.raises(ValidationError):
        session.commit_footnote(word.id)
    assert session.footnotes == []
    assert "[[Dogs]]" in session.document


def test_commit_and_remove_unknown_word_are_silent(session):
    assert session.commit_footnote("word-missing") is None
    assert session.remove_footnote("word-missing") is None
    assert session.document == SAMPLE_TEXT


def test_toggle_after_commit_is_rejected(session):
    word = _define_and_commit(session, "Cats")
    with pytest.raises(ValidationError):
        session.toggle_line(word.id, 0)


def test_footnote_body_respects_toggles(session):
    word = session.select_word("Dogs")
    asyncio.run(session.generate_one(word.id))
    session.toggle_line(word.id, 0)

    footnote = session.commit_footnote(word.id)

    assert footnote.body == "Dogs\nㆍDogs의 둘째 뜻\nㆍ예시: Dogs 예문입니다."


def test_deselect_footnoted_word_removes_footnote(session):
    a = _define_and_commit(session, "Cats")
    _define_and_commit(session, "Dogs")

    session.deselect_word(a.id)

    assert [(fn.word, fn.position) for fn in session.footnotes] == [("Dogs", 1)]
    assert session.document == "Cats are mammals. Dogs<sup>1)</sup> are mammals too. Birds can fly."


def test_manual_renumber_is_idempotent(session):
    _define_and_commit(session, "Dogs")
    _define_and_commit(session, "Cats")
    before = session.document

    session.renumber()

    assert session.document == before
    _assert_consistent(session)


# ─── clear all ───────────────────────────────────────────────────

def test_clear_all_keeps_footnotes_by_default(session):
    _define_and_commit(session, "Cats")
    session.select_word("Birds")

    session.clear_all()

    assert session.selected_words == []
    assert session.results == []
    assert session.document == "Cats<sup>1)</sup> are mammals. Dogs are mammals too. Birds can fly."
    assert [fn.word_id for fn in session.footnotes] == [None]


def test_clear_all_can_remove_footnotes(session):
    _define_and_commit(session, "Cats")
    session.select_word("Birds")

    session.clear_all(ClearPolicy.REMOVE_FOOTNOTES)

    assert session.document == SAMPLE_TEXT
    assert session.footnotes == []


def test_orphaned_footnote_can_be_removed_by_id(session):
    _define_and_commit(session, "Cats")
    session.clear_all(ClearPolicy.KEEP_FOOTNOTES)

    session.remove_footnote_by_id(session.footnotes[0].id)

    assert session.document == SAMPLE_TEXT


def test_export_text_has_no_selection_markers(session):
    _define_and_commit(session, "Dogs")
    session.select_word("Birds")

    assert session.export_text() == "Cats are mammals. Dogs<sup>1)</sup> are mammals too. Birds can fly."
    assert "[[Birds]]" in session.document
