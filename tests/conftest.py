import asyncio

import pytest

from footnote_app.errors import ProviderError
from footnote_app.models.annotation_model import WordDefinition, WordDefinitionResult
from footnote_app.services.session_service import AnnotationSession
from footnote_app.utils import session_store

SAMPLE_TEXT = "Cats are mammals. Dogs are mammals too. Birds can fly."


class FakeProvider:
    """A deterministic, async stub replacing the LLM-backed DefinitionService."""

    def __init__(self, definitions=None, fail_words=()):
        self.definitions = definitions or {}
        self.fail_words = set(fail_words)
        self.calls = []

    async def generate(self, context_text, word):
        self.calls.append((context_text, word))
        if word in self.fail_words:
            raise ProviderError(word, "응답 형식이 올바르지 않습니다")
        raw = self.definitions.get(word, [f"{word}의 첫째 뜻", f"{word}의 둘째 뜻"])
        return WordDefinition(word=word, definition=raw, example=f"{word} 예문입니다.")


class BlockingProvider(FakeProvider):
    """generate() waits until release is set — for late-response tests."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def generate(self, context_text, word):
        await self.release.wait()
        return await super().generate(context_text, word)


def make_result(word_id, word, lines, example="예문", selected=None):
    definition = WordDefinition(word=word, definition=lines, example=example)
    return WordDefinitionResult(
        word_id=word_id,
        word=word,
        definition=definition,
        selected_lines=selected if selected is not None else [True] * (len(lines) + 1),
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def session(provider):
    return AnnotationSession(SAMPLE_TEXT, provider=provider)


@pytest.fixture(autouse=True)
def _clear_session_store():
    session_store.clear_sessions()
    yield
    session_store.clear_sessions()
