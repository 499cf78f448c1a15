"""
definition_service.py — 문맥 기반 단어 정의 생성 (LLM).

입력: [[단어]]가 정확히 한 번 표시된 문맥 + 단어
출력: WordDefinition {word, definition: [...], example}
어떤 실패든 ProviderError 하나로 정리 — 해당 단어에만 영향.
"""
import logging

import requests
from pydantic import ValidationError as PydanticValidationError

from footnote_app.errors import ProviderError
from footnote_app.models.annotation_model import WordDefinition
from footnote_app.utils.llm_client import BaseLLMClient, get_llm_client

logger = logging.getLogger(__name__)

_SYSTEM = (
    "당신은 한국어 단어의 정의를 생성하는 전문가입니다. "
    "주어진 맥락에서 단어의 의미를 정확하고 간결하게 설명해주세요. "
    "반드시 JSON 형식으로만 응답하세요."
)

_USER = """\
###지시사항
사용자가 지정한 단어의 뜻과 사용 예시를 작성하십시오.
문맥을 참고해 단어의 의미를 개조식으로 설명하고, 쉬운 한 문장으로 예시를 작성하십시오.
객관적·사실적 서술만 사용하며, 불필요한 감탄사·비속어·주관적 표현을 배제하십시오.

###생성규칙
1. **단어 위치**
- 사용자가 지정한 단어는 맥락에서 **대괄호 2개에 쌓여 있습니다. ( "[[단어]]" )**
2. **문맥 기반 의미 도출**
- 맥락 전체를 검토하고 사용자가 지정한 위치의 단어가 어떤 뜻·기능으로 쓰였는지 판단하십시오.
- 중의적일 경우 해당 문맥에 가장 부합하는 의미만 작성하십시오.
- 불필요한 내용은 기입하지 마십시오.
3. **개조식 정의 작성**
- 조사·접속사·형용사·수식어 최소화 → 압축된 정보 전달.
4. **예시문 작성**
- 쉬운 어휘로 작성한 한 문장.
- 단어를 실제 사용한 자연스러운 예문.
5. **객관성 유지**
- 평가·견해·감탄 배제, 사실 전달에 집중.
- 통계·연도·출처 삽입은 해당 정보가 문맥 이해에 반드시 필요할 때만.

###출력형식(JSON)
{{
"word": "<단어>",
"definition": ["<의미1>", ...],
"example": "<단어를 사용한 예시>"
}}

###맥락
{context}
###단어
{word}"""


def build_messages(context_text: str, word: str) -> list[dict]:
    return [
        {"role": "system", "content": _SYSTEM},
        {"role": "user",   "content": _USER.format(context=context_text, word=word)},
    ]


def parse_definition(raw, word: str) -> WordDefinition:
    """
    LLM 응답(dict) → WordDefinition.
    word/definition/example 중 하나라도 비어 있으면 실패.
    definition이 문자열이면 1개짜리 리스트로 승격.
    """
    if not isinstance(raw, dict):
        raise ProviderError(word, f"응답이 객체가 아닌 {type(raw).__name__}입니다.")

    missing = [k for k in ("word", "definition", "example") if not raw.get(k)]
    if missing:
        raise ProviderError(word, f"응답 형식이 올바르지 않습니다 (누락: {', '.join(missing)})")

    definition = raw["definition"]
    if isinstance(definition, list):
        definition = [str(line).strip() for line in definition if str(line).strip()]
        if not definition:
            raise ProviderError(word, "정의 항목이 비어 있습니다.")

    try:
        return WordDefinition(
            word=str(raw["word"]),
            definition=definition,
            example=str(raw["example"]),
        )
    except PydanticValidationError as e:
        raise ProviderError(word, f"응답 검증 실패: {e}") from e


class DefinitionService:
    """LLM 기반 정의 생성기. 세션과 API 라우트가 공유."""

    def __init__(self, llm_client: BaseLLMClient | None = None) -> None:
        self.llm_client = llm_client or get_llm_client()

    async def generate(self, context_text: str, word: str) -> WordDefinition:
        if not context_text or not word:
            raise ProviderError(word, "텍스트와 단어가 필요합니다.")

        try:
            raw = await self.llm_client.chat_json_async(build_messages(context_text, word))
        except (requests.exceptions.RequestException, ValueError, KeyError, IndexError) as e:
            logger.error("'%s' 정의 생성 LLM 호출 실패: %s", word, e)
            raise ProviderError(word, str(e)) from e

        definition = parse_definition(raw, word)
        logger.debug("'%s' 정의 생성 완료: %d개 항목", word, len(definition.definition))
        return definition
