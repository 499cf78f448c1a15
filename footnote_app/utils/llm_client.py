"""
LLM 클라이언트 팩토리 — OpenAI 호환 Chat Completions REST API 추상화.
서비스 레이어는 get_llm_client().chat() / .chat_json() 만 사용.
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod

import requests

from footnote_app.config import settings

logger = logging.getLogger(__name__)

# 재시도 대상 HTTP 상태코드 (일시적 서버 오류)
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


# ─────────────────────────────────────────────────────────
# 추상 기반 클라이언트
# ─────────────────────────────────────────────────────────

class BaseLLMClient(ABC):

    @abstractmethod
    def chat(
        self,
        messages: list[dict],
        temperature: float | None = None,
        response_format: dict | None = None,
    ) -> str:
        """messages: [{"role": "user"|"assistant"|"system", "content": "..."}]
        response_format: {"type": "json_object"} 등 OpenAI 호환 포맷 지정 (선택)
        """
        ...

    def chat_json(self, messages: list[dict]) -> dict | list:
        """
        JSON 응답 보장 버전.
        마크다운 코드블록 자동 제거 후 파싱 (안전망).
        파싱 실패 시 ValueError 발생.
        """
        raw = self.chat(messages, response_format={"type": "json_object"})
        if not raw or not raw.strip():
            raise ValueError("LLM 응답이 비어있습니다.")
        cleaned = _strip_code_fence(raw)

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error("LLM JSON 파싱 실패\n응답: %r", raw[:500])
            raise ValueError(f"LLM이 유효한 JSON을 반환하지 않았습니다: {e}") from e

    async def chat_json_async(self, messages: list[dict]) -> dict | list:
        """
        chat_json의 비동기 버전.
        blocking chat_json()을 asyncio.to_thread로 스레드 풀에서 실행.
        여러 단어 정의를 asyncio.gather로 병렬 생성할 때 사용.
        """
        return await asyncio.to_thread(self.chat_json, messages)


def _strip_code_fence(text: str) -> str:
    """```json ... ``` 또는 ``` ... ``` 블록 제거."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        # 첫 줄(```json 또는 ```) 제거
        lines = lines[1:]
        # 마지막 ``` 제거
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()
    return cleaned


# ─────────────────────────────────────────────────────────
# 프로바이더: OpenAI 호환 REST
# ─────────────────────────────────────────────────────────

class OpenAICompatibleClient(BaseLLMClient):

    def __init__(self) -> None:
        self.url = settings.LLM_URL
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.LLM_API_KEY}",
        }
        self.model = settings.LLM_MODEL

    def chat(
        self,
        messages: list[dict],
        temperature: float | None = None,
        response_format: dict | None = None,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": settings.LLM_TEMPERATURE if temperature is None else temperature,
            "max_tokens": settings.LLM_MAX_TOKENS,
        }
        if response_format is not None:
            payload["response_format"] = response_format
        logger.debug(
            "LLM 호출: model=%s, messages=%d개, json_mode=%s",
            self.model, len(messages), response_format is not None,
        )

        max_retries = settings.LLM_MAX_RETRIES
        for attempt in range(max_retries):
            try:
                resp = requests.post(
                    self.url,
                    headers=self.headers,
                    data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
                    timeout=settings.LLM_TIMEOUT_SEC,
                )
                resp.raise_for_status()
                content = resp.json()["choices"][0]["message"]["content"]
                logger.debug("LLM 응답: %d자", len(content or ""))
                return content
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status in RETRYABLE_STATUS and attempt < max_retries - 1:
                    wait = 2 ** attempt  # 1초, 2초, 4초, 8초
                    logger.warning(
                        "LLM HTTP %s 오류 (시도 %d/%d), %d초 후 재시도",
                        status, attempt + 1, max_retries, wait,
                    )
                    time.sleep(wait)
                else:
                    raise
            except requests.exceptions.ConnectionError as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(
                        "LLM 연결 오류 (시도 %d/%d), %d초 후 재시도: %s",
                        attempt + 1, max_retries, wait, e,
                    )
                    time.sleep(wait)
                else:
                    raise


# ─────────────────────────────────────────────────────────
# 팩토리 함수
# ─────────────────────────────────────────────────────────

def get_llm_client() -> BaseLLMClient:
    return OpenAICompatibleClient()
