from pydantic_settings import BaseSettings
from pathlib import Path
from typing import Literal


class Settings(BaseSettings):
    # OpenAI 호환 Chat Completions 엔드포인트
    LLM_URL: str = "https://api.openai.com/v1/chat/completions"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4.1"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 1000
    LLM_MAX_RETRIES: int = 5
    LLM_TIMEOUT_SEC: int = 120

    # 앱 설정
    MAX_FILE_SIZE_MB: int = 20
    TEMP_DIR: str = "./temp"
    SESSION_TTL_MINUTES: int = 120

    # 단어 선택 / 문맥 추출
    MAX_SELECTION_LENGTH: int = 50
    CONTEXT_SENTENCES_BEFORE: int = 3
    CONTEXT_SENTENCES_AFTER: int = 3
    FALLBACK_SENTENCES: int = 7

    # 정의 일괄 생성 시 동시 LLM 호출 최대 수
    MAX_CONCURRENT_GENERATIONS: int = 10

    # 전체 선택 해제 시 이미 각주로 삽입된 단어 처리 방식
    CLEAR_ALL_POLICY: Literal["keep_footnotes", "remove_footnotes"] = "keep_footnotes"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def outputs_dir(self) -> Path:
        return Path(self.TEMP_DIR) / "outputs"


settings = Settings()

# 임시 디렉토리 자동 생성
settings.outputs_dir.mkdir(parents=True, exist_ok=True)
