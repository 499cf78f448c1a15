"""
각주 생성 시스템 예외 계층.

ValidationError  — 잘못된 선택/입력. 상태 변경 없이 거부.
NotFoundError    — 단어/각주 위치를 찾지 못함. 각주 연산에서는 로그 후 무시.
ProviderError    — 정의 생성(LLM) 실패. 해당 단어 결과에만 기록, 재시도 가능.
ExtractionError  — 업로드 문서 텍스트 추출 실패. 문서 로드 자체를 중단.
"""


class FootnoteAppError(Exception):
    """모든 앱 예외의 기반 클래스."""


class ValidationError(FootnoteAppError):
    pass


class NotFoundError(FootnoteAppError):
    pass


class ProviderError(FootnoteAppError):
    def __init__(self, word: str, message: str) -> None:
        self.word = word
        self.message = message
        super().__init__(f"'{word}' 정의 생성 실패: {message}")


class ExtractionError(FootnoteAppError):
    def __init__(self, filename: str, message: str) -> None:
        self.filename = filename
        self.message = message
        super().__init__(message)
