from __future__ import annotations

from typing import Optional


class DocumentError(Exception):
    # 문서 로딩 중 발생하는 오류 공통 부모
    pass


class WrongFormat(DocumentError, ValueError):
    """확장자는 .doc 이지만 실제로는 다른 포맷인 경우"""

    def __init__(self, detected: Optional[str] = None, message: Optional[str] = None, stream=None):
        self.detected = detected
        # 되감긴 원본 스트림. 다른 포맷 처리기로 넘길 때 사용
        self.stream = stream
        if message is None:
            if detected:
                message = f"The document is really a {detected} file"
            else:
                message = "The document is not an OLE2 compound file"
        super().__init__(message)


class StreamNotFound(DocumentError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"stream not found in container: {self.name!r}"


class TruncatedHeader(DocumentError, ValueError):
    def __init__(self, needed: int, got: int):
        self.needed = needed
        self.got = got
        super().__init__(f"header needs {needed} bytes, got {got}")


class EncryptionError(DocumentError):
    # 암호화 관련 오류 (I/O 오류와 구분됨)
    pass


class VerificationError(EncryptionError):
    # 검증 과정 자체가 실패 (키 정보 손상, 지원하지 않는 방식 등)
    pass


class WrongPassword(EncryptionError):
    # 검증은 정상 수행됐고 비밀번호가 틀린 경우. 호출 측에서 재입력 유도 가능
    pass


EncryptedDocumentNoPassword = WrongPassword
