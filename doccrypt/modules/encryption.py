from __future__ import annotations

from typing import Callable, Optional

from doccrypt.core.config import DEFAULT_PASSWORD, PasswordSource, cipher_chunk_size, current_password, get_logger
from doccrypt.core.errors import EncryptionError, VerificationError, WrongPassword
from doccrypt.core.schemas import EncryptionSummary, HeaderRecord
from doccrypt.modules.doc_crypto import Decryptor, decryptor_for

log = get_logger("doc_encryption")

# (stream_name, max_length) -> bytes, 복호화 없이 읽기
KeyStreamReader = Callable[[str, int], bytes]


class EncryptionContext:
    """검증이 끝난 복호화 상태. 검증 전 상태로는 만들어지지 않는다."""

    def __init__(self, decryptor: Decryptor, key_stream: str, key_material_length: int):
        if not decryptor.verified:
            raise EncryptionError("decryptor must be verified before building a context")
        self.decryptor = decryptor
        self.key_stream = key_stream
        self.key_material_length = key_material_length

    @property
    def scheme(self) -> str:
        return self.decryptor.scheme

    @property
    def chunk_size(self) -> int:
        return self.decryptor.chunk_size

    def summary(self) -> EncryptionSummary:
        return EncryptionSummary(
            scheme=self.scheme,
            key_stream=self.key_stream,
            chunk_size=self.chunk_size,
            key_size=self.decryptor.key_size,
            version=self.decryptor.version,
        )


def build_context(
    header: HeaderRecord,
    read_key_stream: KeyStreamReader,
    password_source: Optional[PasswordSource] = None,
    chunk_size: Optional[int] = None,
) -> Optional[EncryptionContext]:
    if not header.is_encrypted:
        return None

    # 1) 키 정보 스트림 (항상 평문)
    key_stream = header.key_stream_name
    key_material = read_key_stream(key_stream, header.key_stream_length)
    log.info(
        "encrypted document: key stream=%s (%d bytes), obfuscated=%s",
        key_stream, len(key_material), header.is_legacy_obfuscated,
    )

    # 2) 방식 선택 + 청크 크기
    decryptor = decryptor_for(key_material, force_xor=header.is_legacy_obfuscated)
    decryptor.set_chunk_size(chunk_size or cipher_chunk_size())
    log.info("encryption scheme: %s (chunk=%d)", decryptor.scheme, decryptor.chunk_size)

    # 3) 비밀번호: 생성 시점에 조회, 없으면 기본 비밀번호
    source = password_source if password_source is not None else current_password
    password = source.current_password()
    if password is None:
        password = DEFAULT_PASSWORD

    # 4) 검증 실패(오류)와 비밀번호 불일치는 구분
    try:
        ok = decryptor.verify_password(password)
    except EncryptionError:
        raise
    except Exception as e:
        raise VerificationError(f"password verification failed: {e}") from e
    if not ok:
        log.warning("password verification failed for %s scheme", decryptor.scheme)
        raise WrongPassword(
            "document is encrypted, password is invalid - set the current password before opening"
        )

    log.info("password verified (%s)", decryptor.scheme)
    return EncryptionContext(decryptor, key_stream, len(key_material))


class EncryptionContextCache:
    """세션 단위로 한 번만 만들어지는 EncryptionContext 보관소"""

    def __init__(
        self,
        read_key_stream: KeyStreamReader,
        password_source: Optional[PasswordSource] = None,
        chunk_size: Optional[int] = None,
        builder: Callable[..., Optional[EncryptionContext]] = build_context,
    ):
        self._read_key_stream = read_key_stream
        self._password_source = password_source
        self._chunk_size = chunk_size
        self._builder = builder
        self._built = False
        self._context: Optional[EncryptionContext] = None

    @property
    def built(self) -> bool:
        return self._built

    def get(self, header: HeaderRecord) -> Optional[EncryptionContext]:
        if self._built:
            return self._context
        # 실패 시에는 저장하지 않음 (비밀번호 바꿔서 재시도 가능)
        context = self._builder(header, self._read_key_stream, self._password_source, self._chunk_size)
        self._context = context
        self._built = True
        return context
