from __future__ import annotations

from typing import List, Optional, Union

import olefile

from doccrypt.core.config import PasswordSource, get_logger
from doccrypt.core.schemas import NO_DECRYPTION, UNBOUNDED, ByteRange, EncryptionSummary, HeaderRecord
from doccrypt.modules import range_reader
from doccrypt.modules.encryption import EncryptionContext, EncryptionContextCache
from doccrypt.modules.fib import FIB_BASE_LEN, parse_header
from doccrypt.modules.ole_container import Container, OleContainer, read_verbatim
from doccrypt.modules.sniffer import sniff
from doccrypt.utils.file_reader import Source

log = get_logger("doc_session")

STREAM_WORD_DOCUMENT = "WordDocument"
STREAM_TABLE_0 = "0Table"
STREAM_TABLE_1 = "1Table"
STREAM_OBJECT_POOL = "ObjectPool"


class DocSession:
    """Word 97 바이너리 문서 하나를 여는 로딩 세션.

    - 헤더(FIB 앞 68바이트)는 생성 시점에 평문으로 읽는다.
    - EncryptionContext 는 복호화가 필요한 첫 읽기에서 한 번만 만든다.
    """

    def __init__(
        self,
        container: Container,
        password_source: Optional[PasswordSource] = None,
        chunk_size: Optional[int] = None,
        owns_container: bool = False,
    ):
        self.container = container
        self._owns_container = owns_container
        self._encryption = EncryptionContextCache(self._read_key_stream, password_source, chunk_size)
        self._main_stream: Optional[bytes] = None
        try:
            head = self.read_range(STREAM_WORD_DOCUMENT, NO_DECRYPTION, FIB_BASE_LEN)
            self._header = parse_header(head)
        except Exception:
            self.close()
            raise
        log.debug(
            "session opened: nFib=0x%04X encrypted=%s table=%s",
            self._header.n_fib, self._header.is_encrypted, self.table_stream_name,
        )

    def _read_key_stream(self, name: str, max_length: int) -> bytes:
        return read_verbatim(self.container, name, max_length)

    # ─────────────────────────────
    # 헤더 / 암호화 상태
    # ─────────────────────────────
    def header_record(self) -> HeaderRecord:
        return self._header

    def is_encrypted(self) -> bool:
        return self._header.is_encrypted

    def encryption_context(self) -> Optional[EncryptionContext]:
        return self._encryption.get(self._header)

    def encryption_summary(self) -> Optional[EncryptionSummary]:
        context = self.encryption_context()
        return context.summary() if context is not None else None

    # ─────────────────────────────
    # 스트림 읽기
    # ─────────────────────────────
    def read_range(
        self,
        stream_name: str,
        plain_prefix_length: int = NO_DECRYPTION,
        max_length: int = UNBOUNDED,
    ) -> bytes:
        req = ByteRange(stream_name=stream_name, plain_prefix_length=plain_prefix_length, total_length=max_length)
        context = self.encryption_context() if req.wants_decryption else None
        return range_reader.read_range(
            self.container, context, req.stream_name, req.plain_prefix_length, req.total_length
        )

    @property
    def main_stream(self) -> bytes:
        # FIB 앞 68바이트는 평문, 나머지는 복호화
        if self._main_stream is None:
            self._main_stream = self.read_range(STREAM_WORD_DOCUMENT, FIB_BASE_LEN, UNBOUNDED)
        return self._main_stream

    @property
    def table_stream_name(self) -> str:
        return STREAM_TABLE_1 if self._header.use_alternate_key_stream else STREAM_TABLE_0

    def table_stream(self) -> bytes:
        name = self.table_stream_name
        context = self.encryption_context()
        if context is None:
            return self.read_range(name, NO_DECRYPTION, UNBOUNDED)
        # 맨 앞 키 정보 구간은 평문
        return self.read_range(name, context.key_material_length, UNBOUNDED)

    def has_object_pool(self) -> bool:
        has_storage = getattr(self.container, "has_storage", None)
        if has_storage is None:
            return False
        return bool(has_storage(STREAM_OBJECT_POOL))

    def list_streams(self) -> List[str]:
        lister = getattr(self.container, "list_streams", None)
        return list(lister()) if lister is not None else []

    def close(self) -> None:
        if self._owns_container:
            closer = getattr(self.container, "close", None)
            if closer is not None:
                closer()
            self._owns_container = False

    def __enter__(self) -> "DocSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _is_container(obj) -> bool:
    return all(hasattr(obj, attr) for attr in ("has_stream", "stream_size", "open_stream"))


def open_session(
    source: Union[Source, Container, olefile.OleFileIO],
    password_source: Optional[PasswordSource] = None,
    chunk_size: Optional[int] = None,
) -> DocSession:
    """bytes / 경로 / 파일 객체 / 이미 열린 컨테이너에서 세션을 연다."""
    if isinstance(source, olefile.OleFileIO):
        return DocSession(OleContainer(source), password_source, chunk_size)
    if _is_container(source):
        return DocSession(source, password_source, chunk_size)

    stream = sniff(source)
    container = OleContainer.from_stream(stream)
    return DocSession(container, password_source, chunk_size, owns_container=True)
