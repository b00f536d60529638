from __future__ import annotations

from typing import BinaryIO, List, Protocol

import olefile

from doccrypt.core.config import get_logger
from doccrypt.core.errors import StreamNotFound, WrongFormat
from doccrypt.core.schemas import UNBOUNDED
from doccrypt.modules.sniffer import OLE_MAGIC, is_compound, peek

log = get_logger("doc_container")

COPY_BLOCK = 64 * 1024


class Container(Protocol):
    def has_stream(self, name: str) -> bool:
        ...

    def stream_size(self, name: str) -> int:
        ...

    def open_stream(self, name: str) -> BinaryIO:
        ...


class OleContainer:
    """olefile 기반 컴파운드 파일 래퍼. 읽기 전용."""

    def __init__(self, ole: olefile.OleFileIO, owned: bool = False):
        self.ole = ole
        self._owned = owned

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> "OleContainer":
        if not is_compound(peek(stream, len(OLE_MAGIC))):
            raise WrongFormat(None, stream=stream)
        return cls(olefile.OleFileIO(stream), owned=True)

    def has_stream(self, name: str) -> bool:
        return self.ole.exists(name) and self.ole.get_type(name) == olefile.STGTY_STREAM

    def has_storage(self, name: str) -> bool:
        return self.ole.exists(name) and self.ole.get_type(name) == olefile.STGTY_STORAGE

    def stream_size(self, name: str) -> int:
        if not self.has_stream(name):
            raise StreamNotFound(name)
        return self.ole.get_size(name)

    def open_stream(self, name: str) -> BinaryIO:
        if not self.has_stream(name):
            raise StreamNotFound(name)
        return self.ole.openstream(name)

    def list_streams(self) -> List[str]:
        return ["/".join(p) for p in self.ole.listdir(streams=True, storages=False)]

    def close(self) -> None:
        # 직접 연 경우에만 닫음
        if self._owned:
            self.ole.close()


def copy_bounded(src: BinaryIO, limit: int = UNBOUNDED) -> bytes:
    """src 에서 최대 limit 바이트를 그대로 복사"""
    out = bytearray()
    while len(out) < limit:
        chunk = src.read(min(COPY_BLOCK, limit - len(out)))
        if not chunk:
            break
        out += chunk
    return bytes(out)


def read_verbatim(container: Container, name: str, max_length: int = UNBOUNDED) -> bytes:
    """복호화 없이 스트림을 읽는다. 스트림 핸들은 항상 닫힌다."""
    size = container.stream_size(name)
    src = container.open_stream(name)
    try:
        data = copy_bounded(src, min(size, max_length))
    finally:
        src.close()
    log.debug("verbatim read %s: %d/%d bytes", name, len(data), size)
    return data
