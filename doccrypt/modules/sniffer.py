from __future__ import annotations

import io
from typing import BinaryIO, Optional

from doccrypt.core.config import get_logger
from doccrypt.core.errors import WrongFormat
from doccrypt.utils.file_reader import Source, is_seekable, open_source

log = get_logger("doc_sniffer")

PEEK_LEN = 6
OLE_MAGIC = b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1"

# 같은 .doc 확장자로 들어오는 다른 포맷들
_FOREIGN_SIGNATURES = (
    (b"{\\rtf", "RTF"),
    (b"%PDF", "PDF"),
    (b"PK\x03\x04", "OOXML"),
)


def peek(stream: BinaryIO, n: int = PEEK_LEN) -> bytes:
    """n 바이트를 읽고 원래 위치로 되돌린다 (seek 가능한 스트림 전용)"""
    pos = stream.tell()
    try:
        return stream.read(n)
    finally:
        stream.seek(pos)


def detect_foreign(head: bytes) -> Optional[str]:
    for sig, name in _FOREIGN_SIGNATURES:
        if head.startswith(sig):
            return name
    return None


def is_compound(head: bytes) -> bool:
    return head.startswith(OLE_MAGIC)


def sniff(source: Source) -> BinaryIO:
    """앞 6바이트로 RTF/PDF 등 위장 파일을 걸러내고, 0번 위치 그대로의 스트림을 돌려준다."""
    stream = open_source(source)
    if not is_seekable(stream):
        # 되돌릴 수 없는 스트림은 메모리로 옮겨서 읽은 바이트를 잃지 않게 함
        stream = io.BytesIO(stream.read())

    head = peek(stream, PEEK_LEN)
    detected = detect_foreign(head)
    if detected:
        log.warning("rejecting input: detected %s signature %r", detected, head[:5])
        raise WrongFormat(detected, stream=stream)
    return stream
