from __future__ import annotations

from typing import Optional

from doccrypt.core.config import get_logger
from doccrypt.core.schemas import NO_DECRYPTION, UNBOUNDED
from doccrypt.modules.encryption import EncryptionContext
from doccrypt.modules.ole_container import Container, read_verbatim

log = get_logger("doc_range_reader")


def read_range(
    container: Container,
    context: Optional[EncryptionContext],
    stream_name: str,
    plain_prefix_length: int = NO_DECRYPTION,
    max_length: int = UNBOUNDED,
) -> bytes:
    """스트림을 읽는다. context 가 있으면 앞 plain_prefix_length 바이트는 평문 그대로,
    나머지는 복호화해서 이어 붙인다. 전체 길이는 max_length 로 자른다."""
    if context is None or plain_prefix_length <= NO_DECRYPTION:
        return read_verbatim(container, stream_name, max_length)

    size = container.stream_size(stream_name)
    raw = container.open_stream(stream_name)
    try:
        cis = context.decryptor.open_stream(raw, size, 0)
        try:
            out = bytearray()
            if plain_prefix_length > 0:
                out += cis.read_plain(min(plain_prefix_length, max_length))
            # 요청 구간이 걸친 청크만 복호화됨
            out += cis.read(max_length - len(out))
        finally:
            cis.close()
    finally:
        raw.close()

    log.debug(
        "decrypted read %s: prefix=%d cap=%s -> %d/%d bytes",
        stream_name, plain_prefix_length,
        "all" if max_length >= UNBOUNDED else max_length, len(out), size,
    )
    return bytes(out)

