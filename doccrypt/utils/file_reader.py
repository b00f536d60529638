from __future__ import annotations

import io
import os
from typing import BinaryIO, Union

Source = Union[bytes, bytearray, memoryview, str, "os.PathLike[str]", BinaryIO]


def open_source(source: Source) -> BinaryIO:
    """경로 / bytes / 파일 객체를 모두 읽기 가능한 바이너리 스트림으로 맞춘다."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            return io.BytesIO(f.read())
    if not hasattr(source, "read"):
        raise TypeError(f"지원하지 않는 입력 타입: {type(source)!r}")
    return source


def is_seekable(stream: BinaryIO) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, OSError, ValueError):
        return False
