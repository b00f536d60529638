from __future__ import annotations

import logging
import os
from typing import Optional, Protocol

DEFAULT_PASSWORD = "VelvetSweatshop"
DEFAULT_CHUNK_SIZE = 512


def _truthy(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) in ("1", "true", "TRUE")


def crypto_debug() -> bool:
    return _truthy("DOC_CRYPTO_DEBUG")


def cipher_chunk_size() -> int:
    raw = os.getenv("DOC_CIPHER_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))
    try:
        size = int(raw)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return size if size > 0 else DEFAULT_CHUNK_SIZE


def get_logger(name: str) -> logging.Logger:
    log = logging.getLogger(name)
    if not log.handlers:
        _h = logging.StreamHandler()
        _h.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        log.addHandler(_h)
        log.propagate = False
    log.setLevel(logging.DEBUG if crypto_debug() else logging.INFO)
    return log


class PasswordSource(Protocol):
    def current_password(self) -> Optional[str]:
        ...


class StaticPassword:
    def __init__(self, password: Optional[str]):
        self.password = password

    def current_password(self) -> Optional[str]:
        return self.password


class CurrentPassword:
    """프로세스 단위 '현재 비밀번호' 보관소.

    set() 으로 지정된 값이 우선이고, 없으면 호출 시점의 DOC_PASSWORD 환경변수를 읽는다.
    값은 컨텍스트 생성 시점에 매번 조회된다.
    """

    def __init__(self, env_var: str = "DOC_PASSWORD"):
        self.env_var = env_var
        self._password: Optional[str] = None

    def set(self, password: Optional[str]) -> None:
        self._password = password

    def clear(self) -> None:
        self._password = None

    def current_password(self) -> Optional[str]:
        if self._password is not None:
            return self._password
        # 빈 문자열은 미설정으로 취급
        return os.getenv(self.env_var) or None


current_password = CurrentPassword()
