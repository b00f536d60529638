from __future__ import annotations

import io
import struct
from typing import BinaryIO, List, Optional

from msoffcrypto.method.rc4 import DocumentRC4
from msoffcrypto.method.rc4_cryptoapi import DocumentRC4CryptoAPI
from msoffcrypto.method.xor_obfuscation import DocumentXOR

from doccrypt.core.config import DEFAULT_CHUNK_SIZE, get_logger
from doccrypt.core.errors import EncryptionError, VerificationError
from doccrypt.modules.fib import le16, le32

log = get_logger("doc_crypto")

# EncryptionVersionInfo (major, minor)
RC4_VERSIONS = {(1, 1)}
RC4_CRYPTOAPI_VERSIONS = {(2, 2), (3, 2), (4, 2)}

# EncryptionHeader
ALG_ID_RC4 = 0x6801
F_AES = 0x20


# ─────────────────────────────
# 청크 단위 복호화 스트림
# ─────────────────────────────
class ChunkedCipherStream:
    """원본 스트림을 감싸서 위치 기준으로 복호화된 바이트를 돌려준다.

    읽기 요청이 걸친 청크까지만 원본을 읽고 복호화한다.
    read_plain() 은 같은 위치의 바이트를 복호화 없이 내보내고 위치만 전진시킨다.
    (FIB 처럼 암호화 구간 이전의 평문 영역용)
    """

    def __init__(self, decryptor: "Decryptor", source: BinaryIO, total_size: int, start_offset: int = 0):
        self._dec = decryptor
        self._src = source
        self._size = total_size
        self._start = start_offset
        self._pos = start_offset
        # start_offset 기준 상대 위치. _plain 은 청크 경계(또는 스트림 끝)까지만 채워짐
        self._raw = bytearray()
        self._plain = bytearray()
        self.closed = False

    def _end_for(self, n: Optional[int]) -> int:
        if n is None or n < 0:
            return self._size
        return min(self._size, self._pos + n)

    def _fill_raw(self, end: int) -> None:
        target = min(end, self._size) - self._start
        while len(self._raw) < target:
            chunk = self._src.read(target - len(self._raw))
            if not chunk:
                break
            self._raw += chunk

    def _fill_plain(self, end: int) -> None:
        need = min(end, self._size) - self._start
        if len(self._plain) >= need:
            return
        chunk = self._dec.chunk_size
        upto = min(-(-need // chunk) * chunk, self._size - self._start)
        self._fill_raw(self._start + upto)
        done = len(self._plain)
        data = bytes(self._raw[done:upto])
        if data:
            self._plain += self._dec.decrypt(data, (self._start + done) // chunk)

    def _take(self, buf: bytearray, end: int) -> bytes:
        data = bytes(buf[self._pos - self._start:end - self._start])
        self._pos += len(data)
        return data

    def read(self, n: int = -1) -> bytes:
        self._check_open()
        end = self._end_for(n)
        self._fill_plain(end)
        return self._take(self._plain, end)

    def read_plain(self, n: int) -> bytes:
        self._check_open()
        end = self._end_for(n)
        self._fill_raw(end)
        return self._take(self._raw, end)

    def tell(self) -> int:
        return self._pos

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed cipher stream")

    def close(self) -> None:
        # 원본 스트림은 호출 측 소유라서 닫지 않음
        self.closed = True
        self._raw = None
        self._plain = None

    def __enter__(self) -> "ChunkedCipherStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ─────────────────────────────
# 복호화 방식별 구현
# ─────────────────────────────
class Decryptor:
    scheme = "none"

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self._password: Optional[str] = None

    def set_chunk_size(self, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk size must be positive: {chunk_size}")
        self.chunk_size = chunk_size

    @property
    def verified(self) -> bool:
        return self._password is not None

    @property
    def key_size(self) -> Optional[int]:
        return None

    @property
    def version(self) -> Optional[str]:
        return None

    def verify_password(self, password: str) -> bool:
        ok = bool(self._verify(password))
        if ok:
            self._password = password
        return ok

    def _verify(self, password: str) -> bool:
        raise NotImplementedError

    def decrypt(self, data: bytes, first_block: int = 0) -> bytes:
        if not self.verified:
            raise EncryptionError("password has not been verified")
        return self._decrypt(data, first_block)

    def _decrypt(self, data: bytes, first_block: int) -> bytes:
        raise NotImplementedError

    def open_stream(self, source: BinaryIO, total_size: int, start_offset: int = 0) -> ChunkedCipherStream:
        if not self.verified:
            raise EncryptionError("password has not been verified")
        if start_offset % self.chunk_size:
            raise ValueError(f"start offset {start_offset} is not aligned to {self.chunk_size}")
        return ChunkedCipherStream(self, source, total_size, start_offset)


class XorDecryptor(Decryptor):
    """구버전 XOR 난독화. 키 정보 = key(2) + verifier(2)"""

    scheme = "xor"

    def __init__(self, key: int, verifier: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(chunk_size)
        self.key = key
        self.verifier = verifier
        self._xor_array: List[int] = []

    @classmethod
    def from_key_material(cls, data: bytes) -> "XorDecryptor":
        return cls(le16(data, 0), le16(data, 2))

    def _verify(self, password: str) -> bool:
        if not DocumentXOR.verifypw(password, self.verifier):
            return False
        self._xor_array = list(DocumentXOR.create_xor_array_method1(password))
        return True

    def _decrypt(self, data: bytes, first_block: int) -> bytes:
        xa = self._xor_array
        base = first_block * self.chunk_size
        return bytes(b ^ xa[(base + i) & 0x0F] for i, b in enumerate(data))


class Rc4Decryptor(Decryptor):
    scheme = "rc4"

    def __init__(self, salt: bytes, encrypted_verifier: bytes, encrypted_verifier_hash: bytes,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(chunk_size)
        self.salt = salt
        self.encrypted_verifier = encrypted_verifier
        self.encrypted_verifier_hash = encrypted_verifier_hash

    @classmethod
    def from_key_material(cls, data: bytes) -> "Rc4Decryptor":
        # version(4) + salt(16) + encryptedVerifier(16) + encryptedVerifierHash(16)
        if len(data) < 52:
            raise VerificationError(f"RC4 encryption header too short: {len(data)} bytes")
        return cls(data[4:20], data[20:36], data[36:52])

    @property
    def key_size(self) -> Optional[int]:
        return 128

    @property
    def version(self) -> Optional[str]:
        return "1.1"

    def _verify(self, password: str) -> bool:
        return DocumentRC4.verifypw(password, self.salt, self.encrypted_verifier, self.encrypted_verifier_hash)

    def _decrypt(self, data: bytes, first_block: int) -> bytes:
        # 블록 0 부터 키를 만들기 때문에 앞 블록은 빈 바이트로 채워서 넘김
        pad = first_block * self.chunk_size
        obuf = DocumentRC4.decrypt(
            self._password, self.salt, io.BytesIO(b"\x00" * pad + data), blocksize=self.chunk_size
        )
        return obuf.getvalue()[pad:]


class Rc4CryptoApiDecryptor(Decryptor):
    scheme = "rc4_cryptoapi"

    def __init__(self, salt: bytes, key_size: int, encrypted_verifier: bytes, encrypted_verifier_hash: bytes,
                 alg_id: int = ALG_ID_RC4, provider: str = "", version: str = "2.2",
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(chunk_size)
        self.salt = salt
        self._key_size = key_size or 40
        self.encrypted_verifier = encrypted_verifier
        self.encrypted_verifier_hash = encrypted_verifier_hash
        self.alg_id = alg_id
        self.provider = provider
        self._version = version

    @classmethod
    def from_key_material(cls, data: bytes) -> "Rc4CryptoApiDecryptor":
        major, minor = le16(data, 0), le16(data, 2)
        header_size = le32(data, 8)
        header = data[12:12 + header_size]
        if len(header) < 32 or len(header) != header_size:
            raise VerificationError("RC4 CryptoAPI encryption header is truncated")
        flags = le32(header, 0)
        alg_id = le32(header, 8)
        # AlgID 0 은 플래그로 판단 (fAES 가 없으면 RC4)
        if alg_id != ALG_ID_RC4 and not (alg_id == 0 and not flags & F_AES):
            raise VerificationError(f"unsupported CryptoAPI algorithm 0x{alg_id:04X}")
        alg_id = ALG_ID_RC4
        key_size = le32(header, 16)
        provider = header[32:].decode("utf-16le", errors="ignore").rstrip("\x00")

        off = 12 + header_size
        salt_size = le32(data, off)
        salt = data[off + 4:off + 4 + salt_size]
        off += 4 + salt_size
        encrypted_verifier = data[off:off + 16]
        off += 16
        hash_size = le32(data, off)
        encrypted_verifier_hash = data[off + 4:off + 4 + hash_size]
        if len(salt) != salt_size or len(encrypted_verifier) != 16 or len(encrypted_verifier_hash) != hash_size:
            raise VerificationError("RC4 CryptoAPI encryption verifier is truncated")
        return cls(salt, key_size, encrypted_verifier, encrypted_verifier_hash,
                   alg_id=alg_id, provider=provider, version=f"{major}.{minor}")

    @property
    def key_size(self) -> Optional[int]:
        return self._key_size

    @property
    def version(self) -> Optional[str]:
        return self._version

    def _verify(self, password: str) -> bool:
        return DocumentRC4CryptoAPI.verifypw(
            password, self.salt, self._key_size, self.encrypted_verifier, self.encrypted_verifier_hash,
            algId=self.alg_id,
        )

    def _decrypt(self, data: bytes, first_block: int) -> bytes:
        obuf = DocumentRC4CryptoAPI.decrypt(
            self._password, self.salt, self._key_size, io.BytesIO(data),
            blocksize=self.chunk_size, block=first_block,
        )
        return obuf.getvalue()


def decryptor_for(key_material: bytes, force_xor: bool = False) -> Decryptor:
    """키 정보 스트림에서 복호화 방식 선택. XOR 플래그가 있으면 무조건 XOR."""
    try:
        if force_xor:
            return XorDecryptor.from_key_material(key_material)

        version = (le16(key_material, 0), le16(key_material, 2))
        if version in RC4_VERSIONS:
            return Rc4Decryptor.from_key_material(key_material)
        if version in RC4_CRYPTOAPI_VERSIONS:
            return Rc4CryptoApiDecryptor.from_key_material(key_material)
    except struct.error as e:
        raise VerificationError(f"malformed encryption header: {e}") from e

    raise VerificationError("unsupported encryption version %d.%d" % version)
