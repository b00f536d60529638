"""
open_session 통합 테스트: 실제 OLE2 바이트 + olefile
"""

import io
import struct
from unittest.mock import patch

import olefile
import pytest

from doccrypt.core.config import DEFAULT_PASSWORD, CurrentPassword, StaticPassword
from doccrypt.core.errors import StreamNotFound, TruncatedHeader, WrongFormat, WrongPassword
from doccrypt.core.schemas import UNBOUNDED
from doccrypt.modules.fib import F_ENCRYPTED, F_OBFUSCATED, parse_header
from doccrypt.modules.ole_container import OleContainer, read_verbatim
from doccrypt.modules.session import DocSession, open_session

from doc_fixtures import FakeContainer, build_cfb, make_fib, pad, word_stream

XOR_ARRAY = [0x5A, 0x11, 0x22, 0x33, 0x44, 0x55, 0x66, 0x77, 0x88, 0x99, 0xAA, 0xBB, 0xCC, 0xDD, 0xEE, 0xFF]


def xor(data: bytes, start: int = 0) -> bytes:
    return bytes(b ^ XOR_ARRAY[(start + i) & 0x0F] for i, b in enumerate(data))


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def plain_doc():
    word = word_stream(make_fib(), 10000)
    return word, build_cfb({"WordDocument": word, "0Table": pad(b"table-stream")})


@pytest.fixture
def xor_doc():
    # 헤더 68바이트는 평문, 나머지는 XOR 난독화
    fib = make_fib(flags=F_ENCRYPTED | F_OBFUSCATED, l_key=32)
    plain = word_stream(fib, 6000)
    word = plain[:68] + xor(plain[68:], 68)
    key_material = struct.pack("<HH", 0xBEEF, 0xCAFE) + b"\x00" * 28
    table_plain = pad(b"T" * 100)
    table = key_material + xor(table_plain[32:], 32)
    return plain, table_plain, build_cfb(
        {"WordDocument": word, "0Table": table}, storages=["ObjectPool"]
    )


@pytest.fixture
def mock_xor():
    with patch("doccrypt.modules.doc_crypto.DocumentXOR") as m:
        m.verifypw.side_effect = lambda pw, verifier: pw == DEFAULT_PASSWORD and verifier == 0xCAFE
        m.create_xor_array_method1.return_value = XOR_ARRAY
        yield m


# ==============================================================================
# Tests: 평문 문서
# ==============================================================================

def test_plain_document_roundtrip(plain_doc):
    word, data = plain_doc
    with open_session(data) as s:
        assert not s.is_encrypted()
        assert s.header_record().n_fib == 0x00C1
        assert s.encryption_context() is None
        assert s.encryption_summary() is None
        assert s.read_range("WordDocument", 0, UNBOUNDED) == word
        assert len(s.read_range("WordDocument", 0, UNBOUNDED)) == 10000
        assert s.read_range("WordDocument", -1, 68) == word[:68]
        assert s.main_stream == word
        assert s.table_stream_name == "0Table"
        assert s.table_stream().startswith(b"table-stream")
        assert not s.has_object_pool()


def test_plain_document_never_touches_crypto(plain_doc):
    _, data = plain_doc
    with patch("doccrypt.modules.encryption.decryptor_for") as m:
        with open_session(data) as s:
            s.read_range("WordDocument", 68, UNBOUNDED)
            s.read_range("0Table", 0, 100)
    m.assert_not_called()


def test_open_from_path_and_file(plain_doc, tmp_path):
    word, data = plain_doc
    p = tmp_path / "sample.doc"
    p.write_bytes(data)
    with open_session(str(p)) as s:
        assert s.main_stream == word
    with open_session(io.BytesIO(data)) as s:
        assert s.main_stream == word


def test_open_from_borrowed_ole(plain_doc):
    word, data = plain_doc
    ole = olefile.OleFileIO(io.BytesIO(data))
    with open_session(ole) as s:
        assert s.read_range("WordDocument") == word
    # 세션이 연 것이 아니면 닫지 않음
    assert ole.exists("WordDocument")
    ole.close()


def test_list_streams(plain_doc):
    _, data = plain_doc
    with open_session(data) as s:
        assert sorted(s.list_streams()) == ["0Table", "WordDocument"]


# ==============================================================================
# Tests: 오류
# ==============================================================================

@pytest.mark.parametrize("data", [b"{\\rtf1\\ansi body", b"%PDF-1.5 body"])
def test_wrong_format(data):
    src = io.BytesIO(data)
    with pytest.raises(WrongFormat):
        open_session(src)
    assert src.read(6) == data[:6]


def test_not_a_compound_file():
    with pytest.raises(WrongFormat) as ei:
        open_session(b"plain text pretending to be a doc")
    assert ei.value.detected is None


def test_missing_word_document():
    data = build_cfb({"0Table": pad(b"x")})
    with pytest.raises(StreamNotFound) as ei:
        open_session(data)
    assert ei.value.name == "WordDocument"


def test_truncated_header():
    fc = FakeContainer({"WordDocument": make_fib()[:50]})
    with pytest.raises(TruncatedHeader):
        open_session(fc)
    assert fc.all_closed()


def test_invalid_range_arguments(plain_doc):
    _, data = plain_doc
    with open_session(data) as s:
        with pytest.raises(ValueError):
            s.read_range("WordDocument", -2, 10)
        with pytest.raises(ValueError):
            s.read_range("", 0, 10)


# ==============================================================================
# Tests: XOR 난독화 문서
# ==============================================================================

def test_xor_document_header_example(xor_doc, mock_xor):
    _, _, data = xor_doc
    with open_session(data, StaticPassword(None)) as s:
        assert s.is_encrypted()
        head = s.read_range("WordDocument", -1, 68)
        assert len(head) == 68
        header = parse_header(head)
        assert header.is_encrypted
        assert header.is_legacy_obfuscated
        assert header.key_stream_name == "0Table"
        assert header.key_stream_length == 32
    # 헤더만 읽을 때는 검증도 일어나지 않음
    mock_xor.verifypw.assert_not_called()


def test_xor_document_main_stream(xor_doc, mock_xor):
    plain, _, data = xor_doc
    with open_session(data, StaticPassword(None)) as s:
        main = s.main_stream
        assert len(main) == len(plain)
        assert main == plain
        summary = s.encryption_summary()
        assert summary.scheme == "xor"
        assert summary.key_stream == "0Table"
        assert summary.chunk_size == 512
        assert s.has_object_pool()


def test_xor_document_bounded_reads(xor_doc, mock_xor):
    plain, _, data = xor_doc
    with open_session(data, StaticPassword(None)) as s:
        assert s.read_range("WordDocument", 68, 68) == plain[:68]
        out = s.read_range("WordDocument", 68, 200)
        assert out == plain[:200]
        # raw 와 달라야 함 (복호화됨)
        raw = s.read_range("WordDocument", -1, 200)
        assert out[:68] == raw[:68]
        assert out[68:] != raw[68:]


def test_xor_document_table_stream(xor_doc, mock_xor):
    _, table_plain, data = xor_doc
    with open_session(data, StaticPassword(None)) as s:
        table = s.table_stream()
        assert table[:4] == struct.pack("<HH", 0xBEEF, 0xCAFE)
        assert table[32:] == table_plain[32:]


def test_context_built_once_per_session(xor_doc, mock_xor):
    _, _, data = xor_doc
    with open_session(data, StaticPassword(None)) as s:
        with patch("doccrypt.modules.session.read_verbatim", wraps=read_verbatim) as reader:
            s.read_range("WordDocument", 68, UNBOUNDED)
            s.read_range("WordDocument", 0, 100)
            s.table_stream()
            assert reader.call_count == 1
    assert mock_xor.verifypw.call_count == 1


def test_wrong_password(xor_doc, mock_xor):
    _, _, data = xor_doc
    password = StaticPassword("not-it")
    with open_session(data, password) as s:
        with pytest.raises(WrongPassword):
            s.main_stream
        # 같은 세션에서 비밀번호를 바꿔 재시도
        password.password = DEFAULT_PASSWORD
        assert s.main_stream[68:100] != b""


def test_session_borrowed_container_not_closed(xor_doc, mock_xor):
    _, _, data = xor_doc
    ole = olefile.OleFileIO(io.BytesIO(data))
    container = OleContainer(ole)
    s = DocSession(container, StaticPassword(None))
    s.close()
    assert ole.exists("0Table")
    ole.close()


def test_password_set_after_open_is_used(xor_doc, mock_xor, monkeypatch):
    _, _, data = xor_doc
    monkeypatch.delenv("DOC_PASSWORD", raising=False)
    holder = CurrentPassword()
    holder.set("wrong")
    with open_session(data, holder) as s:
        # 세션 생성 뒤에 바꾼 값으로 검증
        holder.set(DEFAULT_PASSWORD)
        assert s.encryption_summary().scheme == "xor"
    mock_xor.verifypw.assert_called_once_with(DEFAULT_PASSWORD, 0xCAFE)
