import struct

from doccrypt.core.config import get_logger
from doccrypt.core.errors import TruncatedHeader
from doccrypt.core.schemas import HeaderRecord

log = get_logger("doc_fib")

FIB_BASE_LEN = 68
WORD_IDENT = 0xA5EC

# FibBase 플래그 (offset 0x000A)
F_DOT = 0x0001
F_GLSY = 0x0002
F_COMPLEX = 0x0004
F_HAS_PIC = 0x0008
C_QUICK_SAVES = 0x00F0
F_ENCRYPTED = 0x0100
F_WHICH_TBL_STM = 0x0200
F_READ_ONLY_RECOMMENDED = 0x0400
F_WRITE_RESERVATION = 0x0800
F_EXT_CHAR = 0x1000
F_LOAD_OVERRIDE = 0x2000
F_FAR_EAST = 0x4000
F_OBFUSCATED = 0x8000


# 리틀엔디언 헬퍼
def le16(b: bytes, off: int) -> int:
    return struct.unpack_from("<H", b, off)[0]

def le32(b: bytes, off: int) -> int:
    return struct.unpack_from("<I", b, off)[0]


def parse_header(data: bytes) -> HeaderRecord:
    if len(data) < FIB_BASE_LEN:
        raise TruncatedHeader(FIB_BASE_LEN, len(data))

    flags = le16(data, 0x000A)
    w_ident = le16(data, 0x0000)
    if w_ident != WORD_IDENT:
        log.warning("unexpected wIdent 0x%04X", w_ident)

    header = HeaderRecord(
        w_ident=w_ident,
        n_fib=le16(data, 0x0002),
        lid=le16(data, 0x0006),
        pn_next=le16(data, 0x0008),
        f_dot=bool(flags & F_DOT),
        f_glsy=bool(flags & F_GLSY),
        f_complex=bool(flags & F_COMPLEX),
        f_has_pic=bool(flags & F_HAS_PIC),
        c_quick_saves=(flags & C_QUICK_SAVES) >> 4,
        is_encrypted=bool(flags & F_ENCRYPTED),
        use_alternate_key_stream=bool(flags & F_WHICH_TBL_STM),
        f_read_only_recommended=bool(flags & F_READ_ONLY_RECOMMENDED),
        f_write_reservation=bool(flags & F_WRITE_RESERVATION),
        f_ext_char=bool(flags & F_EXT_CHAR),
        f_load_override=bool(flags & F_LOAD_OVERRIDE),
        f_far_east=bool(flags & F_FAR_EAST),
        is_legacy_obfuscated=bool(flags & F_OBFUSCATED),
        n_fib_back=le16(data, 0x000C),
        l_key=le32(data, 0x000E),
        envr=data[0x0012],
        f_mac=bool(data[0x0013] & 0x01),
        csw=le16(data, 0x0020),
        lid_fe=le16(data, 0x0022 + 13 * 2),  # fibRgW 마지막 항목
        cslw=le16(data, 0x003E),
        cb_mac=le32(data, 0x0040),
    )
    log.debug(
        "FIB nFib=0x%04X flags=0x%04X lKey=%d", header.n_fib, flags, header.l_key
    )
    return header
