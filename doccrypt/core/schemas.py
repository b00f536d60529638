from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

NO_DECRYPTION = -1
UNBOUNDED = 2**31 - 1


class HeaderRecord(BaseModel):
    """WordDocument 스트림 앞 68바이트 (FibBase + csw/fibRgW/cslw + cbMac)"""

    model_config = ConfigDict(frozen=True)

    w_ident: int
    n_fib: int
    lid: int
    pn_next: int

    f_dot: bool = False
    f_glsy: bool = False
    f_complex: bool = False
    f_has_pic: bool = False
    c_quick_saves: int = 0
    is_encrypted: bool = False
    use_alternate_key_stream: bool = False
    f_read_only_recommended: bool = False
    f_write_reservation: bool = False
    f_ext_char: bool = False
    f_load_override: bool = False
    f_far_east: bool = False
    is_legacy_obfuscated: bool = False

    n_fib_back: int = 0
    l_key: int = 0
    envr: int = 0
    f_mac: bool = False

    csw: int = 0
    lid_fe: int = 0
    cslw: int = 0
    cb_mac: int = 0

    @property
    def key_stream_offset(self) -> int:
        # 키 정보는 항상 Table 스트림 맨 앞에 있음
        return 0

    @property
    def key_stream_length(self) -> int:
        return self.l_key

    @property
    def key_stream_name(self) -> str:
        return "1Table" if self.use_alternate_key_stream else "0Table"


class ByteRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream_name: str = Field(min_length=1)
    plain_prefix_length: int = Field(default=NO_DECRYPTION, ge=NO_DECRYPTION)
    total_length: int = Field(default=UNBOUNDED, ge=0)

    @property
    def wants_decryption(self) -> bool:
        return self.plain_prefix_length > NO_DECRYPTION


class EncryptionSummary(BaseModel):
    scheme: str
    key_stream: str
    chunk_size: int
    key_size: Optional[int] = None
    version: Optional[str] = None
