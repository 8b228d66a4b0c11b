"""SCALE primitive decoding: compact integers, byte vectors and fixed-width uints"""
from typing import Tuple

from account_monitor.errors import Truncated

# Big-integer mode keeps only the low 8 bytes, larger magnitudes truncate
MAX_BIG_INT_BYTES = 8


def decode_compact_uint(buf: bytes) -> Tuple[int, int]:
    """
    Decode a SCALE compact unsigned integer from the start of buf.

    The low 2 bits of the first byte select the mode:
        0 -> single byte, 1 -> 2 bytes LE, 2 -> 4 bytes LE (each shifted right by 2),
        3 -> (first_byte >> 2) + 4 following bytes, little-endian.

    Returns:
        (value, bytes_consumed), or (0, 0) when buf is too short
    """
    if not buf:
        return 0, 0

    first = buf[0]
    mode = first & 0b11

    if mode == 0:
        return first >> 2, 1

    if mode == 1:
        if len(buf) < 2:
            return 0, 0
        return int.from_bytes(buf[:2], "little") >> 2, 2

    if mode == 2:
        if len(buf) < 4:
            return 0, 0
        return int.from_bytes(buf[:4], "little") >> 2, 4

    length = (first >> 2) + 4
    if len(buf) < 1 + length:
        return 0, 0
    value = int.from_bytes(buf[1:1 + min(length, MAX_BIG_INT_BYTES)], "little")
    return value, 1 + length


def decode_byte_vector(buf: bytes) -> bytes:
    """Decode a compact-length-prefixed Vec<u8>"""
    value, _ = ScaleReader(buf).read_byte_vector()
    return value


class ScaleReader:
    """Sequential reader over a SCALE-encoded buffer"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def skip(self, length: int) -> None:
        self.read_bytes(length)

    def read_bytes(self, length: int) -> bytes:
        if self.remaining < length:
            raise Truncated(f"need {length} bytes at offset {self.offset}, have {self.remaining}")
        chunk = self.data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def read_uint(self, width: int) -> int:
        """Read a fixed-width little-endian unsigned integer"""
        return int.from_bytes(self.read_bytes(width), "little")

    def read_u8(self) -> int:
        return self.read_uint(1)

    def read_u32(self) -> int:
        return self.read_uint(4)

    def read_u128(self) -> int:
        return self.read_uint(16)

    def read_compact(self) -> int:
        value, consumed = decode_compact_uint(self.data[self.offset:])
        if consumed == 0:
            raise Truncated(f"incomplete compact integer at offset {self.offset}")
        self.offset += consumed
        return value

    def read_byte_vector(self) -> Tuple[bytes, int]:
        """
        Read a Vec<u8>.

        Returns:
            (payload, total bytes consumed including the length prefix)
        """
        start = self.offset
        length = self.read_compact()
        try:
            payload = self.read_bytes(length)
        except Truncated:
            self.offset = start
            raise
        return payload, self.offset - start
