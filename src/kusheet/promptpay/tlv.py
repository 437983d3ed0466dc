"""
EMVCo TLV primitives and the CRC-16/CCITT-FALSE trailer checksum.
"""

from typing import Any, Iterator, NamedTuple

from kusheet.errors import InvalidFormatError

CRC_INIT = 0xFFFF
CRC_POLY = 0x1021
MAX_VALUE_LENGTH = 99


class TLVField(NamedTuple):
    tag: str
    length: int
    value: str


def tlv(tag: str, value: Any) -> str:
    """Encode one field as tag + 2-digit length + value. Empty values are omitted.

    Raises ``InvalidFormatError`` for values longer than 99 characters.
    """
    if not value:
        return ""
    text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        raise InvalidFormatError(
            f"TLV value for tag {tag} exceeds {MAX_VALUE_LENGTH} characters",
            {"tag": tag, "length": len(text)},
        )
    return f"{tag}{len(text):02d}{text}"


def crc16(data: str) -> str:
    """CRC-16/CCITT-FALSE over the character codes of ``data``, as 4 uppercase hex digits."""
    crc = CRC_INIT
    for ch in data:
        crc ^= (ord(ch) << 8) & 0xFFFF
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC_POLY) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def iter_tlv(data: str) -> Iterator[TLVField]:
    """Walk a TLV stream from offset 0.

    Stops quietly at the first header whose length is not two digits or
    whose value would run past the end of ``data``.
    """
    pos = 0
    while pos + 4 <= len(data):
        tag = data[pos:pos + 2]
        length_text = data[pos + 2:pos + 4]
        if not length_text.isdigit():
            return
        length = int(length_text)
        if pos + 4 + length > len(data):
            return
        yield TLVField(tag, length, data[pos + 4:pos + 4 + length])
        pos += 4 + length
