"""Binary data frame header shared by the transport modules."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import ClassVar

_HEADER = struct.Struct("<BBBx")


class DataType(enum.IntEnum):
    """Type of the payload that follows a binary header."""

    RESERVED = 0x00
    EVENT = 0x02
    ROUTE_HDR = 0x03
    RAW_BROADCAST = 0x04
    CMD_BROADCAST = 0x11
    RAW = 0x20
    CMD = 0x21
    RESPONSE = 0x22
    PROTOBUF = 0x40
    JSON = 0x41
    MQTT = 0x42


@dataclass(frozen=True)
class BinDataHeader:
    """Four-byte header: payload type, module id, sub id and one pad byte."""

    SIZE: ClassVar[int] = _HEADER.size

    data_type: DataType
    module_id: int = 0
    sub_id: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_type", DataType(self.data_type))
        for name in ("module_id", "sub_id"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} must fit in one byte, got {value}")

    def pack(self) -> bytes:
        """Encode the header."""
        return _HEADER.pack(self.data_type, self.module_id, self.sub_id)

    @classmethod
    def unpack(cls, data: bytes) -> "BinDataHeader":
        """Decode a header from the start of ``data``."""
        if len(data) < cls.SIZE:
            raise ValueError(f"need {cls.SIZE} bytes for a header, got {len(data)}")
        data_type, module_id, sub_id = _HEADER.unpack_from(data)
        return cls(DataType(data_type), module_id, sub_id)