"""Wire format, constants and clock helpers for the KCP protocol."""

from __future__ import annotations

import enum
import struct
import time
from dataclasses import dataclass

RTO_NDL = 30
RTO_MIN = 100
RTO_DEF = 200
RTO_MAX = 60000
ASK_SEND = 1
ASK_TELL = 2
WND_SND = 32
WND_RCV = 128
MTU_DEF = 1400
ACK_FAST = 3
INTERVAL = 100
OVERHEAD = 24
DEADLINK = 20
THRESH_INIT = 2
THRESH_MIN = 2
PROBE_INIT = 7000
PROBE_LIMIT = 120000
FASTACK_LIMIT = 5

_HEADER = struct.Struct("<IBBHIIII")
_CONV = struct.Struct("<I")
_U32 = 0xFFFFFFFF


class KcpError(Exception):
    """Raised for malformed KCP data or invalid KCP operations."""


class Command(enum.IntEnum):
    """Segment command codes."""

    PUSH = 81
    ACK = 82
    WASK = 83
    WINS = 84


class LogMask(enum.IntFlag):
    """Categories of KCP log output."""

    OUTPUT = 1
    INPUT = 2
    SEND = 4
    RECV = 8
    IN_DATA = 16
    IN_ACK = 32
    IN_PROBE = 64
    IN_WINS = 128
    OUT_DATA = 256
    OUT_ACK = 512
    OUT_PROBE = 1024
    OUT_WINS = 2048


@dataclass
class Segment:
    """A KCP segment: header fields, payload and retransmission state."""

    conv: int = 0
    cmd: int = 0
    frg: int = 0
    wnd: int = 0
    ts: int = 0
    sn: int = 0
    una: int = 0
    data: bytes = b""
    resendts: int = 0
    rto: int = 0
    fastack: int = 0
    xmit: int = 0

    def encode(self) -> bytes:
        """Return the 24-byte little-endian header followed by the payload."""
        header = _HEADER.pack(
            self.conv & _U32,
            int(self.cmd) & 0xFF,
            self.frg & 0xFF,
            self.wnd & 0xFFFF,
            self.ts & _U32,
            self.sn & _U32,
            self.una & _U32,
            len(self.data) & _U32,
        )
        return header + bytes(self.data)


def decode_header(data: bytes) -> tuple[Segment, int]:
    """Decode a segment header from the start of ``data``.

    Returns a segment with an empty payload and the payload length the
    header announces.
    """
    if len(data) < OVERHEAD:
        raise KcpError(f"need {OVERHEAD} bytes for a header, got {len(data)}")
    conv, cmd, frg, wnd, ts, sn, una, length = _HEADER.unpack_from(data)
    segment = Segment(conv=conv, cmd=cmd, frg=frg, wnd=wnd, ts=ts, sn=sn, una=una)
    return segment, length


def get_conv(data: bytes) -> int:
    """Read the conversation id from the start of a packet."""
    if len(data) < _CONV.size:
        raise KcpError("packet too short to hold a conversation id")
    return _CONV.unpack_from(data)[0]


def itimediff(later: int, earlier: int) -> int:
    """Signed 32-bit difference of two wrapping 32-bit timestamps."""
    diff = (later - earlier) & _U32
    return diff - (1 << 32) if diff & 0x80000000 else diff


def clock64() -> int:
    """Current wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


def clock32() -> int:
    """Current wall-clock time in milliseconds, truncated to 32 bits."""
    return clock64() & _U32