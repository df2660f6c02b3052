"""Queue management shared by every KCP control block: send and receive side."""

from __future__ import annotations

from collections import deque
from typing import Callable, Optional

from .kcp_codec import (
    ASK_TELL,
    DEADLINK,
    FASTACK_LIMIT,
    INTERVAL,
    MTU_DEF,
    OVERHEAD,
    RTO_DEF,
    RTO_MIN,
    THRESH_INIT,
    WND_RCV,
    WND_SND,
    KcpError,
    LogMask,
    Segment,
    itimediff,
)

_U32 = 0xFFFFFFFF

LogWriter = Callable[[str, "KcpBase"], None]


class KcpBase:
    """State of a KCP conversation with fragmenting send and reassembling receive."""

    def __init__(self, conv: int) -> None:
        self.conv = conv & _U32
        self.snd_una = 0
        self.snd_nxt = 0
        self.rcv_nxt = 0
        self.ts_recent = 0
        self.ts_lastack = 0
        self.ts_probe = 0
        self.probe_wait = 0
        self.snd_wnd = WND_SND
        self.rcv_wnd = WND_RCV
        self.rmt_wnd = WND_RCV
        self.cwnd = 0
        self.incr = 0
        self.probe = 0
        self.mtu = MTU_DEF
        self.mss = self.mtu - OVERHEAD
        self.stream = False
        self.snd_queue: deque[Segment] = deque()
        self.rcv_queue: deque[Segment] = deque()
        self.snd_buf: list[Segment] = []
        self.rcv_buf: list[Segment] = []
        self.state = 0
        self.acklist: list[tuple[int, int]] = []
        self.rx_srtt = 0
        self.rx_rttval = 0
        self.rx_rto = RTO_DEF
        self.rx_minrto = RTO_MIN
        self.current = 0
        self.interval = INTERVAL
        self.ts_flush = INTERVAL
        self.nodelay = 0
        self.updated = False
        self.logmask = LogMask(0)
        self.ssthresh = THRESH_INIT
        self.fastresend = 0
        self.fastlimit = FASTACK_LIMIT
        self.nocwnd = False
        self.xmit = 0
        self.dead_link = DEADLINK
        self.writelog: Optional[LogWriter] = None

    # -- counters ---------------------------------------------------------

    @property
    def nsnd_que(self) -> int:
        return len(self.snd_queue)

    @property
    def nrcv_que(self) -> int:
        return len(self.rcv_queue)

    @property
    def nsnd_buf(self) -> int:
        return len(self.snd_buf)

    @property
    def nrcv_buf(self) -> int:
        return len(self.rcv_buf)

    # -- logging ----------------------------------------------------------

    def _can_log(self, mask: LogMask) -> bool:
        return bool(mask & self.logmask) and self.writelog is not None

    def _log(self, mask: LogMask, message: str) -> None:
        if self._can_log(mask):
            assert self.writelog is not None
            self.writelog(message, self)

    # -- send side --------------------------------------------------------

    def send(self, data: bytes) -> None:
        """Queue ``data`` for sending, split into segments of at most ``mss`` bytes."""
        if self.mss <= 0:
            raise KcpError("mss must be positive")
        data = bytes(data)

        if self.stream:
            if self.snd_queue:
                old = self.snd_queue[-1]
                if len(old.data) < self.mss:
                    extend = min(len(data), self.mss - len(old.data))
                    old.data = old.data + data[:extend]
                    old.frg = 0
                    data = data[extend:]
            if not data:
                return

        length = len(data)
        count = 1 if length <= self.mss else (length + self.mss - 1) // self.mss
        if count >= WND_RCV:
            raise KcpError(f"message of {length} bytes needs too many fragments ({count})")

        for index in range(count):
            chunk = data[index * self.mss:(index + 1) * self.mss]
            frg = 0 if self.stream else count - index - 1
            self.snd_queue.append(Segment(data=chunk, frg=frg))

    def waitsnd(self) -> int:
        """Number of segments waiting to be sent or acknowledged."""
        return len(self.snd_buf) + len(self.snd_queue)

    # -- receive side -----------------------------------------------------

    def peeksize(self) -> Optional[int]:
        """Size of the next complete message, or None if none is ready."""
        if not self.rcv_queue:
            return None
        first = self.rcv_queue[0]
        if first.frg == 0:
            return len(first.data)
        if len(self.rcv_queue) < first.frg + 1:
            return None
        length = 0
        for seg in self.rcv_queue:
            length += len(seg.data)
            if seg.frg == 0:
                break
        return length

    def recv(self, max_size: Optional[int] = None, peek: bool = False) -> Optional[bytes]:
        """Return the next complete message, or None if none is ready.

        With ``peek`` the message stays queued. Raises KcpError when the
        message is larger than ``max_size``.
        """
        if not self.rcv_queue:
            return None
        size = self.peeksize()
        if size is None:
            return None
        if max_size is not None and size > max_size:
            raise KcpError(f"message of {size} bytes exceeds buffer of {max_size}")

        recover = len(self.rcv_queue) >= self.rcv_wnd

        parts: list[bytes] = []
        if peek:
            for seg in self.rcv_queue:
                parts.append(seg.data)
                self._log(LogMask.RECV, f"recv sn={seg.sn}")
                if seg.frg == 0:
                    break
        else:
            while self.rcv_queue:
                seg = self.rcv_queue.popleft()
                parts.append(seg.data)
                self._log(LogMask.RECV, f"recv sn={seg.sn}")
                if seg.frg == 0:
                    break

        message = b"".join(parts)
        assert len(message) == size

        self._move_ready_segments()

        if recover and len(self.rcv_queue) < self.rcv_wnd:
            self.probe |= ASK_TELL

        return message

    def _move_ready_segments(self) -> None:
        """Move in-order segments from the receive buffer to the receive queue."""
        while self.rcv_buf:
            seg = self.rcv_buf[0]
            if seg.sn != self.rcv_nxt or len(self.rcv_queue) >= self.rcv_wnd:
                break
            self.rcv_buf.pop(0)
            self.rcv_queue.append(seg)
            self.rcv_nxt = (self.rcv_nxt + 1) & _U32

    def _parse_data(self, newseg: Segment) -> None:
        """Store an incoming data segment in order, dropping duplicates and out-of-window ones."""
        sn = newseg.sn
        if (itimediff(sn, self.rcv_nxt + self.rcv_wnd) >= 0
                or itimediff(sn, self.rcv_nxt) < 0):
            return

        insert_at = 0
        for index in range(len(self.rcv_buf) - 1, -1, -1):
            seg = self.rcv_buf[index]
            if seg.sn == sn:
                break
            if itimediff(sn, seg.sn) > 0:
                insert_at = index + 1
                self.rcv_buf.insert(insert_at, newseg)
                break
        else:
            self.rcv_buf.insert(insert_at, newseg)

        self._move_ready_segments()