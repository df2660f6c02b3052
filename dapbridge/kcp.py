"""KCP control block: packet input, flushing, timers and tuning."""

from __future__ import annotations

from typing import Callable

from .kcp_base import KcpBase
from .kcp_codec import (
    ASK_SEND,
    ASK_TELL,
    OVERHEAD,
    PROBE_INIT,
    PROBE_LIMIT,
    RTO_MAX,
    RTO_MIN,
    RTO_NDL,
    THRESH_MIN,
    WND_RCV,
    Command,
    KcpError,
    LogMask,
    Segment,
    decode_header,
    itimediff,
)

_U32 = 0xFFFFFFFF
_COMMANDS = frozenset(int(c) for c in Command)

OutputFunc = Callable[[bytes], object]


class Kcp(KcpBase):
    """A KCP conversation that emits packets through ``output``."""

    def __init__(self, conv: int, output: OutputFunc) -> None:
        super().__init__(conv)
        self.output = output

    # -- output -----------------------------------------------------------

    def _output(self, data: bytes | bytearray) -> None:
        self._log(LogMask.OUTPUT, f"[RO] {len(data)} bytes")
        if not data:
            return
        self.output(bytes(data))

    # -- acknowledgement handling -----------------------------------------

    def _update_ack(self, rtt: int) -> None:
        if self.rx_srtt == 0:
            self.rx_srtt = rtt
            self.rx_rttval = rtt // 2
        else:
            delta = abs(rtt - self.rx_srtt)
            self.rx_rttval = (3 * self.rx_rttval + delta) // 4
            self.rx_srtt = max((7 * self.rx_srtt + rtt) // 8, 1)
        rto = self.rx_srtt + max(self.interval, 4 * self.rx_rttval)
        self.rx_rto = min(max(self.rx_minrto, rto), RTO_MAX)

    def _shrink_buf(self) -> None:
        self.snd_una = self.snd_buf[0].sn if self.snd_buf else self.snd_nxt

    def _parse_ack(self, sn: int) -> None:
        if itimediff(sn, self.snd_una) < 0 or itimediff(sn, self.snd_nxt) >= 0:
            return
        for index, seg in enumerate(self.snd_buf):
            if seg.sn == sn:
                del self.snd_buf[index]
                break
            if itimediff(sn, seg.sn) < 0:
                break

    def _parse_una(self, una: int) -> None:
        count = 0
        for seg in self.snd_buf:
            if itimediff(una, seg.sn) > 0:
                count += 1
            else:
                break
        del self.snd_buf[:count]

    def _parse_fastack(self, sn: int) -> None:
        if itimediff(sn, self.snd_una) < 0 or itimediff(sn, self.snd_nxt) >= 0:
            return
        for seg in self.snd_buf:
            if itimediff(sn, seg.sn) < 0:
                break
            if sn != seg.sn:
                seg.fastack += 1

    # -- input ------------------------------------------------------------

    def input(self, data: bytes) -> None:
        """Feed one low-level packet (for example a UDP datagram) into the conversation."""
        self._log(LogMask.INPUT, f"[RI] {len(data) if data is not None else 0} bytes")
        if data is None or len(data) < OVERHEAD:
            raise KcpError("packet shorter than a segment header")

        view = memoryview(bytes(data))
        prev_una = self.snd_una
        maxack = 0
        flag = False
        offset = 0

        while len(view) - offset >= OVERHEAD:
            seg, length = decode_header(view[offset:offset + OVERHEAD])
            if seg.conv != self.conv:
                raise KcpError(f"conversation {seg.conv} does not match {self.conv}")
            offset += OVERHEAD
            if len(view) - offset < length or length & 0x80000000:
                raise KcpError("segment length exceeds packet size")
            if seg.cmd not in _COMMANDS:
                raise KcpError(f"unknown command {seg.cmd}")

            self.rmt_wnd = seg.wnd
            self._parse_una(seg.una)
            self._shrink_buf()

            if seg.cmd == Command.ACK:
                rtt = itimediff(self.current, seg.ts)
                if rtt >= 0:
                    self._update_ack(rtt)
                self._parse_ack(seg.sn)
                self._shrink_buf()
                if not flag:
                    flag = True
                    maxack = seg.sn
                elif itimediff(seg.sn, maxack) > 0:
                    maxack = seg.sn
                self._log(LogMask.IN_ACK,
                          f"input ack: sn={seg.sn} rtt={rtt} rto={self.rx_rto}")
            elif seg.cmd == Command.PUSH:
                self._log(LogMask.IN_DATA, f"input psh: sn={seg.sn} ts={seg.ts}")
                if itimediff(seg.sn, self.rcv_nxt + self.rcv_wnd) < 0:
                    self.acklist.append((seg.sn, seg.ts))
                    if itimediff(seg.sn, self.rcv_nxt) >= 0:
                        seg.data = bytes(view[offset:offset + length])
                        self._parse_data(seg)
            elif seg.cmd == Command.WASK:
                self.probe |= ASK_TELL
                self._log(LogMask.IN_PROBE, "input probe")
            else:
                self._log(LogMask.IN_WINS, f"input wins: {seg.wnd}")

            offset += length

        if flag:
            self._parse_fastack(maxack)

        if itimediff(self.snd_una, prev_una) > 0 and self.cwnd < self.rmt_wnd:
            mss = self.mss
            if self.cwnd < self.ssthresh:
                self.cwnd += 1
                self.incr += mss
            else:
                if self.incr < mss:
                    self.incr = mss
                self.incr += (mss * mss) // self.incr + mss // 16
                if (self.cwnd + 1) * mss <= self.incr:
                    self.cwnd = (self.incr + mss - 1) // (mss if mss > 0 else 1)
            if self.cwnd > self.rmt_wnd:
                self.cwnd = self.rmt_wnd
                self.incr = self.rmt_wnd * mss

    # -- flush ------------------------------------------------------------

    def _wnd_unused(self) -> int:
        return max(self.rcv_wnd - len(self.rcv_queue), 0)

    def flush(self) -> None:
        """Emit pending acknowledgements, probes and data segments."""
        if not self.updated:
            return

        current = self.current
        buffer = bytearray()
        change = 0
        lost = False
        wnd = self._wnd_unused()

        def emit(seg: Segment) -> None:
            nonlocal buffer
            if len(buffer) + OVERHEAD + len(seg.data) > self.mtu:
                self._output(buffer)
                buffer = bytearray()
            buffer += seg.encode()

        for sn, ts in self.acklist:
            emit(Segment(conv=self.conv, cmd=Command.ACK, wnd=wnd,
                         ts=ts, sn=sn, una=self.rcv_nxt))
        self.acklist.clear()

        if self.rmt_wnd == 0:
            if self.probe_wait == 0:
                self.probe_wait = PROBE_INIT
                self.ts_probe = (self.current + self.probe_wait) & _U32
            elif itimediff(self.current, self.ts_probe) >= 0:
                if self.probe_wait < PROBE_INIT:
                    self.probe_wait = PROBE_INIT
                self.probe_wait += self.probe_wait // 2
                if self.probe_wait > PROBE_LIMIT:
                    self.probe_wait = PROBE_LIMIT
                self.ts_probe = (self.current + self.probe_wait) & _U32
                self.probe |= ASK_SEND
        else:
            self.ts_probe = 0
            self.probe_wait = 0

        if self.probe & ASK_SEND:
            emit(Segment(conv=self.conv, cmd=Command.WASK, wnd=wnd, una=self.rcv_nxt))
        if self.probe & ASK_TELL:
            emit(Segment(conv=self.conv, cmd=Command.WINS, wnd=wnd, una=self.rcv_nxt))
        self.probe = 0

        cwnd = min(self.snd_wnd, self.rmt_wnd)
        if not self.nocwnd:
            cwnd = min(self.cwnd, cwnd)

        while self.snd_queue and itimediff(self.snd_nxt, self.snd_una + cwnd) < 0:
            newseg = self.snd_queue.popleft()
            newseg.conv = self.conv
            newseg.cmd = Command.PUSH
            newseg.wnd = wnd
            newseg.ts = current
            newseg.sn = self.snd_nxt
            newseg.una = self.rcv_nxt
            newseg.resendts = current
            newseg.rto = self.rx_rto
            newseg.fastack = 0
            newseg.xmit = 0
            self.snd_buf.append(newseg)
            self.snd_nxt = (self.snd_nxt + 1) & _U32

        resent = self.fastresend if self.fastresend > 0 else _U32
        rtomin = (self.rx_rto >> 3) if self.nodelay == 0 else 0

        for segment in self.snd_buf:
            needsend = False
            if segment.xmit == 0:
                needsend = True
                segment.xmit += 1
                segment.rto = self.rx_rto
                segment.resendts = (current + segment.rto + rtomin) & _U32
            elif itimediff(current, segment.resendts) >= 0:
                needsend = True
                segment.xmit += 1
                self.xmit += 1
                if self.nodelay == 0:
                    segment.rto += max(segment.rto, self.rx_rto)
                else:
                    step = segment.rto if self.nodelay < 2 else self.rx_rto
                    segment.rto += step // 2
                segment.resendts = (current + segment.rto) & _U32
                lost = True
            elif segment.fastack >= resent:
                if segment.xmit <= self.fastlimit or self.fastlimit <= 0:
                    needsend = True
                    segment.xmit += 1
                    segment.fastack = 0
                    segment.resendts = (current + segment.rto) & _U32
                    change += 1

            if needsend:
                segment.ts = current
                segment.wnd = wnd
                segment.una = self.rcv_nxt
                emit(segment)
                if segment.xmit >= self.dead_link:
                    self.state = _U32

        if buffer:
            self._output(buffer)

        if change:
            inflight = (self.snd_nxt - self.snd_una) & _U32
            self.ssthresh = max(inflight // 2, THRESH_MIN)
            self.cwnd = (self.ssthresh + resent) & _U32
            self.incr = (self.cwnd * self.mss) & _U32

        if lost:
            self.ssthresh = max(cwnd // 2, THRESH_MIN)
            self.cwnd = 1
            self.incr = self.mss

        if self.cwnd < 1:
            self.cwnd = 1
            self.incr = self.mss

    # -- timers -----------------------------------------------------------

    def update(self, current: int) -> None:
        """Advance the clock to ``current`` milliseconds and flush when due."""
        self.current = current & _U32
        if not self.updated:
            self.updated = True
            self.ts_flush = self.current

        slap = itimediff(self.current, self.ts_flush)
        if slap >= 10000 or slap < -10000:
            self.ts_flush = self.current
            slap = 0

        if slap >= 0:
            self.ts_flush = (self.ts_flush + self.interval) & _U32
            if itimediff(self.current, self.ts_flush) >= 0:
                self.ts_flush = (self.current + self.interval) & _U32
            self.flush()

    def check(self, current: int) -> int:
        """Return the time at which ``update`` should next be called."""
        current &= _U32
        if not self.updated:
            return current

        ts_flush = self.ts_flush
        diff = itimediff(current, ts_flush)
        if diff >= 10000 or diff < -10000:
            ts_flush = current
        if itimediff(current, ts_flush) >= 0:
            return current

        tm_flush = itimediff(ts_flush, current)
        tm_packet = 0x7FFFFFFF
        for seg in self.snd_buf:
            diff = itimediff(seg.resendts, current)
            if diff <= 0:
                return current
            tm_packet = min(tm_packet, diff)

        minimal = min(tm_packet, tm_flush, self.interval)
        return (current + minimal) & _U32

    # -- tuning -----------------------------------------------------------

    def set_mtu(self, mtu: int) -> None:
        """Change the maximum transmission unit."""
        if mtu < 50 or mtu < OVERHEAD:
            raise KcpError(f"mtu {mtu} is too small")
        self.mtu = mtu
        self.mss = mtu - OVERHEAD

    def set_interval(self, interval: int) -> None:
        """Set the internal flush interval, clamped to 10..5000 ms."""
        self.interval = min(max(interval, 10), 5000)

    def set_nodelay(self, nodelay: int | None = None, interval: int | None = None,
                    resend: int | None = None, nc: int | None = None) -> None:
        """Tune latency; a None or negative argument leaves that setting unchanged."""
        if nodelay is not None and nodelay >= 0:
            self.nodelay = nodelay
            self.rx_minrto = RTO_NDL if nodelay else RTO_MIN
        if interval is not None and interval >= 0:
            self.set_interval(interval)
        if resend is not None and resend >= 0:
            self.fastresend = resend
        if nc is not None and nc >= 0:
            self.nocwnd = bool(nc)

    def set_wndsize(self, sndwnd: int, rcvwnd: int) -> None:
        """Set send and receive windows; non-positive values are ignored."""
        if sndwnd > 0:
            self.snd_wnd = sndwnd
        if rcvwnd > 0:
            self.rcv_wnd = max(rcvwnd, WND_RCV)