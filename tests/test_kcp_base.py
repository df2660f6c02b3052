import pytest

from dapbridge.kcp_base import KcpBase
from dapbridge.kcp_codec import (
    ASK_TELL,
    MTU_DEF,
    OVERHEAD,
    WND_RCV,
    KcpError,
    LogMask,
    Segment,
)


def _push(kcp, sn, data, frg=0):
    kcp._parse_data(Segment(sn=sn, frg=frg, data=data))


def test_defaults():
    kcp = KcpBase(7)
    assert kcp.conv == 7
    assert kcp.mss == MTU_DEF - OVERHEAD
    assert kcp.rcv_wnd == WND_RCV
    assert kcp.waitsnd() == 0


def test_send_small_message_is_one_segment():
    kcp = KcpBase(1)
    kcp.send(b"hello")
    assert kcp.waitsnd() == 1
    seg = kcp.snd_queue[0]
    assert seg.data == b"hello"
    assert seg.frg == 0


def test_send_fragments_large_message():
    kcp = KcpBase(1)
    payload = bytes(range(256)) * 12
    kcp.send(payload)
    frgs = [seg.frg for seg in kcp.snd_queue]
    assert frgs == list(range(len(frgs) - 1, -1, -1))
    assert all(len(seg.data) <= kcp.mss for seg in kcp.snd_queue)
    assert b"".join(seg.data for seg in kcp.snd_queue) == payload


def test_send_empty_creates_empty_segment():
    kcp = KcpBase(1)
    kcp.send(b"")
    assert kcp.waitsnd() == 1
    assert kcp.snd_queue[0].data == b""


def test_send_too_many_fragments_raises():
    kcp = KcpBase(1)
    with pytest.raises(KcpError):
        kcp.send(b"x" * (kcp.mss * WND_RCV))
    assert kcp.waitsnd() == 0


def test_stream_mode_merges_into_last_segment():
    kcp = KcpBase(1)
    kcp.stream = True
    kcp.send(b"ab")
    kcp.send(b"cd")
    assert kcp.waitsnd() == 1
    assert kcp.snd_queue[0].data == b"abcd"


def test_stream_mode_overflow_starts_new_segment():
    kcp = KcpBase(1)
    kcp.stream = True
    kcp.send(b"a" * (kcp.mss - 1))
    kcp.send(b"b" * 10)
    lengths = [len(seg.data) for seg in kcp.snd_queue]
    assert lengths == [kcp.mss, 9]
    assert all(seg.frg == 0 for seg in kcp.snd_queue)


def test_recv_on_empty_queue():
    kcp = KcpBase(1)
    assert kcp.recv() is None
    assert kcp.peeksize() is None


def test_out_of_order_fragments_reassemble():
    kcp = KcpBase(1)
    _push(kcp, 2, b"ghi", frg=0)
    _push(kcp, 0, b"abc", frg=2)
    assert kcp.recv() is None
    _push(kcp, 1, b"def", frg=1)
    assert kcp.peeksize() == 9
    assert kcp.recv() == b"abcdefghi"
    assert kcp.rcv_nxt == 3
    assert kcp.nrcv_que == 0
    assert kcp.nrcv_buf == 0


def test_incomplete_message_not_delivered():
    kcp = KcpBase(1)
    _push(kcp, 0, b"part", frg=1)
    assert kcp.nrcv_que == 1
    assert kcp.peeksize() is None
    assert kcp.recv() is None


def test_peek_keeps_message():
    kcp = KcpBase(1)
    _push(kcp, 0, b"data")
    assert kcp.recv(peek=True) == b"data"
    assert kcp.nrcv_que == 1
    assert kcp.recv() == b"data"
    assert kcp.nrcv_que == 0


def test_recv_too_small_buffer_raises():
    kcp = KcpBase(1)
    _push(kcp, 0, b"abcdef")
    with pytest.raises(KcpError):
        kcp.recv(max_size=3)
    assert kcp.recv(max_size=6) == b"abcdef"


def test_duplicate_segment_discarded():
    kcp = KcpBase(1)
    _push(kcp, 1, b"x")
    _push(kcp, 1, b"y")
    assert kcp.nrcv_buf == 1
    assert kcp.rcv_buf[0].data == b"x"


def test_out_of_window_segment_dropped():
    kcp = KcpBase(1)
    _push(kcp, kcp.rcv_wnd, b"far")
    assert kcp.nrcv_buf == 0
    assert kcp.nrcv_que == 0


def test_full_queue_recovery_sets_ask_tell():
    kcp = KcpBase(1)
    for sn in range(kcp.rcv_wnd):
        _push(kcp, sn, bytes([sn % 256]))
    _push(kcp, kcp.rcv_wnd, b"z")
    assert kcp.nrcv_que == kcp.rcv_wnd
    assert kcp.nrcv_buf == 1
    assert kcp.probe & ASK_TELL == 0
    assert kcp.recv() == b"\x00"
    assert kcp.probe & ASK_TELL
    assert kcp.nrcv_que == kcp.rcv_wnd
    assert kcp.nrcv_buf == 0


def test_recv_logs_when_enabled():
    kcp = KcpBase(1)
    lines = []
    kcp.writelog = lambda msg, k: lines.append(msg)
    kcp.logmask = LogMask.RECV
    _push(kcp, 0, b"a")
    kcp.recv()
    assert lines == ["recv sn=0"]


def test_waitsnd_counts_queue_and_buffer():
    kcp = KcpBase(1)
    kcp.send(b"one")
    kcp.snd_buf.append(Segment(sn=0, data=b"sent"))
    assert kcp.waitsnd() == 2
    assert kcp.nsnd_que == 1
    assert kcp.nsnd_buf == 1