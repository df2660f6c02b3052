"""Bridge between a serial port and a single TCP client."""

from __future__ import annotations

import argparse
import logging
import selectors
import socket
import threading
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1234
DEFAULT_BAUDRATE = 74880
UART_BUF_SIZE = 512
POLL_INTERVAL = 0.1
SERIAL_READ_TIMEOUT = 0.005
MAX_BAUDRATE = 2000000

_LISTEN = "listen"
_CLIENT = "client"


def num_digits(n: int) -> int:
    """Number of decimal digits of ``n``, capped at 7."""
    for digits, bound in enumerate((10, 100, 1000, 10000, 100000, 1000000), start=1):
        if n < bound:
            return digits
    return 7


def _atoi(data: bytes) -> int:
    text = data.split(b"\0", 1)[0].lstrip(b" \t\n\v\f\r")
    sign = 1
    if text[:1] in (b"+", b"-"):
        sign = -1 if text[:1] == b"-" else 1
        text = text[1:]
    value = 0
    for byte in text:
        if not 0x30 <= byte <= 0x39:
            break
        value = value * 10 + (byte - 0x30)
    return sign * value


def parse_baudrate(data: bytes) -> Optional[int]:
    """Baud rate requested by a client's first chunk, or None if it is not one.

    A request is 2 to 7 decimal digits with no sign, spaces or leading zero,
    naming a rate below 2000000.
    """
    data = bytes(data)
    if not 1 < len(data) < 8:
        return None
    baudrate = _atoi(data)
    if 0 < baudrate < MAX_BAUDRATE and num_digits(baudrate) == len(data):
        return baudrate
    return None


class UartTcpBridge:
    """Forwards bytes between ``serial_port`` and one TCP client at a time.

    ``serial_port`` is a pyserial ``Serial`` or any object with
    ``in_waiting``, ``read``, ``write`` and a writable ``baudrate``.
    The first chunk from a new client may set the baud rate instead of
    being forwarded.
    """

    def __init__(self, serial_port: Any, host: str = "0.0.0.0",
                 port: int = DEFAULT_PORT) -> None:
        self.serial_port = serial_port
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self._listener.bind((host, port))
            self._listener.listen()
        except OSError:
            self._listener.close()
            raise
        self._listener.setblocking(False)
        self._client: Optional[socket.socket] = None
        self._first_recv = False
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._serving = False
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        """Address the bridge listens on."""
        return self._listener.getsockname()[:2]

    @property
    def connected(self) -> bool:
        """Whether a client is connected."""
        return self._client is not None

    def serve_forever(self) -> None:
        """Serve clients until :meth:`close` is called."""
        with self._lock:
            if self._closed:
                raise RuntimeError("bridge is closed")
            self._serving = True
        selector = selectors.DefaultSelector()
        selector.register(self._listener, selectors.EVENT_READ, _LISTEN)
        try:
            while not self._stop.is_set():
                events = selector.select(POLL_INTERVAL)
                if not events:
                    if self._client is not None:
                        self._pump_uart(selector)
                    continue
                for key, _ in events:
                    if key.data == _LISTEN:
                        self._accept(selector)
                    elif self._client is not None:
                        self._on_client(selector)
        finally:
            selector.close()
            self._shutdown()

    def close(self) -> None:
        """Stop serving and close the listening and client sockets."""
        self._stop.set()
        with self._lock:
            serving = self._serving
        if not serving:
            self._shutdown()

    def __enter__(self) -> "UartTcpBridge":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._serving = False
        if self._client is not None:
            self._client.close()
            self._client = None
        self._listener.close()

    def _accept(self, selector: selectors.BaseSelector) -> None:
        try:
            conn, peer = self._listener.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            logger.error("accept failed: %s", exc)
            return
        if self._client is not None:
            conn.close()
            return
        logger.info("uart bridge accepted %s", peer)
        conn.setblocking(True)
        conn.settimeout(1.0)
        self._client = conn
        self._first_recv = True
        selector.register(conn, selectors.EVENT_READ, _CLIENT)

    def _drop_client(self, selector: selectors.BaseSelector) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        try:
            selector.unregister(client)
        except (KeyError, ValueError):
            pass
        client.close()

    def _pump_uart(self, selector: selectors.BaseSelector) -> None:
        size = min(self.serial_port.in_waiting, UART_BUF_SIZE)
        if size <= 0:
            return
        data = self.serial_port.read(size)
        if not data or self._client is None:
            return
        try:
            self._client.sendall(data)
        except OSError as exc:
            logger.info("client send failed: %s", exc)
            self._drop_client(selector)

    def _on_client(self, selector: selectors.BaseSelector) -> None:
        self._pump_uart(selector)
        if self._client is None:
            return
        try:
            data = self._client.recv(4096)
        except OSError:
            data = b""
        if not data:
            self._drop_client(selector)
            return
        self._handle_data(data)

    def _handle_data(self, data: bytes) -> None:
        if self._first_recv:
            self._first_recv = False
            baudrate = parse_baudrate(data)
            if baudrate is not None:
                logger.info("change baud: %d", baudrate)
                self.serial_port.baudrate = baudrate
                return
        self.serial_port.write(data)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the bridge on a serial device until interrupted."""
    parser = argparse.ArgumentParser(description="Bridge a serial port to a TCP client.")
    parser.add_argument("device", help="serial device, for example /dev/ttyUSB0")
    parser.add_argument("--baud", type=int, default=DEFAULT_BAUDRATE)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    import serial

    logging.basicConfig(level=logging.INFO)
    with serial.Serial(args.device, args.baud, timeout=SERIAL_READ_TIMEOUT) as port:
        bridge = UartTcpBridge(port, args.host, args.port)
        try:
            bridge.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            bridge.close()
    return 0