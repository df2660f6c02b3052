# dapbridge

Building blocks for a small wireless bridge device, usable on an ordinary
host:

- **KCP**: a reliable, ordered ARQ protocol that runs over any unreliable
  datagram transport (`dapbridge.kcp.Kcp`, built on `dapbridge.kcp_base.KcpBase`,
  with the wire format, constants and clock helpers in `dapbridge.kcp_codec`).
- **JSON API routing**: requests of the form
  `{"module": <id>, "cmd": <number>, ...}` are dispatched to registered
  handlers (`dapbridge.api_router.ApiModuleRegistry`). A handler may answer at
  once or defer its work through an `AsyncCall`, which can be turned into a
  `RequestTask` for `dapbridge.request_runner.RequestRunner`.
- **HTTP and WebSocket request handling** for that API
  (`dapbridge.http_api.handle_post`, `dapbridge.ws_api.handle_text`), the
  web server's URI matching rule (`dapbridge.uri_match.uri_match`) and
  priority-ordered URI handler registration
  (`dapbridge.uri_modules.UriModuleRegistry`).
- **Key-value storage** with typed integer and blob values, optionally kept
  in a JSON file (`dapbridge.nvs.NvsStore`), and persistence of the last
  Wi-Fi credential on top of it (`dapbridge.wifi_storage`).
- **A fixed pool of reusable buffers** (`dapbridge.memory_pool.MemoryPool`).
- **A binary frame header** (`dapbridge.data_def.BinDataHeader`, `DataType`).
- **API documents**: the system module (`dapbridge.system_api.SystemModule`)
  and the Wi-Fi JSON documents (`dapbridge.wifi_json`).
- **A UART-to-TCP bridge** that forwards a serial port to a single TCP
  client (`dapbridge.uart_bridge.UartTcpBridge`).

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## KCP

A `Kcp` object carries one conversation. Give it the conversation id and a
callable that receives each outgoing datagram as `bytes`, feed it incoming
datagrams with `input`, and drive its timers with `update`:

```python
from dapbridge.kcp import Kcp
from dapbridge.kcp_codec import clock32

kcp = Kcp(0x11223344, output)
kcp.set_nodelay(1, 20, 2, 1)          # the fastest profile

kcp.send(b"hello")
kcp.update(clock32())                 # call every 10-100 ms,
next_due = kcp.check(clock32())       # or at the time check() returns

kcp.input(datagram_from_peer)
message = kcp.recv(4096, False)       # None when no complete message is ready
```

Both ends must use the same conversation id. Malformed packets, a wrong
conversation id, oversized messages and invalid settings raise
`dapbridge.kcp_codec.KcpError`. `peeksize()` gives the size of the next
complete message, `waitsnd()` how many segments are still waiting to be sent
or acknowledged; `set_mtu`, `set_interval`, `set_nodelay` and `set_wndsize`
tune the connection.

## JSON API

Handlers are installed under a numeric id (0 to 9) with
`ApiModuleRegistry.register(module_id, handler)`; a handler is called as
`handler(cmd, request, async_call)` and returns an `ApiStatus`.
`ApiModuleRegistry.route` reads `module` and `cmd` from the request; a request
that is not a JSON object with numeric `module` and `cmd` members, or that
names an empty slot, is a `BAD_REQUEST`. Registering an id out of range or one
already in use raises `ModuleRegistrationError`.

```python
from dapbridge.api_router import ApiModuleRegistry
from dapbridge.http_api import handle_post
from dapbridge.system_api import SystemModule

registry = ApiModuleRegistry()
SystemModule("1.0.0", "2024-01-01", reboot=lambda: None).register(registry)

response = handle_post(registry, b'{"module": 0, "cmd": 1}')
# response.status == "200 OK", response.body is the firmware-info document
```

`handle_post` returns an `HttpResponse` (status line, body, content type and
whether the connection should be closed); it raises `ValueError` for an empty
body or one larger than `limit`. `handle_text` answers a WebSocket text frame
with the reply document, or with one of the fixed JSON error messages
(`error_message` maps a status to its message). Deferred calls are run before
the answer is produced. `WebSocketClients` keeps the set of connected clients,
with a send lock per client and a `broadcast` that drops clients whose send
fails.

`dapbridge.wifi_json` builds the Wi-Fi reply documents (`serialize_ap_info`,
`serialize_scan_list`, `create_error_response`, `default_ap_info`) from
`ApInfo` values.

## Storage

```python
from dapbridge.nvs import NvsStore, get_once

store = NvsStore("settings.json")     # or NvsStore() to keep it in memory
with store.open("app") as handle:     # leaving the block commits to the file
    handle.set(1, 42, 4)              # key 1 as a 32-bit unsigned integer
    handle.set(2, b"abc", 3)          # key 2 as a 3-byte blob
print(get_once(store, "app", 1, 4))   # 42
```

Reading a key that is not stored with the requested type raises
`NvsNotFoundError`. `dapbridge.wifi_storage.save_credential` and
`load_last_credential` keep one `WifiCredential` in such a store.

## UART-to-TCP bridge

```
dapbridge-uart --help
dapbridge-uart /dev/ttyUSB0 --baud 74880 --host 0.0.0.0 --port 1234
```

The bridge listens on a TCP port (1234 by default) and connects one client
at a time to a serial port (74880 baud by default); further clients are
refused while one is connected. Bytes received from the serial port go to the
client; bytes from the client go to the serial port. If the client's very
first chunk consists only of 2 to 7 decimal digits naming a rate below
2000000 (see `parse_baudrate`), it sets the serial port's baud rate instead of
being forwarded.

## What this package does not do

- It does not run an HTTP or WebSocket server. `handle_post`, `handle_text`,
  `uri_match` and `UriModuleRegistry` decide what to answer; accepting
  connections and sending frames is left to the server you plug them into.
- It does not manage Wi-Fi: there is no scanning, connecting or access-point
  setup, and no Wi-Fi handler is registered in the API. `dapbridge.wifi_json`
  only builds the documents and `dapbridge.wifi_storage` only stores the
  credential.
- It contains no debug-probe (DAP) functionality and no service announcement.
- `SystemModule` calls the reboot action it is given; it does not restart
  anything by itself.