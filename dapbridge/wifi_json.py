"""JSON documents of the Wi-Fi API: access point info, scan lists and errors."""

from __future__ import annotations

import copy
import enum
import ipaddress
from dataclasses import dataclass
from typing import Any, Iterable, Union

WIFI_MODULE_ID = 1

DEFAULT_HOSTNAME = "无线DAP"
DEFAULT_AP_SSID = "无线DAP"
DEFAULT_AP_IP = "192.168.1.1"
DEFAULT_AP_GATEWAY = "192.168.1.1"
DEFAULT_AP_NETMASK = "255.255.255.0"

SSID_MAX_BYTES = 32
MAC_SIZE = 6

Address = Union[str, ipaddress.IPv4Address]


class WifiCommand(enum.IntEnum):
    """Command numbers of the Wi-Fi API module."""

    UNKNOWN = 0
    STA_GET_AP_INFO = 1
    CONNECT = 2
    GET_SCAN = 3
    DISCONNECT = 4
    AP_GET_INFO = 5


@dataclass(frozen=True)
class ApInfo:
    """Addresses, name, hardware address and signal strength of an access point."""

    ssid: str
    mac: bytes
    rssi: int = 0
    ip: Address = "0.0.0.0"
    gateway: Address = "0.0.0.0"
    netmask: Address = "0.0.0.0"

    def __post_init__(self) -> None:
        for name in ("ip", "gateway", "netmask"):
            object.__setattr__(self, name, ipaddress.IPv4Address(getattr(self, name)))
        mac = bytes(self.mac)
        if len(mac) != MAC_SIZE:
            raise ValueError(f"mac must have {MAC_SIZE} bytes, got {len(mac)}")
        object.__setattr__(self, "mac", mac)
        if len(self.ssid.encode("utf-8")) > SSID_MAX_BYTES:
            raise ValueError(f"ssid is longer than {SSID_MAX_BYTES} bytes")
        if not -128 <= self.rssi <= 127:
            raise ValueError(f"rssi must fit in a signed byte, got {self.rssi}")


def format_mac(mac: bytes) -> str:
    """Colon-separated upper-case hex form of a six-byte hardware address."""
    mac = bytes(mac)
    if len(mac) != MAC_SIZE:
        raise ValueError(f"mac must have {MAC_SIZE} bytes, got {len(mac)}")
    return ":".join(f"{octet:02X}" for octet in mac)


def _header(cmd: int) -> dict[str, Any]:
    return {"cmd": int(cmd), "module": WIFI_MODULE_ID}


def serialize_ap_info(info: ApInfo, cmd: int) -> dict[str, Any]:
    """Reply document describing one access point."""
    document = _header(cmd)
    document.update(
        ip=str(info.ip),
        gateway=str(info.gateway),
        netmask=str(info.netmask),
        rssi=info.rssi,
        ssid=info.ssid,
        mac=format_mac(info.mac),
    )
    return document


def serialize_scan_list(aps: Iterable[ApInfo]) -> dict[str, Any]:
    """Reply document listing scanned access points in the given order."""
    document = _header(WifiCommand.GET_SCAN)
    document["scan_list"] = [
        {"rssi": ap.rssi, "ssid": ap.ssid, "mac": format_mac(ap.mac)} for ap in aps
    ]
    return document


def create_error_response(request: dict[str, Any], msg: str) -> dict[str, Any]:
    """Copy of the request document with a ``msg`` member added."""
    if not isinstance(request, dict):
        raise TypeError("request must be a JSON object")
    document = copy.deepcopy(request)
    document["msg"] = msg
    return document


def default_ap_info(mac: bytes) -> ApInfo:
    """Information about the device's own access point."""
    return ApInfo(
        ssid=DEFAULT_AP_SSID,
        mac=mac,
        rssi=0,
        ip=DEFAULT_AP_IP,
        gateway=DEFAULT_AP_GATEWAY,
        netmask=DEFAULT_AP_NETMASK,
    )