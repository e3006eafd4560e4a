#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
SSDP wire format and sockets

Only the subset needed for bridge discovery is covered:
  - NOTIFY ssdp:alive / ssdp:byebye
  - M-SEARCH requests and their unicast HTTP/1.1 200 OK responses
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
import struct
from dataclasses import dataclass, field
from typing import Dict, Optional

from ...lib.constants import (
    LOCATION_SCHEME,
    SSDP_MAX_AGE,
    SSDP_MULTICAST_ADDR,
    SSDP_MULTICAST_TTL,
    SSDP_PORT,
    SSDP_SERVER_HEADER,
    USN_PREFIX,
)

logger = logging.getLogger(__name__)

NTS_ALIVE = "ssdp:alive"
NTS_BYEBYE = "ssdp:byebye"

KIND_NOTIFY = "NOTIFY"
KIND_SEARCH = "M-SEARCH"
KIND_RESPONSE = "RESPONSE"

_HEADER_RE = re.compile(r"^([^:\s]+)\s*:\s*(.*)$")
_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(\d+)", re.I)
_UNSPECIFIED_HOSTS = ("", "0.0.0.0", "::", "[::]")


@dataclass(frozen=True)
class SsdpMessage:
    """
    Parsed SSDP datagram, header names upper-cased

    Example (output):
        SsdpMessage(kind="NOTIFY", headers={"NT": "falnet_nerves:bridge", "NTS": "ssdp:alive", ...})
    """

    kind: str
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str:
        return self.headers.get(name.upper(), "")

    @property
    def type(self) -> str:
        """NT for notifications, ST for searches and responses"""
        if self.kind == KIND_NOTIFY:
            return self.header("NT")
        return self.header("ST")

    @property
    def usn(self) -> str:
        return self.header("USN")

    @property
    def location(self) -> str:
        return self.header("LOCATION")

    @property
    def is_alive(self) -> bool:
        return self.kind == KIND_RESPONSE or (self.kind == KIND_NOTIFY and self.header("NTS") == NTS_ALIVE)

    @property
    def is_byebye(self) -> bool:
        return self.kind == KIND_NOTIFY and self.header("NTS") == NTS_BYEBYE

    @property
    def max_age(self) -> Optional[int]:
        m = _MAX_AGE_RE.search(self.header("CACHE-CONTROL"))
        return int(m.group(1)) if m else None


def parse_message(data: bytes) -> Optional[SsdpMessage]:
    """Parse a datagram, None when it is not SSDP"""
    try:
        text = data.decode("utf-8", errors="replace")
    except AttributeError:
        text = str(data)
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines:
        return None

    start = lines[0].strip().upper()
    if start.startswith("NOTIFY "):
        kind = KIND_NOTIFY
    elif start.startswith("M-SEARCH "):
        kind = KIND_SEARCH
    elif start.startswith("HTTP/1.1 200") or start.startswith("HTTP/1.0 200"):
        kind = KIND_RESPONSE
    else:
        return None

    headers: Dict[str, str] = {}
    for line in lines[1:]:
        if not line.strip():
            break
        m = _HEADER_RE.match(line.strip())
        if m:
            headers[m.group(1).upper()] = m.group(2).strip()
    return SsdpMessage(kind=kind, headers=headers)


def _render(start_line: str, headers: Dict[str, str]) -> bytes:
    lines = [start_line]
    lines.extend(f"{k}: {v}" for k, v in headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def build_alive(
    nt: str,
    usn: str,
    location: str,
    *,
    server: str = SSDP_SERVER_HEADER,
    max_age: int = SSDP_MAX_AGE,
) -> bytes:
    return _render(
        "NOTIFY * HTTP/1.1",
        {
            "HOST": f"{SSDP_MULTICAST_ADDR}:{SSDP_PORT}",
            "NT": nt,
            "NTS": NTS_ALIVE,
            "USN": usn,
            "LOCATION": location,
            "SERVER": server,
            "CACHE-CONTROL": f"max-age={max_age}",
        },
    )


def build_byebye(nt: str, usn: str) -> bytes:
    return _render(
        "NOTIFY * HTTP/1.1",
        {
            "HOST": f"{SSDP_MULTICAST_ADDR}:{SSDP_PORT}",
            "NT": nt,
            "NTS": NTS_BYEBYE,
            "USN": usn,
        },
    )


def build_search(st: str, mx: int = 1) -> bytes:
    return _render(
        "M-SEARCH * HTTP/1.1",
        {
            "HOST": f"{SSDP_MULTICAST_ADDR}:{SSDP_PORT}",
            "MAN": '"ssdp:discover"',
            "MX": str(max(1, mx)),
            "ST": st,
        },
    )


def build_search_response(
    st: str,
    usn: str,
    location: str,
    *,
    server: str = SSDP_SERVER_HEADER,
    max_age: int = SSDP_MAX_AGE,
) -> bytes:
    return _render(
        "HTTP/1.1 200 OK",
        {
            "CACHE-CONTROL": f"max-age={max_age}",
            "EXT": "",
            "ST": st,
            "USN": usn,
            "LOCATION": location,
            "SERVER": server,
        },
    )


# ---- identifiers ----


def bridge_usn(bridge_id: str) -> str:
    return f"{USN_PREFIX}{bridge_id}"


def usn_to_bridge_id(usn: str) -> str:
    """uuid:<bridge_id>[::<type>] -> bridge_id"""
    value = usn.strip()
    if value.lower().startswith(USN_PREFIX):
        value = value[len(USN_PREFIX):]
    return value.split("::", 1)[0]


def make_location(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{LOCATION_SCHEME}{host}:{port}"


def strip_location_scheme(location: str) -> str:
    value = location.strip()
    if value.startswith(LOCATION_SCHEME):
        return value[len(LOCATION_SCHEME):]
    return value


def is_unspecified_host(host: str) -> bool:
    return host.strip() in _UNSPECIFIED_HOSTS


def primary_unicast_address() -> str:
    """
    First non-loopback unicast IPv4 address of this host

    Connecting a UDP socket sends nothing, it only makes the kernel pick the
    outgoing interface
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect((SSDP_MULTICAST_ADDR, SSDP_PORT))
        addr = sock.getsockname()[0]
        if not ipaddress.ip_address(addr).is_loopback and not ipaddress.ip_address(addr).is_unspecified:
            return addr
    except OSError as e:
        logger.debug("Could not resolve outgoing interface: %r", e)
    finally:
        sock.close()

    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            addr = info[4][0]
            if not ipaddress.ip_address(addr).is_loopback:
                return addr
    except OSError as e:
        logger.debug("Could not resolve host addresses: %r", e)
    raise RuntimeError("no non-loopback unicast address found")


# ---- sockets ----


def open_multicast_listener() -> socket.socket:
    """UDP socket bound to the SSDP port and joined to the multicast group"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.bind(("", SSDP_PORT))
        mreq = struct.pack("4sl", socket.inet_aton(SSDP_MULTICAST_ADDR), socket.INADDR_ANY)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, SSDP_MULTICAST_TTL)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def open_sender() -> socket.socket:
    """Unbound UDP socket for multicast sends and unicast replies"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, SSDP_MULTICAST_TTL)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock
