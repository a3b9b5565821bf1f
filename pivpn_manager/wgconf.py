"""Model and text codec for WireGuard tunnel configuration files.

The format is the one read by ``wg-quick``: an ``[Interface]`` section
followed by any number of ``[Peer]`` sections. On top of it peers may be
wrapped in ``### begin <name> ###`` / ``### end <name> ###`` markers to give
them a name, and a whole peer block may be commented out line by line with a
``#[disabled] `` prefix so the peer stays in the file but is inert.

Parsing is structural: comments and formatting are not preserved, but
``parse_config(cfg.export())`` always yields a configuration equal to ``cfg``.
"""
import enum
import ipaddress
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .errors import DuplicatePeerError, FileError, InvalidPeerNameError, ParseError, PeerNotFoundError
from .keys import Key, parse_key_base64

logger = logging.getLogger(__name__)

Prefix = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]
IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

DISABLED_PREFIX = "#[disabled] "
_DISABLED_TAG = "[disabled]"
_DISABLED_STRIP = "[disabled] "

MIN_MTU = 576
MAX_UINT16 = 65535
MAX_UINT32 = 4294967295

CONFIG_FILE_MODE = 0o640

_PEER_NAME = r"[a-zA-Z0-9.@_-]+"
# Matched against the text after the first "#" of a line.
_BEGIN_RE = re.compile(rf"^## begin ({_PEER_NAME}) ###\s*$")
_BEGIN_WITH_DISABLED_RE = re.compile(rf"^(\[disabled\] #)?## begin ({_PEER_NAME}) ###\s*$")
_END_RE = re.compile(rf"^## end ({_PEER_NAME}) ###\s*$")
_DISABLED_HEADER_RE = re.compile(r"^\[disabled\] \[peer\]\s*$", re.IGNORECASE)
_DIGITS_RE = re.compile(r"[0-9]+")


@dataclass()
class Endpoint:
    host: str = ""
    port: int = 0

    def is_empty(self) -> bool:
        return not self.host

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass()
class Interface:
    private_key: Key = field(default_factory=Key)
    addresses: List[Prefix] = field(default_factory=list)
    listen_port: int = 0
    mtu: int = 0
    dns: List[IPAddress] = field(default_factory=list)
    dns_search: List[str] = field(default_factory=list)
    pre_up: str = ""
    post_up: str = ""
    pre_down: str = ""
    post_down: str = ""
    table_off: bool = False


@dataclass()
class Peer:
    name: str = ""
    disabled: bool = False
    public_key: Key = field(default_factory=Key)
    preshared_key: Key = field(default_factory=Key)
    allowed_ips: List[Prefix] = field(default_factory=list)
    endpoint: Endpoint = field(default_factory=Endpoint)
    persistent_keepalive: int = 0

    def export(self) -> str:
        """Render this peer as a block of lines, each ending with a newline."""
        lines: List[str] = []
        if self.name:
            lines.append(f"### begin {self.name} ###")
        lines.append("[Peer]")
        lines.append(f"PublicKey = {self.public_key}")
        if not self.preshared_key.is_zero():
            lines.append(f"PresharedKey = {self.preshared_key}")
        if self.allowed_ips:
            lines.append(f"AllowedIPs = {', '.join(str(a) for a in self.allowed_ips)}")
        if not self.endpoint.is_empty():
            lines.append(f"Endpoint = {self.endpoint}")
        if self.persistent_keepalive > 0:
            lines.append(f"PersistentKeepalive = {self.persistent_keepalive}")
        if self.name:
            lines.append(f"### end {self.name} ###")
        prefix = DISABLED_PREFIX if self.disabled else ""
        return "".join(f"{prefix}{line}\n" for line in lines)


@dataclass()
class WireGuardConfig:
    name: str = ""
    interface: Interface = field(default_factory=Interface)
    peers: List[Peer] = field(default_factory=list)

    # File IO
    @classmethod
    def read_file(cls, path: str, name: Optional[str] = None) -> "WireGuardConfig":
        if name is None:
            name = os.path.splitext(os.path.basename(path))[0]
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise FileError(path, e) from e
        try:
            return parse_config(text, name)
        except ParseError as e:
            raise FileError(path, e) from e

    def write_file(self, path: str, mode: int = CONFIG_FILE_MODE) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.export())
            os.chmod(path, mode)
        except OSError as e:
            raise FileError(path, e) from e
        logger.debug("wrote %s (%d peers)", path, len(self.peers))

    def export(self) -> str:
        iface = self.interface
        lines: List[str] = ["[Interface]", f"PrivateKey = {iface.private_key}"]
        if iface.listen_port > 0:
            lines.append(f"ListenPort = {iface.listen_port}")
        if iface.addresses:
            lines.append(f"Address = {', '.join(str(a) for a in iface.addresses)}")
        if iface.dns or iface.dns_search:
            entries = [str(a) for a in iface.dns] + list(iface.dns_search)
            lines.append(f"DNS = {', '.join(entries)}")
        if iface.mtu > 0:
            lines.append(f"MTU = {iface.mtu}")
        if iface.pre_up:
            lines.append(f"PreUp = {iface.pre_up}")
        if iface.post_up:
            lines.append(f"PostUp = {iface.post_up}")
        if iface.pre_down:
            lines.append(f"PreDown = {iface.pre_down}")
        if iface.post_down:
            lines.append(f"PostDown = {iface.post_down}")
        if iface.table_off:
            lines.append("Table = off")
        out = "".join(f"{line}\n" for line in lines)
        for peer in self.peers:
            out += "\n" + peer.export()
        return out

    # Peer registry
    def add_peer(self, peer: Peer) -> None:
        if not peer.name:
            raise InvalidPeerNameError("peer must have a name")
        for p in self.peers:
            if p.name == peer.name:
                raise DuplicatePeerError(f"peer {peer.name!r} is already registered")
        self.peers.append(peer)

    def remove_peer(self, name: str) -> Peer:
        idx = self._last_peer_index(name)
        return self.peers.pop(idx)

    def enable_peer(self, name: str) -> None:
        self.peers[self._last_peer_index(name)].disabled = False

    def disable_peer(self, name: str) -> None:
        self.peers[self._last_peer_index(name)].disabled = True

    def _last_peer_index(self, name: str) -> int:
        # Duplicate names can only come from a hand-edited file; the last one wins.
        idx = -1
        for i, peer in enumerate(self.peers):
            if peer.name == name:
                idx = i
        if idx < 0:
            raise PeerNotFoundError(name)
        return idx

    def deduplicate_network_entries(self) -> None:
        self.interface.addresses = _dedupe(self.interface.addresses)
        self.interface.dns = _dedupe(self.interface.dns)
        for peer in self.peers:
            peer.allowed_ips = _dedupe(peer.allowed_ips)


def _dedupe(items: list) -> list:
    seen = set()
    out = []
    for item in items:
        s = str(item)
        if s in seen:
            continue
        seen.add(s)
        out.append(item)
    return out


# Value parsers


def parse_ip_cidr(value: str) -> Prefix:
    """Parse ``addr/bits``; a bare address becomes a host route."""
    try:
        return ipaddress.ip_interface(value)
    except ValueError as e:
        raise ParseError("Invalid IP address", value) from e


def parse_endpoint(value: str) -> Endpoint:
    i = value.rfind(":")
    if i < 0:
        raise ParseError("Missing port from endpoint", value)
    host, port_str = value[:i], value[i + 1:]
    if not host:
        raise ParseError("Invalid endpoint host", host)
    port = _parse_uint(port_str, "Invalid port", 0, MAX_UINT16)
    if host[0] == "[" or host[-1] == "]" or ":" in host:
        err = ParseError("Brackets must contain an IPv6 address", host)
        if not (len(host) > 3 and host[0] == "[" and host[-1] == "]" and ":" in host):
            raise err
        end = len(host) - 1
        zone = host.rfind("%")
        if zone > 1:
            end = zone
        try:
            maybe_v6 = ipaddress.ip_address(host[1:end])
        except ValueError:
            raise err from None
        if maybe_v6.version != 6:
            raise err
        host = host[1:-1]
    return Endpoint(host, port)


def parse_mtu(value: str) -> int:
    return _parse_uint(value, "Invalid MTU", MIN_MTU, MAX_UINT16)


def parse_port(value: str) -> int:
    return _parse_uint(value, "Invalid port", 0, MAX_UINT16)


def parse_persistent_keepalive(value: str) -> int:
    if value == "off":
        return 0
    return _parse_uint(value, "Invalid persistent keepalive", 0, MAX_UINT16)


def parse_table_off(value: str) -> bool:
    if value == "off":
        return True
    if value in ("auto", "main"):
        return False
    _parse_uint(value, "Invalid table", 0, MAX_UINT32)
    return False


def split_list(value: str) -> List[str]:
    out: List[str] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            raise ParseError("Two commas in a row", value)
        out.append(part)
    return out


def _parse_uint(value: str, why: str, low: int, high: int) -> int:
    if not _DIGITS_RE.fullmatch(value):
        raise ParseError(why, value)
    n = int(value)
    if n < low or n > high:
        raise ParseError(why, value)
    return n


def _split_key_value(line: str) -> Tuple[str, str]:
    equals = line.find("=")
    if equals < 0:
        raise ParseError("Config key is missing an equals separator", line)
    key, value = line[:equals].strip().lower(), line[equals + 1:].strip()
    if not value:
        raise ParseError("Key must have a value", line)
    return key, value


# Parser


class _Section(enum.Enum):
    NONE = "none"
    INTERFACE = "interface"
    PEER = "peer"


class _LineCursor:
    def __init__(self, text: str) -> None:
        self._lines = text.splitlines()
        self._pos = -1

    def advance(self) -> bool:
        if self._pos + 1 >= len(self._lines):
            self._pos = len(self._lines)
            return False
        self._pos += 1
        return True

    def step_back(self) -> None:
        self._pos -= 1

    @property
    def line(self) -> str:
        return self._lines[self._pos]


def _opens_peer_block(comment: str) -> bool:
    return bool(_BEGIN_WITH_DISABLED_RE.match(comment) or _DISABLED_HEADER_RE.match(comment))


def _strip_disabled(line: str) -> str:
    _, sep, rest = line.partition(_DISABLED_STRIP)
    return rest if sep else line


class _ConfigParser:
    def __init__(self, text: str, name: str) -> None:
        self._cursor = _LineCursor(text)
        self._conf = WireGuardConfig(name=name)
        self._state = _Section.NONE

    def parse(self) -> WireGuardConfig:
        while self._cursor.advance():
            content, _, comment = self._cursor.line.partition("#")
            content = content.strip()
            lower = content.lower()

            if lower == "[interface]":
                self._state = _Section.INTERFACE
                continue
            if lower == "[peer]" or _opens_peer_block(comment):
                self._conf.peers.append(self._parse_peer())
                self._state = _Section.PEER
                continue
            if not content:
                continue
            if self._state is not _Section.INTERFACE:
                raise ParseError("line must occur in a section", content)
            key, value = _split_key_value(content)
            self._apply_interface_key(key, value)

        self._check_required_keys()
        self._conf.deduplicate_network_entries()
        return self._conf

    def _parse_peer(self) -> Peer:
        # Starts on the line that opened the block. Stops before a following
        # section header, or after an "### end" marker.
        peer = Peer()
        first_line = True
        seen_header = False
        while True:
            line = self._cursor.line
            if peer.disabled:
                line = _strip_disabled(line)
            content, _, comment = line.partition("#")
            if first_line and not peer.disabled and not content.strip() and comment.startswith(_DISABLED_TAG):
                peer.disabled = True
                continue
            first_line = False
            content = content.strip()
            lower = content.lower()

            if seen_header and _opens_peer_block(comment):
                # opener of the next peer; an unnamed block ends here
                self._cursor.step_back()
                break
            begin = _BEGIN_RE.match(comment)
            if begin:
                if peer.name:
                    raise ParseError("Duplicate begin line", comment)
                peer.name = begin.group(1)
            elif lower == "[interface]":
                self._cursor.step_back()
                break
            elif lower == "[peer]":
                if seen_header:
                    self._cursor.step_back()
                    break
                seen_header = True
            elif _END_RE.match(comment):
                break
            elif content:
                key, value = _split_key_value(content)
                _apply_peer_key(peer, key, value)

            if not self._cursor.advance():
                break
        return peer

    def _apply_interface_key(self, key: str, value: str) -> None:
        iface = self._conf.interface
        if key == "privatekey":
            iface.private_key = parse_key_base64(value)
        elif key == "listenport":
            iface.listen_port = parse_port(value)
        elif key == "mtu":
            iface.mtu = parse_mtu(value)
        elif key == "address":
            iface.addresses.extend(parse_ip_cidr(a) for a in split_list(value))
        elif key == "dns":
            for entry in split_list(value):
                try:
                    iface.dns.append(ipaddress.ip_address(entry))
                except ValueError:
                    iface.dns_search.append(entry)
        elif key == "preup":
            iface.pre_up = value
        elif key == "postup":
            iface.post_up = value
        elif key == "predown":
            iface.pre_down = value
        elif key == "postdown":
            iface.post_down = value
        elif key == "table":
            iface.table_off = parse_table_off(value)
        else:
            raise ParseError("Invalid key for [Interface] section", key)

    def _check_required_keys(self) -> None:
        if self._conf.interface.private_key.is_zero():
            raise ParseError("An interface must have a private key", "[none specified]")
        for peer in self._conf.peers:
            if peer.public_key.is_zero():
                raise ParseError("All peers must have public keys", peer.name or "[none specified]")


def _apply_peer_key(peer: Peer, key: str, value: str) -> None:
    if key == "publickey":
        peer.public_key = parse_key_base64(value)
    elif key == "presharedkey":
        peer.preshared_key = parse_key_base64(value)
    elif key == "allowedips":
        peer.allowed_ips.extend(parse_ip_cidr(a) for a in split_list(value))
    elif key == "persistentkeepalive":
        peer.persistent_keepalive = parse_persistent_keepalive(value)
    elif key == "endpoint":
        peer.endpoint = parse_endpoint(value)
    else:
        raise ParseError("Invalid key for [Peer] section", key)


def parse_config(text: str, name: str = "") -> WireGuardConfig:
    """Parse a tunnel configuration. Raises ParseError on any malformed line."""
    return _ConfigParser(text, name).parse()
