import ipaddress
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from .errors import ConsistencyError, FileError, ParseError
from .keys import Key, parse_key_base64
from .wgconf import Peer, WireGuardConfig

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "clients.txt"

_INVALID_DNS_CHARS_RE = re.compile(r"[^a-zA-Z0-9-]")
_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT_RE = re.compile(r"[0-9]+")


@dataclass()
class ClientInfo:
    """One line of the client registry (clients.txt)."""

    name: str
    public_key: Key
    creation_date: datetime
    address: ipaddress.IPv4Address

    def export(self) -> str:
        return "%-15s %44s %10d %10d" % (
            self.name,
            str(self.public_key),
            int(self.creation_date.timestamp()),
            int(self.address),
        )


def parse_client_info(line: str) -> ClientInfo:
    chunks = line.split()
    if len(chunks) != 4:
        logger.error("Invalid line in %s: %r", REGISTRY_FILENAME, line)
        raise ParseError(f"expected 4 chunks in line, got {len(chunks)}", line)
    name, key_b64, created, addr = chunks
    try:
        public_key = parse_key_base64(key_b64)
    except ParseError:
        logger.error("Invalid public key in line %r", line)
        raise
    if not _INT_RE.fullmatch(created):
        logger.error("Invalid time in line %r", line)
        raise ParseError("Invalid creation time", created)
    if not _UINT_RE.fullmatch(addr) or int(addr) > 0xFFFFFFFF:
        logger.error("Invalid decimal IP address in line %r", line)
        raise ParseError("Invalid decimal IP address", addr)
    return ClientInfo(
        name=name,
        public_key=public_key,
        creation_date=datetime.fromtimestamp(int(created), tz=timezone.utc),
        address=ipaddress.IPv4Address(int(addr)),
    )


def parse_client_list(text: str) -> List[ClientInfo]:
    return [parse_client_info(line) for line in text.splitlines()]


def export_client_list(infos: Iterable[ClientInfo]) -> str:
    return "".join(info.export() + "\n" for info in infos)


def read_client_list(path: str) -> List[ClientInfo]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise FileError(path, e) from e
    try:
        return parse_client_list(text)
    except ParseError as e:
        raise FileError(path, e) from e


def client_list_as_map(infos: Iterable[ClientInfo]) -> Dict[str, ClientInfo]:
    m: Dict[str, ClientInfo] = {}
    for info in infos:
        if info.name in m:
            raise ConsistencyError(f"duplicate name in client list: {info.name!r}")
        m[info.name] = info
    return m


@dataclass()
class Client:
    """What a client installs: its own interface plus exactly one peer, the server.

    Each client shares one preshared key with the server, never reused.
    """

    config: WireGuardConfig
    disabled: bool = False
    creation_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def address(self) -> ipaddress.IPv4Address:
        return self.config.interface.addresses[0].ip

    @property
    def public_key(self) -> Key:
        return self.config.interface.private_key.public()

    @property
    def server_peer(self) -> Peer:
        return self.config.peers[0]

    def dns_name(self) -> str:
        return _INVALID_DNS_CHARS_RE.sub("-", self.name)

    def to_peer(self) -> Peer:
        """The entry the server keeps for this client."""
        return Peer(
            name=self.name,
            disabled=self.disabled,
            public_key=self.public_key,
            preshared_key=self.server_peer.preshared_key,
            allowed_ips=[ipaddress.ip_interface(f"{self.address}/32")],
        )

    def to_client_info(self) -> ClientInfo:
        return ClientInfo(
            name=self.name,
            public_key=self.public_key,
            creation_date=self.creation_date,
            address=self.address,
        )

    def export(self) -> str:
        return self.config.export()
