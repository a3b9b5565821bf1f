from .clients import Client, ClientInfo, export_client_list, parse_client_list
from .config import ManagerConfig
from .errors import (
    AddressExhaustedError,
    ClientNameExistsError,
    ClientNotFoundError,
    ConsistencyError,
    DuplicatePeerError,
    FileError,
    InvalidClientNameError,
    InvalidPeerNameError,
    ManagerError,
    ParseError,
    PeerNotFoundError,
)
from .keys import Key, KeySet, generate_preshared_key, generate_private_key, parse_key_base64
from .settings import Settings, load_settings
from .vpn import Vpn
from .wgconf import Endpoint, Interface, Peer, WireGuardConfig, parse_config

__all__ = [
    "Client",
    "ClientInfo",
    "export_client_list",
    "parse_client_list",
    "ManagerConfig",
    "AddressExhaustedError",
    "ClientNameExistsError",
    "ClientNotFoundError",
    "ConsistencyError",
    "DuplicatePeerError",
    "FileError",
    "InvalidClientNameError",
    "InvalidPeerNameError",
    "ManagerError",
    "ParseError",
    "PeerNotFoundError",
    "Key",
    "KeySet",
    "generate_preshared_key",
    "generate_private_key",
    "parse_key_base64",
    "Settings",
    "load_settings",
    "Vpn",
    "Endpoint",
    "Interface",
    "Peer",
    "WireGuardConfig",
    "parse_config",
]
