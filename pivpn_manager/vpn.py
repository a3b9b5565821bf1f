"""Client lifecycle for a pivpn WireGuard server.

A :class:`Vpn` owns the server's tunnel configuration and the list of clients,
and keeps four on-disk artifacts in step with them: the tunnel file, the
per-client configuration files (plus their key files), the client registry
``clients.txt`` and the optional DNS host file used by Pi-hole.

Multi-file updates are best effort. Files are rewritten in place one after
another; if a step fails, the earlier steps stay committed and the mismatch
shows up on the next :meth:`Vpn.load`. ``sync()`` rewrites the registry,
tunnel and host files from memory.
"""
import dataclasses
import ipaddress
import logging
import os
import re
import threading
from datetime import datetime, timezone
from typing import List, Tuple

from .clients import REGISTRY_FILENAME, Client, client_list_as_map, export_client_list, read_client_list
from .config import ManagerConfig
from .errors import (
    AddressExhaustedError,
    ClientNameExistsError,
    ClientNotFoundError,
    ConsistencyError,
    FileError,
    InvalidClientNameError,
    PeerNotFoundError,
)
from .keys import KeySet
from .settings import Settings, load_settings
from .wgconf import Interface, Peer, Prefix, WireGuardConfig

logger = logging.getLogger(__name__)

REGISTRY_FILE_MODE = 0o644
HOSTS_FILE_MODE = 0o644

SERVER_HOST_NAME = "server"
CLIENT_KEEPALIVE = 25

_CLIENT_NAME_RE = re.compile(r"[a-zA-Z0-9.@_-]{1,15}")
_NON_DIGIT_RE = re.compile(r"[^0-9]")

ALL_IPV4 = ipaddress.ip_interface("0.0.0.0/0")
ALL_IPV6 = ipaddress.ip_interface("::/0")


def validate_client_name(name: str) -> None:
    if not _CLIENT_NAME_RE.fullmatch(name):
        raise InvalidClientNameError(
            f"invalid client name {name!r}: name must only contain alphanumerical characters, "
            "period, @, underscore and hyphen, and be between 1 and 15 characters"
        )
    if not _NON_DIGIT_RE.search(name):
        raise InvalidClientNameError(f"invalid client name {name!r}: name must contain at least one non-digit character")
    if name == SERVER_HOST_NAME:
        raise InvalidClientNameError(f"invalid client name {name!r}: name must not be {SERVER_HOST_NAME!r}")


class Vpn:
    def __init__(
        self,
        config: ManagerConfig,
        settings: Settings,
        server: WireGuardConfig,
        clients: List[Client],
    ) -> None:
        self.config = config
        self.settings = settings
        self.server = server
        self.clients = clients
        self._lock = threading.Lock()

    @classmethod
    def load(cls, config: ManagerConfig) -> "Vpn":
        """Read settings, tunnel, registry and every client file; all or nothing."""
        settings = load_settings(config.setup_vars_path)
        server, clients = _load_state(config)
        logger.debug("loaded %s with %d clients", config.tunnel_file_path, len(clients))
        return cls(config, settings, server, clients)

    def reload(self) -> None:
        with self._lock:
            settings = load_settings(self.config.setup_vars_path)
            server, clients = _load_state(self.config)
            self.settings, self.server, self.clients = settings, server, clients

    @property
    def name(self) -> str:
        return self.server.name

    @property
    def registry_path(self) -> str:
        return os.path.join(self.config.configs_dir, REGISTRY_FILENAME)

    def client_config_path(self, name: str) -> str:
        return os.path.join(self.config.configs_dir, name + ".conf")

    def user_config_path(self, name: str) -> str:
        return os.path.join(self.settings.user_config_path, name + ".conf")

    def list_clients(self) -> List[Client]:
        return list(self.clients)

    def find_client(self, name: str) -> Client:
        for client in self.clients:
            if client.name == name:
                return client
        raise ClientNotFoundError(name)

    # Writers. Callers hold the lock.
    def sync_tunnel(self) -> None:
        self.server.write_file(self.config.tunnel_file_path)
        logger.info("tunnel file %s written", self.config.tunnel_file_path)

    def sync_clients(self) -> None:
        infos = [c.to_client_info() for c in self.clients]
        _write_text(self.registry_path, export_client_list(infos), REGISTRY_FILE_MODE)
        logger.info("client registry %s written", self.registry_path)

    def sync_hosts(self) -> None:
        path = self.config.hosts_file
        if not os.path.exists(path):
            logger.debug("host file %s does not exist, skipping", path)
            return
        suffix = self.config.dns_suffix
        lines = [f"{self.server.interface.addresses[0].ip} {SERVER_HOST_NAME}.{suffix}\n"]
        for client in self.clients:
            lines.append(f"{client.address} {client.dns_name()}.{suffix}\n")
        _write_text(path, "".join(lines), HOSTS_FILE_MODE)
        logger.info("host file %s written", path)

    def sync(self) -> None:
        with self._lock:
            self.sync_clients()
            self.sync_tunnel()
            self.sync_hosts()

    # Lifecycle
    def add_client(self, name: str) -> Client:
        validate_client_name(name)
        with self._lock:
            for c in self.clients:
                if c.name == name:
                    raise ClientNameExistsError(name)

            netblock = self._server_netblock()
            ip = self._next_free_address(netblock)
            keys = KeySet(name)
            client = Client(
                config=WireGuardConfig(
                    name=name,
                    interface=Interface(
                        private_key=keys.private_key,
                        addresses=[ipaddress.ip_interface(f"{ip}/{netblock.network.prefixlen}")],
                        dns=list(self.settings.dns),
                    ),
                    peers=[
                        Peer(
                            public_key=self.server.interface.private_key.public(),
                            preshared_key=keys.preshared_key,
                            allowed_ips=[ALL_IPV4, ALL_IPV6],
                            endpoint=dataclasses.replace(self.settings.endpoint),
                            persistent_keepalive=CLIENT_KEEPALIVE,
                        )
                    ],
                ),
                disabled=False,
                creation_date=datetime.now(timezone.utc),
            )

            client.config.write_file(self.client_config_path(name))
            keys.write_out(self.config.keys_dir, self.config.key_owner_uid, self.config.key_owner_gid)

            self.clients.append(client)
            self.sync_clients()

            self.server.add_peer(client.to_peer())
            self.sync_tunnel()
            self.sync_hosts()

            client.config.write_file(self.user_config_path(name))
            logger.info("client %s added with address %s", name, ip)
            return client

    def remove_client(self, name: str) -> None:
        with self._lock:
            try:
                self.server.remove_peer(name)
            except PeerNotFoundError as e:
                raise ClientNotFoundError(name) from e
            self.sync_tunnel()

            for i, c in enumerate(self.clients):
                if c.name == name:
                    del self.clients[i]
                    break
            self.sync_clients()

            _remove_file(self.client_config_path(name))
            _remove_file(self.user_config_path(name))
            for path in KeySet(name).file_paths(self.config.keys_dir).values():
                _remove_file(path)

            self.sync_hosts()
            logger.info("client %s removed", name)

    def enable_client(self, name: str) -> None:
        self._set_disabled(name, False)

    def disable_client(self, name: str) -> None:
        self._set_disabled(name, True)

    def _set_disabled(self, name: str, disabled: bool) -> None:
        with self._lock:
            try:
                if disabled:
                    self.server.disable_peer(name)
                else:
                    self.server.enable_peer(name)
            except PeerNotFoundError as e:
                raise ClientNotFoundError(name) from e
            for c in self.clients:
                if c.name == name:
                    c.disabled = disabled
            self.sync_tunnel()
            logger.info("client %s %s", name, "disabled" if disabled else "enabled")

    def _server_netblock(self) -> Prefix:
        if not self.server.interface.addresses:
            raise ConsistencyError(f"tunnel {self.name!r} has no interface address")
        return self.server.interface.addresses[0]

    def _next_free_address(self, netblock: Prefix):
        """First address after the server's own that no client holds."""
        network = netblock.network
        used = {c.address for c in self.clients}
        ip = netblock.ip + 1
        while ip in used:
            ip += 1
        if ip not in network or (network.num_addresses > 2 and ip == network.broadcast_address):
            raise AddressExhaustedError(f"unable to add client: tunnel {self.name!r} has no usable IP addresses left")
        return ip


def _load_state(config: ManagerConfig) -> Tuple[WireGuardConfig, List[Client]]:
    server = WireGuardConfig.read_file(config.tunnel_file_path, config.interface)
    infos = read_client_list(os.path.join(config.configs_dir, REGISTRY_FILENAME))
    info_map = client_list_as_map(infos)

    clients: List[Client] = []
    for peer in server.peers:
        info = info_map.get(peer.name)
        if info is None:
            raise ConsistencyError(f"client {peer.name!r} not found in {REGISTRY_FILENAME}")
        path = os.path.join(config.configs_dir, peer.name + ".conf")
        try:
            conf = WireGuardConfig.read_file(path, peer.name)
        except FileError as e:
            raise ConsistencyError(f"client {peer.name!r} has no loadable config: {e}") from e
        clients.append(Client(conf, peer.disabled, info.creation_date))

    peer_names = {p.name for p in server.peers}
    for info in infos:
        if info.name not in peer_names:
            raise ConsistencyError(f"client {info.name!r} in {REGISTRY_FILENAME} has no peer in {config.tunnel_file_path}")
    return server, clients


def _write_text(path: str, text: str, mode: int) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(path, mode)
    except OSError as e:
        raise FileError(path, e) from e


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.debug("%s already absent", path)
    except OSError as e:
        raise FileError(path, e) from e
