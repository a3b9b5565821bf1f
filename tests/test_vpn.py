import ipaddress
import stat
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from pivpn_manager import (
    AddressExhaustedError,
    Client,
    ClientNameExistsError,
    ClientNotFoundError,
    ConsistencyError,
    FileError,
    InvalidClientNameError,
    Vpn,
    WireGuardConfig,
    generate_private_key,
    parse_config,
)
from pivpn_manager.clients import parse_client_list
from pivpn_manager.wgconf import Interface

from conftest import write_tree


def ip(s: str):
    return ipaddress.ip_address(s)


def read(path) -> str:
    return Path(path).read_text()


def test_load_empty_tree(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    assert vpn.name == "wg0"
    assert vpn.list_clients() == []
    assert vpn.settings.endpoint.host == "vpn.example.com"


def test_add_client_writes_every_artifact(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    client = vpn.add_client("alice")
    assert client.address == ip("10.0.0.2")

    conf = WireGuardConfig.read_file(vpn.client_config_path("alice"))
    assert str(conf.interface.addresses[0]) == "10.0.0.2/24"
    assert [str(d) for d in conf.interface.dns] == ["9.9.9.9", "149.112.112.112"]
    server_peer = conf.peers[0]
    assert server_peer.public_key == vpn.server.interface.private_key.public()
    assert str(server_peer.endpoint) == "vpn.example.com:51820"
    assert server_peer.persistent_keepalive == 25
    assert [str(a) for a in server_peer.allowed_ips] == ["0.0.0.0/0", "::/0"]
    assert stat.S_IMODE(Path(vpn.client_config_path("alice")).stat().st_mode) == 0o640

    assert read(vpn.user_config_path("alice")) == read(vpn.client_config_path("alice"))

    keys_dir = Path(manager_cfg.keys_dir)
    assert read(keys_dir / "alice_pub") == str(client.public_key)
    assert read(keys_dir / "alice_psk") == str(server_peer.preshared_key)
    assert stat.S_IMODE((keys_dir / "alice_priv").stat().st_mode) == 0o600

    infos = parse_client_list(read(vpn.registry_path))
    assert [(i.name, i.address) for i in infos] == [("alice", ip("10.0.0.2"))]

    tunnel = WireGuardConfig.read_file(manager_cfg.tunnel_file_path)
    assert [p.name for p in tunnel.peers] == ["alice"]
    assert tunnel.peers[0].public_key == client.public_key
    assert tunnel.peers[0].preshared_key == server_peer.preshared_key
    assert [str(a) for a in tunnel.peers[0].allowed_ips] == ["10.0.0.2/32"]

    assert read(manager_cfg.hosts_file) == "10.0.0.1 server.pivpn\n10.0.0.2 alice.pivpn\n"


def test_added_clients_survive_reload(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    vpn.add_client("bob.phone")
    again = Vpn.load(manager_cfg)
    assert [(c.name, c.address) for c in again.list_clients()] == [
        ("alice", ip("10.0.0.2")),
        ("bob.phone", ip("10.0.0.3")),
    ]
    assert read(manager_cfg.hosts_file).splitlines()[-1] == "10.0.0.3 bob-phone.pivpn"


def test_allocation_skips_used_and_reuses_gaps(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    assert [vpn.add_client(n).address for n in ("a1", "a2", "a3")] == [ip("10.0.0.2"), ip("10.0.0.3"), ip("10.0.0.4")]
    vpn.remove_client("a2")
    assert vpn.add_client("a4").address == ip("10.0.0.3")
    assert vpn.add_client("a5").address == ip("10.0.0.5")


def test_allocation_exhausts_small_subnet(tmp_path):
    cfg = write_tree(tmp_path, address="10.0.0.1/29")
    vpn = Vpn.load(cfg)
    for i in range(5):
        vpn.add_client(f"c{i}")
    assert vpn.clients[-1].address == ip("10.0.0.6")
    with pytest.raises(AddressExhaustedError):
        vpn.add_client("late")
    assert [c.name for c in vpn.clients] == ["c0", "c1", "c2", "c3", "c4"]


def test_allocation_exhausts_slash_24(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    for host in range(2, 255):
        conf = WireGuardConfig(
            name=f"c{host}",
            interface=Interface(
                private_key=generate_private_key(),
                addresses=[ipaddress.ip_interface(f"10.0.0.{host}/24")],
            ),
        )
        vpn.clients.append(Client(conf))
    with pytest.raises(AddressExhaustedError):
        vpn.add_client("late")


@pytest.mark.parametrize("name", ["", "1234", "server", "a" * 16, "bad name", "semi;colon", "ünïcode"])
def test_invalid_names(manager_cfg, name):
    vpn = Vpn.load(manager_cfg)
    with pytest.raises(InvalidClientNameError):
        vpn.add_client(name)
    assert vpn.clients == []


@pytest.mark.parametrize("name", ["1a", "a" * 15, "me@home_pc", "x.y-z"])
def test_valid_names(manager_cfg, name):
    vpn = Vpn.load(manager_cfg)
    assert vpn.add_client(name).name == name


def test_duplicate_name(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    with pytest.raises(ClientNameExistsError):
        vpn.add_client("alice")
    assert len(vpn.clients) == 1


def test_remove_client(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    vpn.add_client("bob")
    vpn.remove_client("alice")

    assert [c.name for c in vpn.list_clients()] == ["bob"]
    assert not Path(vpn.client_config_path("alice")).exists()
    assert not Path(vpn.user_config_path("alice")).exists()
    assert list(Path(manager_cfg.keys_dir).glob("alice_*")) == []
    assert [i.name for i in parse_client_list(read(vpn.registry_path))] == ["bob"]
    assert [p.name for p in WireGuardConfig.read_file(manager_cfg.tunnel_file_path).peers] == ["bob"]
    assert "alice" not in read(manager_cfg.hosts_file)
    assert [c.name for c in Vpn.load(manager_cfg).clients] == ["bob"]


def test_remove_tolerates_missing_files(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    Path(vpn.user_config_path("alice")).unlink()
    Path(manager_cfg.keys_dir, "alice_pub").unlink()
    vpn.remove_client("alice")
    assert vpn.clients == []


def test_remove_aborts_on_delete_error(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    conf_path = Path(vpn.client_config_path("alice"))
    conf_path.unlink()
    conf_path.mkdir()

    with pytest.raises(FileError) as ei:
        vpn.remove_client("alice")
    assert ei.value.path == str(conf_path)
    # files after the failing delete are left alone
    assert Path(vpn.user_config_path("alice")).exists()
    assert sorted(p.name for p in Path(manager_cfg.keys_dir).glob("alice_*")) == ["alice_priv", "alice_psk", "alice_pub"]
    assert "alice.pivpn" in read(manager_cfg.hosts_file)


def test_remove_unknown_client(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    with pytest.raises(ClientNotFoundError):
        vpn.remove_client("zed")
    assert [c.name for c in vpn.clients] == ["alice"]


def test_disable_and_enable_client(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    registry_before = read(vpn.registry_path)
    client_before = read(vpn.client_config_path("alice"))

    vpn.disable_client("alice")
    assert vpn.find_client("alice").disabled
    text = read(manager_cfg.tunnel_file_path)
    assert "#[disabled] ### begin alice ###" in text
    assert Vpn.load(manager_cfg).find_client("alice").disabled
    assert read(vpn.registry_path) == registry_before
    assert read(vpn.client_config_path("alice")) == client_before

    vpn.enable_client("alice")
    assert not vpn.find_client("alice").disabled
    assert "[disabled]" not in read(manager_cfg.tunnel_file_path)

    with pytest.raises(ClientNotFoundError):
        vpn.disable_client("zed")


def test_disable_first_of_two_peers(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    vpn.add_client("bob")
    vpn.disable_client("bob")

    vpn = Vpn.load(manager_cfg)
    assert [c.disabled for c in vpn.clients] == [False, True]
    bob_block = vpn.server.peers[1].export()

    vpn.disable_client("alice")
    text = read(manager_cfg.tunnel_file_path)
    blocks = text.split("\n\n")[1:]
    assert len(blocks) == 2
    assert all(line.startswith("#[disabled] ") for line in blocks[0].splitlines())
    assert blocks[1] == bob_block
    assert parse_config(text).peers[0].disabled


def test_load_rejects_peer_missing_from_registry(manager_cfg):
    Vpn.load(manager_cfg).add_client("alice")
    Path(manager_cfg.configs_dir, "clients.txt").write_text("")
    with pytest.raises(ConsistencyError):
        Vpn.load(manager_cfg)


def test_load_rejects_registry_entry_without_peer(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    vpn.server.remove_peer("alice")
    vpn.sync_tunnel()
    with pytest.raises(ConsistencyError):
        Vpn.load(manager_cfg)


def test_load_rejects_missing_client_config(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    Path(vpn.client_config_path("alice")).unlink()
    with pytest.raises(ConsistencyError):
        Vpn.load(manager_cfg)


def test_load_rejects_duplicate_registry_names(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    line = read(vpn.registry_path)
    Path(vpn.registry_path).write_text(line + line)
    with pytest.raises(ConsistencyError):
        Vpn.load(manager_cfg)


def test_load_reports_broken_files(manager_cfg):
    Path(manager_cfg.configs_dir, "clients.txt").write_text("garbage\n")
    with pytest.raises(FileError) as ei:
        Vpn.load(manager_cfg)
    assert ei.value.path.endswith("clients.txt")


def test_sync_repairs_registry_and_hosts(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    vpn.add_client("alice")
    expected_registry = read(vpn.registry_path)
    created = vpn.clients[0].creation_date
    Path(manager_cfg.hosts_file).write_text("stale\n")
    Path(vpn.registry_path).write_text(expected_registry + "junk\n")

    vpn.sync()
    assert read(vpn.registry_path) == expected_registry
    assert read(manager_cfg.hosts_file) == "10.0.0.1 server.pivpn\n10.0.0.2 alice.pivpn\n"
    reloaded = Vpn.load(manager_cfg)
    assert reloaded.clients[0].creation_date == datetime.fromtimestamp(int(created.timestamp()), tz=timezone.utc)


def test_missing_hosts_file_is_skipped(tmp_path):
    cfg = write_tree(tmp_path, with_hosts_file=False)
    vpn = Vpn.load(cfg)
    vpn.add_client("alice")
    vpn.sync()
    assert not Path(cfg.hosts_file).exists()


def test_reload_picks_up_external_changes(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    other = Vpn.load(manager_cfg)
    other.add_client("alice")
    assert vpn.clients == []
    vpn.reload()
    assert [c.name for c in vpn.clients] == ["alice"]


def test_concurrent_adds_get_distinct_addresses(manager_cfg):
    vpn = Vpn.load(manager_cfg)
    errors = []

    def worker(n: int) -> None:
        try:
            vpn.add_client(f"t{n}")
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    addresses = [c.address for c in vpn.clients]
    assert len(set(addresses)) == 8
    assert len(Vpn.load(manager_cfg).clients) == 8
