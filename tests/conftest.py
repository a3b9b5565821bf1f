import os
import sys
from pathlib import Path

import pytest

# Ensure the package root is importable when running tests without install
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pivpn_manager.config import ManagerConfig  # noqa: E402
from pivpn_manager.keys import generate_private_key  # noqa: E402


def write_tree(tmp_path: Path, address: str = "10.0.0.1/24", with_hosts_file: bool = True) -> ManagerConfig:
    """Lay out an empty pivpn installation under tmp_path."""
    tunnel_dir = tmp_path / "wireguard"
    configs_dir = tunnel_dir / "configs"
    keys_dir = tunnel_dir / "keys"
    home = tmp_path / "home" / "pi"
    for d in (configs_dir, keys_dir, home / "configs"):
        d.mkdir(parents=True)

    setup_vars = tmp_path / "setupVars.conf"
    setup_vars.write_text(
        "pivpnHOST=vpn.example.com\n"
        "pivpnPORT=51820\n"
        "pivpnDNS1=9.9.9.9\n"
        "pivpnDNS2=149.112.112.112\n"
        f"install_home={home}\n"
    )
    (tunnel_dir / "wg0.conf").write_text(
        "[Interface]\n"
        f"PrivateKey = {generate_private_key()}\n"
        f"Address = {address}\n"
        "ListenPort = 51820\n"
    )
    (configs_dir / "clients.txt").write_text("")
    hosts = tmp_path / "hosts.wireguard"
    if with_hosts_file:
        hosts.write_text("")

    return ManagerConfig(
        interface="wg0",
        setup_vars_path=str(setup_vars),
        tunnel_dir=str(tunnel_dir),
        configs_dir=str(configs_dir),
        keys_dir=str(keys_dir),
        hosts_file=str(hosts),
        key_owner_uid=os.getuid(),
        key_owner_gid=os.getgid(),
    )


@pytest.fixture
def manager_cfg(tmp_path) -> ManagerConfig:
    return write_tree(tmp_path)
