import argparse
import sys

from ..common import add_config_arg, require_and_load_vpn
from ..errors import ManagerError


def add_client_add_cmd(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "add",
        aliases=["make"],
        help="Add a new client",
        description="Adds a client with generated keys, preshared key, and the next available IP in the server subnet.",
    )
    p.add_argument("name", help="Client name")
    add_config_arg(p)
    p.set_defaults(func=run_client_add_cmd)


def run_client_add_cmd(args: argparse.Namespace) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2

    try:
        client = vpn.add_client(args.name)
    except ManagerError as e:
        print(f"Failed to add client: {e}", file=sys.stderr)
        return 2
    print(f"Client '{client.name}' added with IP {client.address}")
    return 0
