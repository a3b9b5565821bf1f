import argparse

from ..common import add_config_arg, require_and_load_vpn


def add_list_cmd(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "list",
        help="List the VPN clients",
        description="Prints every client with its public key and creation date, then the disabled ones.",
    )
    add_config_arg(p)
    p.set_defaults(func=run_list_cmd)


def run_list_cmd(args: argparse.Namespace) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2

    clients = vpn.list_clients()
    print("::: Clients Summary :::")
    print(f"{'Client':<20} {'Public key':<49} Creation date")
    for c in clients:
        print(f"{c.name:<20} {str(c.public_key):<49} {c.creation_date.isoformat()}")

    print("::: Disabled clients :::")
    for c in clients:
        if c.disabled:
            print(c.name)
    return 0
