import argparse
import sys

from ..common import add_config_arg, require_and_load_vpn
from ..errors import ManagerError


def add_client_remove_cmd(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "remove",
        help="Permanently remove clients by name",
        description="Removes clients from the tunnel and deletes their configs and keys.",
    )
    p.add_argument("names", nargs="+", metavar="name", help="Client name")
    add_config_arg(p)
    p.set_defaults(func=run_client_remove_cmd)


def run_client_remove_cmd(args: argparse.Namespace) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2

    rc = 0
    for name in args.names:
        try:
            vpn.remove_client(name)
        except ManagerError as e:
            print(f"Failed to remove client '{name}': {e}", file=sys.stderr)
            rc = 2
            continue
        print(f"[removed] {name}")
    return rc
