import argparse
import sys

from ..common import add_config_arg, require_and_load_vpn
from ..errors import ManagerError


def add_sync_cmd(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "sync",
        help="Re-synchronise the tunnel and clients",
        description="Rewrites clients.txt, the tunnel file and the DNS host file from the loaded state.",
    )
    add_config_arg(p)
    p.set_defaults(func=run_sync_cmd)


def run_sync_cmd(args: argparse.Namespace) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2
    try:
        vpn.sync()
    except ManagerError as e:
        print(f"Failed to sync: {e}", file=sys.stderr)
        return 2
    print(f"Synchronised {vpn.name} ({len(vpn.clients)} clients)")
    return 0
