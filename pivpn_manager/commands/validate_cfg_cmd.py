import argparse
import sys

from ..common import add_config_arg, load_manager_config
from ..errors import ManagerError
from ..vpn import Vpn


def add_validate_cfg_cmd(subparsers: argparse._SubParsersAction) -> None:
    v = subparsers.add_parser(
        "validate-cfg",
        help="Validate the manager config and the files it points at",
        description="Loads the manager config, then the tunnel, client registry and client configs, "
        "and reports the first inconsistency.",
    )
    add_config_arg(v)
    v.set_defaults(func=run_validate_cfg_cmd)


def run_validate_cfg_cmd(args: argparse.Namespace) -> int:
    cfg = load_manager_config(args)
    if cfg is None:
        return 2
    try:
        vpn = Vpn.load(cfg)
    except ManagerError as e:
        print("Invalid configuration:", file=sys.stderr)
        print(f"- {e}", file=sys.stderr)
        return 2

    print(f"Configuration is valid: {vpn.name} with {len(vpn.clients)} clients.")
    return 0
