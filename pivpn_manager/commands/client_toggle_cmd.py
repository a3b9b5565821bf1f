import argparse
import sys

from ..common import add_config_arg, require_and_load_vpn
from ..errors import ManagerError
from ..vpn import Vpn


def _add_toggle_parser(subparsers: argparse._SubParsersAction, name: str, alias: str, help_text: str, func) -> None:
    p = subparsers.add_parser(name, aliases=[alias], help=help_text, description=help_text)
    p.add_argument("names", nargs="*", metavar="name", help="Client name")
    p.add_argument(
        "--display-disabled",
        action="store_true",
        help="Only list the disabled clients",
    )
    add_config_arg(p)
    p.set_defaults(func=func)


def add_client_disable_cmd(subparsers: argparse._SubParsersAction) -> None:
    _add_toggle_parser(
        subparsers, "disable", "off", "Disable clients without deleting their configuration", run_client_disable_cmd
    )


def add_client_enable_cmd(subparsers: argparse._SubParsersAction) -> None:
    _add_toggle_parser(subparsers, "enable", "on", "Enable previously disabled clients", run_client_enable_cmd)


def run_client_disable_cmd(args: argparse.Namespace) -> int:
    return _run_toggle(args, disable=True)


def run_client_enable_cmd(args: argparse.Namespace) -> int:
    return _run_toggle(args, disable=False)


def _run_toggle(args: argparse.Namespace, disable: bool) -> int:
    vpn = require_and_load_vpn(args)
    if vpn is None:
        return 2

    if getattr(args, "display_disabled", False):
        _print_disabled(vpn)
        return 0
    names = list(getattr(args, "names", None) or [])
    if not names:
        print("No client names given", file=sys.stderr)
        return 2

    rc = 0
    for name in names:
        try:
            if disable:
                vpn.disable_client(name)
            else:
                vpn.enable_client(name)
        except ManagerError as e:
            print(f"Failed to {'disable' if disable else 'enable'} client '{name}': {e}", file=sys.stderr)
            rc = 2
            continue
        print(f"[{'disabled' if disable else 'enabled'}] {name}")
    return rc


def _print_disabled(vpn: Vpn) -> None:
    for c in vpn.list_clients():
        if c.disabled:
            print(f"[disabled] {c.name}")
