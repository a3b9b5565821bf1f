import argparse
from typing import Callable, Optional

from .commands.init_cmd import add_init_cmd
from .commands.validate_cfg_cmd import add_validate_cfg_cmd
from .commands.list_cmd import add_list_cmd
from .commands.client_add_cmd import add_client_add_cmd
from .commands.client_remove_cmd import add_client_remove_cmd
from .commands.client_toggle_cmd import add_client_disable_cmd, add_client_enable_cmd
from .commands.sync_cmd import add_sync_cmd
from .commands.qr_cmd import add_qr_cmd
from .common import configure_logging

CommandHandler = Callable[[argparse.Namespace], int]


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pivpn-manager",
        description="Manage the clients of a pivpn WireGuard server.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    # Subcommands are responsible for their own --config options

    sub = p.add_subparsers(dest="command", required=True)
    add_init_cmd(sub)  # init does not require pre-existing state
    add_validate_cfg_cmd(sub)
    add_list_cmd(sub)
    add_client_add_cmd(sub)
    add_client_remove_cmd(sub)
    add_client_enable_cmd(sub)
    add_client_disable_cmd(sub)
    add_sync_cmd(sub)
    add_qr_cmd(sub)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    handler: Optional[CommandHandler] = getattr(args, "func", None)
    if handler is None:
        parser.error("No subcommand handler attached")
    return handler(args)
