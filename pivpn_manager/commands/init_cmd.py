import argparse
import os
import sys

from ..config import ManagerConfig


def add_path_overrides(p: argparse.ArgumentParser) -> None:
    grp = p.add_argument_group("locations")
    grp.add_argument("--interface", default=None, help="Tunnel interface name (env: PIVPN_MANAGER_INTERFACE)")
    grp.add_argument("--setup-vars", dest="setup_vars_path", default=None, help="pivpn setupVars.conf path")
    grp.add_argument("--tunnel-dir", default=None, help="Directory holding <interface>.conf")
    grp.add_argument("--configs-dir", default=None, help="Directory holding client configs and clients.txt")
    grp.add_argument("--keys-dir", default=None, help="Directory holding client key files")
    grp.add_argument("--hosts-file", default=None, help="DNS host file, rewritten only if it exists")
    grp.add_argument("--dns-suffix", default=None, help="Domain appended to names in the host file")
    grp.add_argument("--key-owner-uid", type=int, default=None)
    grp.add_argument("--key-owner-gid", type=int, default=None)


def add_init_cmd(subparsers: argparse._SubParsersAction) -> None:
    init = subparsers.add_parser(
        "init",
        help="Generate a manager config YAML",
        description="Generate a manager config YAML. Values can come from env (PIVPN_MANAGER_*) and flags.",
    )
    init.add_argument(
        "-o",
        "--output",
        default=os.environ.get("PIVPN_MANAGER_OUTPUT", "pivpn-manager.yml"),
        help="Path to write the generated config (env: PIVPN_MANAGER_OUTPUT). Default: pivpn-manager.yml",
    )
    init.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite output file if it exists",
    )
    add_path_overrides(init)
    init.set_defaults(func=run_init_cmd)


def run_init_cmd(args: argparse.Namespace) -> int:
    out_path = args.output
    overwrite = bool(getattr(args, "overwrite", False))
    if os.path.exists(out_path) and not overwrite:
        print(f"Refusing to overwrite existing file: {out_path}. Use --overwrite to replace.", file=sys.stderr)
        return 2

    cfg = ManagerConfig.from_env(os.environ)
    cfg.apply_args_overrides(args)

    errs = cfg.validate()
    if errs:
        print("Config validation failed:", file=sys.stderr)
        for e in errs:
            print(f"- {e}", file=sys.stderr)
        return 2

    cfg.write_file(out_path, overwrite=overwrite)
    print(f"Config written to {out_path}")
    return 0
