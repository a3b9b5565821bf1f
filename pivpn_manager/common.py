import argparse
import logging
import os
import sys
from typing import Optional

from .config import ManagerConfig
from .errors import ManagerError
from .vpn import Vpn

CONFIG_ENV = "PIVPN_MANAGER_CONFIG"


def add_config_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Path to the manager config YAML (env: {CONFIG_ENV}). Without one, settings come from the environment.",
    )


def resolve_config_path(args) -> Optional[str]:
    return getattr(args, "config", None) or os.environ.get(CONFIG_ENV) or None


def load_manager_config(args) -> Optional[ManagerConfig]:
    path = resolve_config_path(args)
    if path is None:
        cfg = ManagerConfig.from_env(os.environ)
    else:
        if not os.path.exists(path):
            print(f"Config file not found: {path}", file=sys.stderr)
            return None
        try:
            cfg = ManagerConfig.read_file(path)
        except (OSError, ValueError) as e:
            print(f"Failed to parse config: {e}", file=sys.stderr)
            return None
    cfg.apply_args_overrides(args)
    errs = cfg.validate()
    if errs:
        print("Invalid configuration:", file=sys.stderr)
        for e in errs:
            print(f"- {e}", file=sys.stderr)
        return None
    return cfg


def require_and_load_vpn(args) -> Optional[Vpn]:
    cfg = load_manager_config(args)
    if cfg is None:
        return None
    try:
        return Vpn.load(cfg)
    except ManagerError as e:
        print(f"Failed to load VPN state: {e}", file=sys.stderr)
        return None


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
