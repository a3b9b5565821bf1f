import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import yaml  # type: ignore

from .settings import DEFAULT_SETUP_VARS

ENV_PREFIX = "PIVPN_MANAGER_"

_IFACE_NAME_RE = re.compile(r"[A-Za-z0-9_.-]{1,15}")
_DNS_LABEL_RE = re.compile(r"(?!-)[A-Za-z0-9-]{1,63}(?<!-)")


@dataclass()
class ManagerConfig:
    """Where the manager finds the tunnel, its clients and their keys."""

    interface: str = "wg0"
    setup_vars_path: str = DEFAULT_SETUP_VARS
    tunnel_dir: str = "/etc/wireguard"
    configs_dir: str = "/etc/wireguard/configs"
    keys_dir: str = "/etc/wireguard/keys"
    hosts_file: str = "/etc/pivpn/hosts.wireguard"
    dns_suffix: str = "pivpn"
    key_owner_uid: int = 0
    key_owner_gid: int = 0

    @property
    def tunnel_file_path(self) -> str:
        return os.path.join(self.tunnel_dir, self.interface + ".conf")

    # File IO
    @classmethod
    def read_file(cls, path: str) -> "ManagerConfig":
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        data = load_yaml(text)
        return parse_manager_config(data)

    def write_file(self, path: str, overwrite: bool = False) -> None:
        if os.path.exists(path) and not overwrite:
            raise FileExistsError(f"Refusing to overwrite existing file: {path}")
        parent = os.path.dirname(os.path.abspath(path))
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)
        text = dump_yaml(to_yaml_dict(self))
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)

    # Validation
    def validate(self) -> List[str]:
        errs: List[str] = []
        if not _IFACE_NAME_RE.fullmatch(self.interface):
            errs.append(f"interface invalid: {self.interface}")
        for label in ("setup_vars_path", "tunnel_dir", "configs_dir", "keys_dir", "hosts_file"):
            if not getattr(self, label):
                errs.append(f"{label} must be non-empty")
        if not _DNS_LABEL_RE.fullmatch(self.dns_suffix):
            errs.append(f"dns_suffix invalid: {self.dns_suffix}")
        for label in ("key_owner_uid", "key_owner_gid"):
            if int(getattr(self, label)) < 0:
                errs.append(f"{label} must not be negative")
        return errs

    def validate_or_raise(self) -> None:
        errs = self.validate()
        if errs:
            raise ValueError("Config validation failed:\n- " + "\n- ".join(errs))

    # Fill from env/args
    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "ManagerConfig":
        r = EnvReader(env)
        d = cls()
        return cls(
            interface=r.get("INTERFACE", d.interface) or d.interface,
            setup_vars_path=r.get("SETUP_VARS", d.setup_vars_path) or d.setup_vars_path,
            tunnel_dir=r.get("TUNNEL_DIR", d.tunnel_dir) or d.tunnel_dir,
            configs_dir=r.get("CONFIGS_DIR", d.configs_dir) or d.configs_dir,
            keys_dir=r.get("KEYS_DIR", d.keys_dir) or d.keys_dir,
            hosts_file=r.get("HOSTS_FILE", d.hosts_file) or d.hosts_file,
            dns_suffix=r.get("DNS_SUFFIX", d.dns_suffix) or d.dns_suffix,
            key_owner_uid=r.get_int("KEY_OWNER_UID", d.key_owner_uid),
            key_owner_gid=r.get_int("KEY_OWNER_GID", d.key_owner_gid),
        )

    def apply_args_overrides(self, args: object) -> None:
        for attr in (
            "interface",
            "setup_vars_path",
            "tunnel_dir",
            "configs_dir",
            "keys_dir",
            "hosts_file",
            "dns_suffix",
        ):
            val = getattr(args, attr, None)
            if val is not None:
                setattr(self, attr, str(val))
        for attr in ("key_owner_uid", "key_owner_gid"):
            val = getattr(args, attr, None)
            if val is not None:
                setattr(self, attr, int(val))


class EnvReader:
    def __init__(self, env: Mapping[str, str], prefix: str = ENV_PREFIX) -> None:
        self._env = env
        self._prefix = prefix

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._env.get(self._prefix + key, default)

    def get_int(self, key: str, default: int) -> int:
        val = self._env.get(self._prefix + key)
        if val is None:
            return default
        try:
            return int(val)
        except ValueError:
            return default


_YAML_KEYS = {
    "interface": "interface",
    "setup-vars": "setup_vars_path",
    "tunnel-dir": "tunnel_dir",
    "configs-dir": "configs_dir",
    "keys-dir": "keys_dir",
    "hosts-file": "hosts_file",
    "dns-suffix": "dns_suffix",
    "key-owner-uid": "key_owner_uid",
    "key-owner-gid": "key_owner_gid",
}


def to_yaml_dict(cfg: ManagerConfig) -> Dict[str, Any]:
    return {yaml_key: getattr(cfg, attr) for yaml_key, attr in _YAML_KEYS.items()}


def dump_yaml(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def load_yaml(text: str) -> Dict[str, Any]:
    obj = yaml.safe_load(text)
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError("Invalid YAML root: expected mapping")
    return obj


def parse_manager_config(data: Dict[str, Any]) -> ManagerConfig:
    cfg = ManagerConfig()
    for yaml_key, attr in _YAML_KEYS.items():
        if data.get(yaml_key) is None:
            continue
        if attr in ("key_owner_uid", "key_owner_gid"):
            setattr(cfg, attr, int(data[yaml_key]))
        else:
            setattr(cfg, attr, str(data[yaml_key]))
    return cfg
