import ipaddress
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from .errors import FileError, ParseError
from .wgconf import Endpoint, IPAddress, parse_port

DEFAULT_SETUP_VARS = "/etc/pivpn/wireguard/setupVars.conf"


@dataclass()
class Settings:
    """Values the pivpn installer recorded in its setupVars.conf."""

    dns: List[IPAddress] = field(default_factory=list)
    endpoint: Endpoint = field(default_factory=Endpoint)
    user_config_path: str = ""
    values: Dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_mapping(cls, env: Mapping[str, Optional[str]]) -> "Settings":
        values = {k: v for k, v in env.items() if v is not None}
        dns: List[IPAddress] = []
        for key in ("pivpnDNS1", "pivpnDNS2"):
            raw = values.get(key)
            if raw:
                try:
                    dns.append(ipaddress.ip_address(raw))
                except ValueError as e:
                    raise ParseError(f"{key} is not an IP address", raw) from e

        host = values.get("pivpnHOST")
        if host is None:
            raise ParseError("pivpnHOST was not present in the pivpn setup vars", "pivpnHOST")
        port = 0
        if "pivpnPORT" in values:
            port = parse_port(values["pivpnPORT"])

        install_home = values.get("install_home")
        if install_home is None:
            raise ParseError("install_home was not present in the pivpn setup vars", "install_home")

        return cls(
            dns=dns,
            endpoint=Endpoint(host, port),
            user_config_path=os.path.join(install_home, "configs"),
            values=values,
        )

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)


def load_settings(path: str = DEFAULT_SETUP_VARS) -> Settings:
    try:
        with open(path, "r", encoding="utf-8") as f:
            values = dotenv_values(stream=f)
    except OSError as e:
        raise FileError(path, e) from e
    try:
        return Settings.from_mapping(values)
    except ParseError as e:
        raise FileError(path, e) from e
