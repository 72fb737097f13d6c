"""Network configuration files and the interface config plugins report."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .paths import stage1_rootfs_path

USER_NET_PATH = "/etc/rkt/net.d"
DEFAULT_NET_PATH = "etc/rkt/net.d/99-default.conf"
DEFAULT_NET_NAME = "default"

_log = logging.getLogger(__name__)

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _string_field(doc: dict, key: str) -> str:
    value = doc.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class NetConf:
    """A network definition; ``raw`` keeps every field of the document."""

    name: str = ""
    type: str = ""
    ipam_type: str = ""
    filename: str = ""
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, doc: Any, filename: str = "") -> "NetConf":
        """Build a definition from a decoded JSON document."""
        if not isinstance(doc, dict):
            raise ValueError("network configuration must be a JSON object")
        ipam = doc.get("ipam")
        if ipam is None:
            ipam = {}
        if not isinstance(ipam, dict):
            raise ValueError("field 'ipam' must be an object")
        return cls(
            name=_string_field(doc, "name"),
            type=_string_field(doc, "type"),
            ipam_type=_string_field(ipam, "type"),
            filename=filename,
            raw=doc,
        )

    def to_dict(self) -> dict:
        """Return the JSON document for this definition."""
        doc = dict(self.raw)
        for key, value in (("name", self.name), ("type", self.type)):
            if value:
                doc[key] = value
            else:
                doc.pop(key, None)
        ipam = dict(doc.get("ipam") or {})
        if self.ipam_type:
            ipam["type"] = self.ipam_type
        else:
            ipam.pop("type", None)
        doc["ipam"] = ipam
        return doc


def load_net(path) -> NetConf:
    """Load a JSON network definition, recording the file it came from."""
    path = os.fspath(path)
    with open(path, "rb") as fh:
        doc = json.loads(fh.read())
    return NetConf.from_dict(doc, filename=path)


def _parse_address(value: Any, key: str) -> Optional[Address]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return ipaddress.ip_address(value)


@dataclass
class IfConfig:
    """The addresses a network plugin reports back after setup."""

    ip: Optional[Address] = None
    ip6: Optional[Address] = None

    @classmethod
    def from_json(cls, data) -> "IfConfig":
        """Parse the JSON a plugin printed."""
        doc = json.loads(data)
        if not isinstance(doc, dict):
            raise ValueError("interface configuration must be a JSON object")
        return cls(ip=_parse_address(doc.get("ip"), "ip"),
                   ip6=_parse_address(doc.get("ip6"), "ip6"))

    def to_dict(self) -> dict:
        """Return the JSON document, leaving out unset addresses."""
        doc = {}
        if self.ip is not None:
            doc["ip"] = str(self.ip)
        if self.ip6 is not None:
            doc["ip6"] = str(self.ip6)
        return doc

    def to_json(self) -> str:
        """Return the indented JSON a plugin prints."""
        return json.dumps(self.to_dict(), indent=4)


def print_if_config(conf: IfConfig) -> None:
    """Write the interface configuration to standard output."""
    sys.stdout.write(conf.to_json())
    sys.stdout.flush()


def list_files(directory) -> list[str]:
    """Return the sorted names of non-directory entries; none if missing."""
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return []
    return sorted(entry.name for entry in entries if not entry.is_dir())


def load_user_nets(net_dir=None) -> list[NetConf]:
    """Load the user's definitions in file name order; first name wins."""
    net_dir = os.fspath(net_dir) if net_dir is not None else USER_NET_PATH
    nets: list[NetConf] = []
    for filename in list_files(net_dir):
        path = os.path.join(net_dir, filename)
        try:
            net = load_net(path)
        except (OSError, ValueError) as exc:
            raise ValueError(f"error loading {path}: {exc}") from exc
        if net.name == DEFAULT_NET_NAME:
            _log.info('Overriding "default" network with %s', filename)
        if any(existing.name == net.name for existing in nets):
            _log.info("%r network already defined, ignoring %s", net.name, filename)
            continue
        nets.append(net)
    return nets


def load_nets(net_dir, rkt_root) -> list[NetConf]:
    """Load the user's definitions plus stage1's default unless overridden."""
    nets = load_user_nets(net_dir)
    if not any(net.name == DEFAULT_NET_NAME for net in nets):
        default_path = os.path.join(stage1_rootfs_path(os.fspath(rkt_root)),
                                    DEFAULT_NET_PATH)
        try:
            nets.append(load_net(default_path))
        except (OSError, ValueError) as exc:
            raise ValueError(f"error loading net: {exc}") from exc
    return nets