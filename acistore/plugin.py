"""The environment-driven entry point of network plugins and the static IPAM."""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .allocator import IPAllocator, load_ipam_config
from .diskbackend import DEFAULT_DATA_DIR, DiskStore
from .ipconfig import IPConfig

_log = logging.getLogger(__name__)

ENV_VARS = (
    ("RKT_NETPLUGIN_COMMAND", "command"),
    ("RKT_NETPLUGIN_CONTID", "cont_id"),
    ("RKT_NETPLUGIN_NETNS", "netns"),
    ("RKT_NETPLUGIN_IFNAME", "if_name"),
    ("RKT_NETPLUGIN_NETCONF", "net_conf"),
    ("RKT_NETPLUGIN_NETNAME", "net_name"),
    ("RKT_NETPLUGIN_IPAMPATH", "ipam_path"),
)


class PluginError(Exception):
    """Raised for bad plugin invocations and unsupported configurations."""


@dataclass
class CmdArgs:
    """The arguments a plugin receives through its environment."""

    command: str
    cont_id: uuid.UUID
    netns: str
    if_name: str
    net_conf: str
    net_name: str
    ipam_path: str


def args_from_env(environ: Optional[Mapping[str, str]] = None) -> CmdArgs:
    """Read and check the plugin arguments from the environment."""
    environ = os.environ if environ is None else environ
    values = {}
    missing = []
    for var, attr in ENV_VARS:
        value = environ.get(var, "")
        if not value:
            _log.error("%s env variable missing", var)
            missing.append(var)
        values[attr] = value
    if missing:
        raise PluginError(f"env variables missing: {', '.join(missing)}")
    try:
        values["cont_id"] = uuid.UUID(values["cont_id"])
    except ValueError as exc:
        raise PluginError(
            f"Error parsing Container ID ({values['cont_id']}): {exc}"
        ) from exc
    return CmdArgs(**values)


def plugin_main(
    cmd_add: Callable[[CmdArgs], object],
    cmd_del: Callable[[CmdArgs], object],
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Dispatch to cmd_add or cmd_del; return the process exit status."""
    try:
        args = args_from_env(environ)
    except PluginError as exc:
        _log.error("%s", exc)
        return 1
    handlers = {"ADD": cmd_add, "DEL": cmd_del}
    handler = handlers.get(args.command)
    if handler is None:
        _log.error("Unknown RKT_NETPLUGIN_COMMAND: %s", args.command)
        return 1
    try:
        handler(args)
    except Exception as exc:
        _log.error("%s: %s", args.command, exc)
        return 1
    return 0


def cmd_add(args: CmdArgs, data_dir=DEFAULT_DATA_DIR) -> IPConfig:
    """Allocate an address and print its configuration as JSON."""
    ipam_conf = load_ipam_config(args.net_conf)
    with DiskStore(ipam_conf.name, data_dir) as store:
        allocator = IPAllocator(ipam_conf, store)
        if ipam_conf.type == "static":
            ip_conf = allocator.get(str(args.cont_id))
        elif ipam_conf.type == "static-ptp":
            ip_conf = allocator.get_ptp(str(args.cont_id))
        else:
            raise PluginError("Unsupported IPAM plugin type")
    sys.stdout.write(json.dumps(ip_conf.to_dict(), indent=4))
    sys.stdout.flush()
    return ip_conf


def cmd_del(args: CmdArgs, data_dir=DEFAULT_DATA_DIR) -> None:
    """Release every address held by the container."""
    ipam_conf = load_ipam_config(args.net_conf)
    with DiskStore(ipam_conf.name, data_dir) as store:
        IPAllocator(ipam_conf, store).release(str(args.cont_id))


def main(argv=None) -> int:
    """Run the static IPAM plugin from the process environment."""
    logging.basicConfig(level=logging.INFO)
    return plugin_main(cmd_add, cmd_del)