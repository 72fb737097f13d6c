"""Static address allocation from a subnet, with its configuration."""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Optional

from .cidr import Address, next_ip, parse_cidr, prev_ip
from .ipconfig import IPConfig
from .netconf import load_net


class AllocationError(Exception):
    """Raised when no address can be allocated."""


def _str(doc: dict, key: str) -> str:
    value = doc.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class IPAMConfig:
    """The address-related part of a network definition."""

    name: str = ""
    type: str = ""
    range_start: str = ""
    range_end: str = ""
    subnet: str = ""
    gateway: str = ""
    routes: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc, name: str = "") -> "IPAMConfig":
        if not isinstance(doc, dict):
            raise ValueError("field 'ipam' must be an object")
        routes = doc.get("routes") or []
        if not isinstance(routes, list) or not all(isinstance(r, str) for r in routes):
            raise ValueError("field 'routes' must be an array of strings")
        return cls(
            name=name,
            type=_str(doc, "type"),
            range_start=_str(doc, "rangeStart"),
            range_end=_str(doc, "rangeEnd"),
            subnet=_str(doc, "subnet"),
            gateway=_str(doc, "gateway"),
            routes=list(routes),
        )


def load_ipam_config(net_conf) -> IPAMConfig:
    """Load the address configuration from a network definition file."""
    path = os.fspath(net_conf)
    net = load_net(path)
    ipam = net.raw.get("ipam")
    if ipam is None:
        raise ValueError(f"{path!r} missing 'ipam' key")
    return IPAMConfig.from_dict(ipam, name=net.name)


def _validate_range_ip(text: str, subnet) -> Address:
    try:
        ip = ipaddress.ip_address(text)
    except ValueError as exc:
        raise ValueError(f"invalid ip address: {text}") from exc
    if ip not in subnet:
        raise ValueError(f"{text} not in network: {subnet}")
    return ip


class IPAllocator:
    """Hands out addresses of a subnet round-robin, reserving them in a store."""

    def __init__(self, conf: IPAMConfig, store):
        self.conf = conf
        self.store = store
        self.ipnet = parse_cidr(conf.subnet).network
        start = next_ip(self.ipnet.network_address)
        end = prev_ip(self.ipnet.broadcast_address)
        if conf.range_start:
            start = _validate_range_ip(conf.range_start, self.ipnet)
        if conf.range_end:
            end = _validate_range_ip(conf.range_end, self.ipnet)
        self.start = start
        self.end = end
        try:
            self._last: Optional[Address] = prev_ip(start)
        except ValueError:
            self._last = None

    def _next_ip(self) -> Address:
        if self._last is None or self._last == self.end:
            self._last = self.start
        else:
            self._last = next_ip(self._last)
        return self._last

    def _routes(self) -> list:
        return [parse_cidr(route) for route in self.conf.routes]

    def _exhausted(self) -> AllocationError:
        return AllocationError(
            f"no ip addresses available in network: {self.conf.name}"
        )

    def get(self, container_id: str) -> IPConfig:
        """Allocate one address for a container, never the gateway."""
        self.store.lock()
        try:
            gateway = None
            if self.conf.gateway:
                try:
                    gateway = ipaddress.ip_address(self.conf.gateway)
                except ValueError:
                    gateway = None
            routes = self._routes()

            ip = self._next_ip()
            seen = ip
            while True:
                if gateway is None or ip != gateway:
                    if self.store.reserve(container_id, ip):
                        break
                ip = self._next_ip()
                if ip == seen:
                    raise self._exhausted()

            return IPConfig(
                ip=ipaddress.ip_interface((ip, self.ipnet.prefixlen)),
                gateway=gateway,
                routes=routes,
            )
        finally:
            self.store.unlock()

    def get_ptp(self, container_id: str) -> IPConfig:
        """Allocate an even gateway address and the odd address after it."""
        self.store.lock()
        try:
            routes = self._routes()
            gateway = self._next_ip()
            seen = gateway
            while True:
                if int(gateway) % 2 == 0 and self.store.reserve(container_id, gateway):
                    ip = self._next_ip()
                    if self.store.reserve(container_id, ip):
                        break
                gateway = self._next_ip()
                if gateway == seen:
                    raise self._exhausted()

            prefix = self.ipnet.max_prefixlen - 1
            return IPConfig(
                ip=ipaddress.ip_interface((ip, prefix)),
                gateway=gateway,
                routes=routes,
            )
        finally:
            self.store.unlock()

    def release(self, container_id: str) -> None:
        """Release every address allocated to a container."""
        self.store.lock()
        try:
            self.store.release_by_container_id(container_id)
        finally:
            self.store.unlock()