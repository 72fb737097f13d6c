"""CIDR parsing and address stepping."""

from __future__ import annotations

import ipaddress
from typing import Union

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Interface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]
Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_cidr(text: str) -> Interface:
    """Parse ``address/prefix``, keeping the host address as given."""
    _, sep, prefix = text.partition("/")
    if not sep or not (prefix.isascii() and prefix.isdigit()):
        raise ValueError(f"invalid CIDR address: {text}")
    try:
        return ipaddress.ip_interface(text)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR address: {text}") from exc


def _address(ip) -> Address:
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    return ipaddress.ip_address(ip)


def next_ip(ip) -> Address:
    """Return the address after ip."""
    address = _address(ip)
    try:
        return address + 1
    except ValueError as exc:
        raise ValueError(f"no address after {address}") from exc


def prev_ip(ip) -> Address:
    """Return the address before ip."""
    address = _address(ip)
    try:
        return address - 1
    except ValueError as exc:
        raise ValueError(f"no address before {address}") from exc


def network(interface) -> Network:
    """Return the network an interface address belongs to."""
    if isinstance(interface, str):
        interface = parse_cidr(interface)
    return interface.network