"""The layer-3 configuration an address manager hands back for an interface."""

from __future__ import annotations

import ipaddress
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .cidr import Address, Interface, parse_cidr


@dataclass
class IPConfig:
    """An interface address, optional gateway and routes to install."""

    ip: Interface
    gateway: Optional[Address] = None
    routes: list[Interface] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc: Any) -> "IPConfig":
        """Build a configuration from a decoded JSON document."""
        if not isinstance(doc, dict):
            raise ValueError("IP configuration must be a JSON object")
        ip_text = doc.get("ip") or ""
        if not isinstance(ip_text, str):
            raise ValueError("field 'ip' must be a string")
        ip = parse_cidr(ip_text)

        gateway = None
        gw_text = doc.get("gateway") or ""
        if gw_text:
            if not isinstance(gw_text, str):
                raise ValueError("error parsing Gateway")
            try:
                gateway = ipaddress.ip_address(gw_text)
            except ValueError as exc:
                raise ValueError("error parsing Gateway") from exc

        route_texts = doc.get("routes") or []
        if not isinstance(route_texts, list):
            raise ValueError("field 'routes' must be an array")
        routes = []
        for route in route_texts:
            if not isinstance(route, str):
                raise ValueError("routes must be strings")
            routes.append(parse_cidr(route))
        return cls(ip=ip, gateway=gateway, routes=routes)

    @classmethod
    def from_json(cls, data) -> "IPConfig":
        """Parse a JSON configuration."""
        return cls.from_dict(json.loads(data))

    def to_dict(self) -> dict:
        """Return the JSON document, leaving out an unset gateway and routes."""
        doc: dict[str, Any] = {"ip": str(self.ip)}
        if self.gateway is not None:
            doc["gateway"] = str(self.gateway)
        if self.routes:
            doc["routes"] = [str(route) for route in self.routes]
        return doc

    def to_json(self) -> str:
        """Return the compact JSON encoding."""
        return json.dumps(self.to_dict(), separators=(",", ":"))