"""The record of active networks saved for listing tools."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

FILENAME = "net-info.json"


@dataclass
class NetInfo:
    """One active network of a pod."""

    net_name: str
    if_name: str
    ip: str

    def to_dict(self) -> dict:
        return {"netName": self.net_name, "ifName": self.if_name, "ip": self.ip}

    @classmethod
    def from_dict(cls, doc) -> "NetInfo":
        if not isinstance(doc, dict):
            raise ValueError("net info entry must be a JSON object")
        return cls(
            net_name=str(doc.get("netName") or ""),
            if_name=str(doc.get("ifName") or ""),
            ip=str(doc.get("ip") or ""),
        )


def load(root) -> list[NetInfo]:
    """Read the saved network records from a pod directory."""
    with open(os.path.join(os.fspath(root), FILENAME), "rb") as fh:
        doc = json.loads(fh.read())
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise ValueError("net info must be a JSON array")
    return [NetInfo.from_dict(entry) for entry in doc]


def save(root, infos) -> None:
    """Write the network records into a pod directory."""
    doc = [info.to_dict() for info in infos]
    with open(os.path.join(os.fspath(root), FILENAME), "w", encoding="utf-8") as fh:
        fh.write(json.dumps(doc, separators=(",", ":")) + "\n")