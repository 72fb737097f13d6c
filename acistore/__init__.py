"""Content-addressable image storage, network configuration and static IP allocation."""

__version__ = "0.1.0"