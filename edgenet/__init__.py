"""Async networking interfaces, an asyncio socket stack, timeouts and an mDNS / DNS-SD responder."""

__version__ = "0.5.0"

__all__ = ["nal", "timeout", "stack", "std", "mdns_wire", "mdns", "mdns_host", "mdns_io"]