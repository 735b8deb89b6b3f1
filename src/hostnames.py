"""Hostname and origin address normalization."""

from typing import Optional


def normalize(raw) -> Optional[str]:
    """Turn a requested hostname into a rule table key.

    Proxies may append metadata after a NUL byte and clients send the
    port, so ``"MC.Example.COM:25565\\0extra"`` becomes ``"mc.example.com"``.
    Returns None when nothing usable is left.
    """
    if not isinstance(raw, str):
        return None
    host = raw.split("\0", 1)[0]
    host = host.split(":", 1)[0].lower().strip()
    if host.endswith("."):
        host = host[:-1]
    return host or None


def extract_requested_host(server_hostname, original_handshake=None) -> Optional[str]:
    host = normalize(server_hostname)
    if host is None:
        host = normalize(original_handshake)
    return host


def normalize_address(addr) -> Optional[str]:
    if not isinstance(addr, str):
        return None
    a = addr.strip().lower()
    return a or None
