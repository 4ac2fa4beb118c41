from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
import ipaddress
import threading
from typing import Deque, Dict, Iterable, List, Optional

from .models import to_iso

LOOPBACK_ALIASES = frozenset({"127.0.0.1", "::1", "localhost"})
MAX_LOG_ENTRIES = 100


def _parse_address(value: str):
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


class AccessGate:
    """Allow-list of client addresses: exact IPs, loopback aliases, CIDR ranges or ``*``."""

    def __init__(self, allowed: Iterable[str]) -> None:
        self.allowed = [entry.strip() for entry in allowed if entry and entry.strip()]
        self._allow_all = "*" in self.allowed
        self._exact = set(self.allowed)
        self._networks = []
        for entry in self.allowed:
            if "/" in entry:
                try:
                    self._networks.append(ipaddress.ip_network(entry, strict=False))
                except ValueError:
                    raise ValueError(f"Invalid CIDR range in allow list: {entry}") from None

    def is_allowed(self, address: Optional[str]) -> bool:
        if self._allow_all:
            return True
        if not address:
            return False
        if address in self._exact:
            return True
        parsed = _parse_address(address)
        normalized = str(parsed) if parsed is not None else address
        if normalized in self._exact:
            return True
        if normalized in LOOPBACK_ALIASES and self._exact & LOOPBACK_ALIASES:
            return True
        if parsed is None:
            return False
        return any(parsed.version == network.version and parsed in network for network in self._networks)


@dataclass(frozen=True, slots=True)
class RequestLogEntry:
    timestamp: datetime
    ip: str
    method: str
    path: str
    user_agent: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "timestamp": to_iso(self.timestamp),
            "ip": self.ip,
            "method": self.method,
            "path": self.path,
            "userAgent": self.user_agent,
        }


class RequestLog:
    """Bounded, newest-first log of API requests."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self._entries: Deque[RequestLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, ip: str, method: str, path: str, user_agent: Optional[str]) -> RequestLogEntry:
        entry = RequestLogEntry(
            timestamp=datetime.now(timezone.utc),
            ip=ip,
            method=method,
            path=path,
            user_agent=(user_agent or "Unknown")[:50],
        )
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def entries(self) -> List[RequestLogEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
