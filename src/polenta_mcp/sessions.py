"""Tracking of initialized client sessions."""

import hashlib
import threading


def client_ip(
    forwarded_for: str | None,
    real_ip: str | None,
    remote_addr: str | None,
) -> str:
    """Pick the client address: first X-Forwarded-For hop, X-Real-IP, then the peer."""
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return remote_addr or "unknown"


def derive_session_id(ip: str, user_agent: str | None) -> str:
    """Stable session identifier for a client address and user agent."""
    digest = hashlib.sha256(f"{ip}|{user_agent or ''}".encode()).hexdigest()
    return digest[:32]


class SessionManager:
    """Set of initialized session ids.

    Sessions live until ``clear()`` is called for them; there is no expiry.
    """

    def __init__(self):
        self._sessions: set[str] = set()
        self._lock = threading.Lock()

    def add(self, session_id: str) -> None:
        with self._lock:
            self._sessions.add(session_id)

    def is_initialized(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.discard(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
