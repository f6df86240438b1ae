"""
Client portal credentials, sessions and login throttling.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

PBKDF2_ITERATIONS = 260_000
SESSION_TTL_SECONDS = 24 * 60 * 60
LOGIN_WINDOW_SECONDS = 15 * 60
LOGIN_MAX_ATTEMPTS = 5
RATE_LIMIT_MESSAGE = "Too many login attempts. Please try again later."


def hash_password(password: str, *, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    try:
        algorithm, iterations, salt, expected = stored.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), rounds)
    return hmac.compare_digest(digest.hex(), expected)


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass
class Session:
    client_id: str
    expires_at: float


class PortalSessions:
    """
    Opaque bearer tokens for portal clients.

    Only the SHA-256 of a token is kept, so a leaked session table cannot be
    replayed.
    """

    def __init__(self, ttl_seconds: float = SESSION_TTL_SECONDS, clock=time.time) -> None:
        self.ttl = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def issue(self, client_id: str) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge()
            self._sessions[_token_hash(token)] = Session(client_id, self._clock() + self.ttl)
        return token

    def verify(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(_token_hash(token))
            if session is None:
                return None
            if session.expires_at <= self._clock():
                del self._sessions[_token_hash(token)]
                return None
            return session.client_id

    def revoke(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(_token_hash(token), None)

    def revoke_client(self, client_id: str) -> None:
        with self._lock:
            for key in [key for key, session in self._sessions.items() if session.client_id == client_id]:
                del self._sessions[key]

    def _purge(self) -> None:
        now = self._clock()
        for key in [key for key, session in self._sessions.items() if session.expires_at <= now]:
            del self._sessions[key]


class LoginRateLimiter:
    """
    Counts failed logins per key inside a sliding window.
    """

    def __init__(
        self,
        max_attempts: int = LOGIN_MAX_ATTEMPTS,
        window_seconds: float = LOGIN_WINDOW_SECONDS,
        clock=time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window = window_seconds
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _trim(self, key: str, now: float) -> int:
        attempts = self._attempts.get(key)
        if attempts is None:
            return 0
        while attempts and now - attempts[0] >= self.window:
            attempts.popleft()
        if not attempts:
            del self._attempts[key]
        return len(attempts)

    def blocked(self, key: str) -> bool:
        with self._lock:
            return self._trim(key, self._clock()) >= self.max_attempts

    def record_failure(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            self._trim(key, now)
            self._attempts.setdefault(key, deque()).append(now)

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)


def authenticate(storage: Any, username: str, password: str) -> Optional[Dict[str, Any]]:
    if not username or not password:
        return None
    client = storage.get_client_by_portal_username(username)
    if not client or not client.get("portal_enabled"):
        return None
    if not verify_password(password, client.get("portal_password")):
        return None
    return client
