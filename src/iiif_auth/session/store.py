"""
Sessions and session storage.

A Session is the local record of a completed authentication. Sessions are
kept in a SessionStore keyed by resource URL. The store is an injected
dependency: InMemorySessionStore lives for the process, JsonFileSessionStore
persists to disk so separate CLI invocations can share sessions.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal, Protocol


AuthType = Literal["cookie", "token", "external", "unknown"]

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    """
    Outcome of a completed authentication.

    Attributes:
        resource_url: Protected resource this session unlocks (store key)
        auth_type: Flow that produced the session
        token: Bearer token, if one was issued
        cookie: Cookie header value, if the flow produced cookies
        expires_at: UTC expiry; None means no known expiry
    """

    resource_url: str
    auth_type: AuthType
    token: str | None = None
    cookie: str | None = None
    expires_at: datetime | None = None

    @classmethod
    def expiring_in(
        cls,
        resource_url: str,
        auth_type: AuthType,
        ttl: timedelta,
        *,
        token: str | None = None,
        cookie: str | None = None,
    ) -> "Session":
        return cls(resource_url, auth_type, token=token, cookie=cookie, expires_at=utcnow() + ttl)

    def is_valid(self, now: datetime | None = None) -> bool:
        """True if there is no expiry or the expiry is still in the future."""
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())

    def auth_headers(self) -> dict[str, str]:
        """Headers that present this session's credentials."""
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    def summary(self) -> dict[str, Any]:
        """Credential-free description, safe to print."""
        return {
            "resourceUrl": self.resource_url,
            "authType": self.auth_type,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "hasToken": bool(self.token),
            "hasCookie": bool(self.cookie),
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        expires_at = data.get("expires_at")
        return cls(
            resource_url=data["resource_url"],
            auth_type=data.get("auth_type", "unknown"),
            token=data.get("token"),
            cookie=data.get("cookie"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


class SessionStore(Protocol):
    """Storage interface for sessions and cookies captured mid-flow."""

    def get(self, resource_url: str) -> Session | None:
        ...

    def set(self, session: Session) -> None:
        ...

    def delete(self, resource_url: str) -> None:
        ...

    def list(self) -> list[Session]:
        ...

    def remember_cookie(self, url: str, cookie: str) -> None:
        ...

    def cookie_for(self, url: str) -> str | None:
        ...


class InMemorySessionStore:
    """Process-lifetime store. Each operation is atomic; keys are independent."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._cookies: dict[str, str] = {}

    def get(self, resource_url: str) -> Session | None:
        with self._lock:
            return self._sessions.get(resource_url)

    def set(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.resource_url] = session

    def delete(self, resource_url: str) -> None:
        """Drop the session and any cookie cached for the URL."""
        with self._lock:
            self._sessions.pop(resource_url, None)
            self._cookies.pop(resource_url, None)

    def list(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def remember_cookie(self, url: str, cookie: str) -> None:
        with self._lock:
            self._cookies[url] = cookie

    def cookie_for(self, url: str) -> str | None:
        with self._lock:
            return self._cookies.get(url)


class JsonFileSessionStore(InMemorySessionStore):
    """
    Session store persisted as a JSON file.

    The whole file is rewritten after every change. A missing or corrupt file
    starts an empty store.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path.expanduser()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            sessions = [Session.from_dict(raw) for raw in data.get("sessions", [])]
            cookies = dict(data.get("cookies", {}))
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning("session_file_unreadable", extra={"path": str(self.path), "error": str(e)})
            return
        self._sessions = {s.resource_url: s for s in sessions}
        self._cookies = cookies

    def _save(self) -> None:
        # Held through the write so files land in snapshot order.
        with self._lock:
            payload = {
                "sessions": [s.to_dict() for s in self._sessions.values()],
                "cookies": dict(self._cookies),
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)

    def set(self, session: Session) -> None:
        super().set(session)
        self._save()

    def delete(self, resource_url: str) -> None:
        super().delete(resource_url)
        self._save()

    def remember_cookie(self, url: str, cookie: str) -> None:
        super().remember_cookie(url, cookie)
        self._save()
