"""
Runtime settings for authentication flows.

All tunables live in ``_DEFAULTS``; AuthSettings is built from them and may be
overridden per field (the CLI does this from its options).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta


_DEFAULTS = {
    "port_start": 8080,
    "port_end": 8180,
    "callback_host": "127.0.0.1",
    "flow_deadline": 120.0,         # seconds, measured from listener start
    "poll_interval": 1.0,
    "poll_grace_period": 5.0,       # no token attempts during the first seconds
    "max_polls": 120,
    "request_timeout": 10.0,
    "default_session_ttl": 3600.0,  # used whenever the real TTL is unknown
}

# With these values a browser flow hits flow_deadline (120 s) before the poller
# reaches its last attempt (5 s grace + 119 intervals). The inclusive
# max_polls ceiling only decides the outcome for a standalone TokenPoller or a
# raised deadline.


@dataclass(frozen=True)
class PortRange:
    """Closed, ordered interval of TCP ports scanned for the callback listener."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not (0 < self.start <= self.end <= 65535):
            raise ValueError(f"Invalid port range: [{self.start}, {self.end}]")

    def __iter__(self):
        return iter(range(self.start, self.end + 1))


@dataclass(frozen=True)
class AuthSettings:
    """Configuration consumed by the orchestrator, poller and accessor."""

    port_range: PortRange = field(
        default_factory=lambda: PortRange(_DEFAULTS["port_start"], _DEFAULTS["port_end"])
    )
    callback_host: str = _DEFAULTS["callback_host"]
    flow_deadline: float = _DEFAULTS["flow_deadline"]
    poll_interval: float = _DEFAULTS["poll_interval"]
    poll_grace_period: float = _DEFAULTS["poll_grace_period"]
    max_polls: int = _DEFAULTS["max_polls"]
    request_timeout: float = _DEFAULTS["request_timeout"]
    default_session_ttl: float = _DEFAULTS["default_session_ttl"]

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.default_session_ttl)

    def with_overrides(self, **changes) -> "AuthSettings":
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
