"""
Error taxonomy for IIIF authentication flows.

Every failure raised by this package derives from AuthError. Errors may carry
``hints``: short, actionable suggestions (alternative authentication paths)
that callers should show to the user alongside the message.
"""

from __future__ import annotations

from typing import Iterable


BROWSER_FLOW_HINTS: tuple[str, ...] = (
    "Authenticate directly with --username and --password (without --interactive).",
    "Supply a token (--token) or session id (--session-id) obtained manually.",
    "Use a IIIF viewer application for full browser-based authentication support.",
)


class AuthError(Exception):
    """Base class for all authentication failures."""

    def __init__(self, message: str, *, hints: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.hints: tuple[str, ...] = tuple(hints)


class NoAuthServicesError(AuthError):
    """The resource declares no IIIF auth services."""


class NoLoginServiceError(AuthError):
    """Auth services exist but none can start a login."""


class UnsupportedAuthTypeError(AuthError):
    """The selected service profile maps to no known flow."""


class NoPortAvailableError(AuthError):
    """Every port in the callback range is taken."""


class CallbackTimeoutError(AuthError):
    """A browser flow or token poll ran past its deadline."""


class CallbackRejectedError(AuthError):
    """The browser callback arrived without usable credentials."""


class SessionExpiredError(AuthError):
    """The session is expired or was refused by the server (401/403)."""


class NoSessionError(AuthError):
    """No session is stored for the resource."""


class NetworkError(AuthError):
    """Transport-level failure talking to a remote service."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TokenServiceError(AuthError):
    """The token service is missing or reported an error."""

    def __init__(self, reason: str, *, hints: Iterable[str] = ()) -> None:
        super().__init__(f"Token service error: {reason}", hints=hints)
        self.reason = reason
