"""
IIIF Authentication API client.

Discovers the auth services a IIIF resource declares, runs the matching
cookie, token or external login flow, keeps per-resource sessions and
fetches protected resources with them.
"""

from .client import AuthClient
from .errors import (
    AuthError,
    CallbackRejectedError,
    CallbackTimeoutError,
    NetworkError,
    NoAuthServicesError,
    NoLoginServiceError,
    NoPortAvailableError,
    NoSessionError,
    SessionExpiredError,
    TokenServiceError,
    UnsupportedAuthTypeError,
)
from .flow import AuthFlowOrchestrator, AuthOptions, Credentials, FlowState
from .services import DiscoveryResult, discover
from .session import InMemorySessionStore, JsonFileSessionStore, Session, SessionStore
from .settings import AuthSettings, PortRange

__all__ = [
    "AuthClient",
    "AuthError",
    "CallbackRejectedError",
    "CallbackTimeoutError",
    "NetworkError",
    "NoAuthServicesError",
    "NoLoginServiceError",
    "NoPortAvailableError",
    "NoSessionError",
    "SessionExpiredError",
    "TokenServiceError",
    "UnsupportedAuthTypeError",
    "AuthFlowOrchestrator",
    "AuthOptions",
    "Credentials",
    "FlowState",
    "DiscoveryResult",
    "discover",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "Session",
    "SessionStore",
    "AuthSettings",
    "PortRange",
]
