"""
AuthClient: the public entry point.

Wires one httpx client, a session store and the settings into the
orchestrator and the protected resource accessor.

Basic usage:
    >>> from iiif_auth import AuthClient, Credentials
    >>>
    >>> with AuthClient() as auth:
    ...     session = auth.authenticate(url, Credentials("username", "password"))
    ...     data = auth.get_protected_resource(url)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from .errors import AuthError
from .flow import AuthFlowOrchestrator, AuthOptions, Credentials, open_browser
from .services import DiscoveryResult, format_auth_info, structured_auth_info
from .session import InMemorySessionStore, ProtectedResourceAccessor, Session, SessionStore
from .settings import AuthSettings
from .transport import make_client


logger = logging.getLogger(__name__)


class AuthClient:
    """
    Facade over discovery, authentication and authenticated access.

    An ``http_client`` passed in is used as-is and left open on close();
    otherwise the client creates and owns one.
    """

    def __init__(
        self,
        *,
        store: SessionStore | None = None,
        settings: AuthSettings | None = None,
        http_client: httpx.Client | None = None,
        open_url: Callable[[str], Any] = open_browser,
    ) -> None:
        self.settings = settings or AuthSettings()
        self.store = store if store is not None else InMemorySessionStore()
        self._owns_client = http_client is None
        self.http = http_client or make_client(timeout=self.settings.request_timeout)
        self.orchestrator = AuthFlowOrchestrator(self.http, self.store, self.settings, open_url=open_url)
        self.accessor = ProtectedResourceAccessor(
            self.http, self.store, timeout=self.settings.request_timeout
        )

    def close(self) -> None:
        if self._owns_client:
            self.http.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_auth_info(self, resource_url: str) -> Any:
        """Raw auth document: the resource body, or the 401/403 body carrying services."""
        return self.orchestrator.fetch_auth_document(resource_url)

    def discover(self, resource_url: str) -> DiscoveryResult:
        _, result = self.orchestrator.discover(resource_url)
        return result

    def describe(self, resource_url: str, *, structured: bool = False) -> str | dict[str, Any]:
        """Markdown report (or structured dict) of a resource's auth services."""
        document, result = self.orchestrator.discover(resource_url)
        if structured:
            return structured_auth_info(document, result)
        return format_auth_info(document, result)

    def authenticate(
        self,
        resource_url: str,
        credentials: Credentials | None = None,
        options: AuthOptions | None = None,
    ) -> Session:
        return self.orchestrator.authenticate(resource_url, credentials, options)

    def probe_access(self, resource_url: str, session: Session | None = None) -> bool:
        """
        True if the resource is accessible with the given or stored session.

        Uses the resource's probe service when one is declared. Discovery
        failures count as no access.
        """
        session = session or self.store.get(resource_url)
        if session is not None and not session.is_valid():
            # evicts without touching the network
            return self.accessor.probe(resource_url, session)
        try:
            result = self.discover(resource_url)
        except AuthError as e:
            logger.debug("probe_discovery_failed", extra={"url": resource_url, "error": str(e)})
            return False
        probe = result.first("probe")
        probe_url = probe.id if probe else None
        return self.accessor.probe(resource_url, session, probe_url=probe_url)

    def get_protected_resource(self, resource_url: str, session: Session | None = None) -> Any:
        return self.accessor.fetch(resource_url, session)

    def logout(self, resource_url: str) -> None:
        """Call the declared logout service (best effort) and forget the session."""
        logout_url = None
        try:
            result = self.discover(resource_url)
        except AuthError as e:
            logger.debug("logout_discovery_failed", extra={"url": resource_url, "error": str(e)})
        else:
            service = result.first("logout")
            logout_url = service.id if service else None
        self.accessor.logout(resource_url, logout_url=logout_url)
