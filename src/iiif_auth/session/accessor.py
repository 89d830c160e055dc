"""
Authenticated access to protected resources.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from iiif_auth.errors import NetworkError, NoSessionError, SessionExpiredError
from iiif_auth.transport import AUTH_FAILURE_STATUSES, JSON_ACCEPT, decode_body

from .store import Session, SessionStore


logger = logging.getLogger(__name__)


class ProtectedResourceAccessor:
    """
    Issues requests that carry a stored session's credentials.

    A session refused with 401/403 is evicted from the store and reported as
    SessionExpiredError; requests are never retried automatically.
    """

    def __init__(self, client: httpx.Client, store: SessionStore, *, timeout: float = 10.0) -> None:
        self.client = client
        self.store = store
        self.timeout = timeout

    def _resolve(self, url: str, session: Session | None) -> Session:
        session = session or self.store.get(url)
        if session is None:
            raise NoSessionError("No authentication session found. Please authenticate first.")
        if not session.is_valid():
            self.store.delete(url)
            raise SessionExpiredError("Authentication session expired. Please re-authenticate.")
        return session

    def fetch(self, url: str, session: Session | None = None) -> Any:
        """
        GET a protected resource with session credentials.

        JSON bodies are parsed; anything else (images, tiles) is returned as text.

        Raises:
            NoSessionError: No session given or stored
            SessionExpiredError: Session expired, or refused with 401/403 (evicted)
            NetworkError: Transport failure or other HTTP error
        """
        return decode_body(self._get(url, session))

    def _get(self, url: str, session: Session | None) -> httpx.Response:
        session = self._resolve(url, session)
        headers = {"Accept": JSON_ACCEPT, **session.auth_headers()}
        try:
            resp = self.client.get(url, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to fetch protected resource: {e}", cause=e) from e

        if resp.status_code in AUTH_FAILURE_STATUSES:
            self.store.delete(url)
            logger.info("session_refused", extra={"url": url, "status": resp.status_code})
            raise SessionExpiredError("Authentication failed. Session may have expired.")
        if resp.status_code >= 400:
            raise NetworkError(f"Failed to fetch protected resource: HTTP {resp.status_code}")
        return resp

    def probe(self, url: str, session: Session | None = None, *, probe_url: str | None = None) -> bool:
        """
        Check access without raising.

        With a probe service, HTTP 200 or a JSON body ``{"status": 200}``
        grants access. Without one, the full resource is fetched instead.
        """
        session = session or self.store.get(url)
        if session is not None and not session.is_valid():
            self.store.delete(url)
            logger.info("probe_session_expired", extra={"url": url})
            return False

        if probe_url is None:
            try:
                self._get(url, session)
            except (NoSessionError, SessionExpiredError, NetworkError) as e:
                logger.debug("probe_fetch_denied", extra={"url": url, "reason": str(e)})
                return False
            return True

        headers = {"Accept": "application/json"}
        if session is not None:
            headers.update(session.auth_headers())
        try:
            resp = self.client.get(probe_url, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug("probe_failed", extra={"probe_url": probe_url, "error": str(e)})
            return False

        if resp.status_code == 200:
            return True
        try:
            body = resp.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("status") == 200

    def logout(self, url: str, *, logout_url: str | None = None) -> None:
        """Best-effort remote logout, then unconditional local eviction."""
        session = self.store.get(url)
        if logout_url:
            headers = session.auth_headers() if session else {}
            try:
                self.client.get(logout_url, headers=headers, timeout=self.timeout)
            except httpx.HTTPError as e:
                logger.debug("logout_service_failed", extra={"logout_url": logout_url, "error": str(e)})
        self.store.delete(url)
        logger.info("logged_out", extra={"url": url})
