"""
Authentication flow orchestration.

AuthFlowOrchestrator turns a resource URL (plus optional credentials) into a
Session:

    UNAUTHENTICATED -> DISCOVERING -> COOKIE_FLOW | TOKEN_FLOW | EXTERNAL_FLOW
                    -> AUTHENTICATED   (or FAILED from any flow state)

Browser flows start a CallbackListener on a free local port and, for cookie
logins with a nested token service, a TokenPoller on a worker thread. Both
write to one Completion; the calling thread waits on it with the flow
deadline and tears both down before returning.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

import httpx

from iiif_auth.errors import (
    BROWSER_FLOW_HINTS,
    AuthError,
    CallbackRejectedError,
    CallbackTimeoutError,
    NetworkError,
    NoAuthServicesError,
    NoLoginServiceError,
    NoPortAvailableError,
    TokenServiceError,
    UnsupportedAuthTypeError,
)
from iiif_auth.services import AuthServiceDescriptor, DiscoveryResult, discover
from iiif_auth.session import AuthType, Session, SessionStore
from iiif_auth.session.store import utcnow
from iiif_auth.settings import AuthSettings
from iiif_auth.transport import (
    JSON_ACCEPT,
    decode_json,
    fetch_auth_document,
    set_cookie_pairs,
)

from .browser import open_browser
from .callback import CallbackListener, CallbackMode, CallbackResult
from .completion import Completion
from .poller import TokenPoller
from .ports import find_available_port


# Tried in order; the first name not already in the login URL carries the callback.
CALLBACK_PARAMS: tuple[str, ...] = ("return_url", "redirect_uri", "callback", "returnTo", "next")

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    DISCOVERING = "discovering"
    COOKIE_FLOW = "cookie_flow"
    TOKEN_FLOW = "token_flow"
    EXTERNAL_FLOW = "external_flow"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class Credentials:
    """Username and password for a direct login."""

    username: str
    password: str

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class AuthOptions:
    """
    Per-call options.

    Attributes:
        token: Bearer token obtained elsewhere; skips discovery
        session_id: Session id obtained elsewhere; sent as ``session=<id>``
        interactive: Always use the browser, even when credentials are given
    """

    token: str | None = None
    session_id: str | None = None
    interactive: bool = False


def determine_auth_type(service: AuthServiceDescriptor) -> AuthType:
    """Map a login-capable service to the flow that handles it."""
    role = service.role
    if role == "external":
        return "external"
    if role == "token":
        return "token"
    if role in ("cookie", "login"):
        return "cookie"
    return "unknown"


def build_login_url(login_url: str, *, origin: str, callback_url: str, mode: CallbackMode) -> str:
    """
    Add callback parameters to a login URL.

    Cookie logins get ``origin`` plus the callback under the first unused
    name in CALLBACK_PARAMS; external logins get ``origin``, ``callback`` and
    ``redirect_uri``.

    Example:
        >>> url = build_login_url("https://x/login?next=/home", origin="http://localhost:8080",
        ...                       callback_url="http://localhost:8080/callback", mode="cookie")
        >>> "return_url=" in url, "redirect_uri=" in url
        (True, False)
    """
    url = httpx.URL(login_url).copy_set_param("origin", origin)
    if mode == "external":
        return str(url.copy_set_param("callback", callback_url).copy_set_param("redirect_uri", callback_url))
    for name in CALLBACK_PARAMS:
        if name not in url.params:
            url = url.copy_set_param(name, callback_url)
            break
    return str(url)


class AuthFlowOrchestrator:
    """
    Drives discovery and one of the cookie, token or external flows.

    Parameters:
        client: Shared HTTP client
        store: Where sessions and mid-flow cookies are kept
        settings: Ports, deadlines, polling cadence and default TTL
        open_url: Opens a login page for the user; failures must not raise
    """

    def __init__(
        self,
        client: httpx.Client,
        store: SessionStore,
        settings: AuthSettings | None = None,
        *,
        open_url: Callable[[str], Any] = open_browser,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings or AuthSettings()
        self.open_url = open_url
        self._states: dict[str, FlowState] = {}
        self._states_lock = threading.Lock()

    # State

    def state(self, resource_url: str) -> FlowState:
        with self._states_lock:
            return self._states.get(resource_url, FlowState.UNAUTHENTICATED)

    def _transition(self, resource_url: str, state: FlowState) -> None:
        with self._states_lock:
            previous = self._states.get(resource_url, FlowState.UNAUTHENTICATED)
            self._states[resource_url] = state
        logger.info(
            "flow_state",
            extra={"url": resource_url, "from_state": previous.value, "to_state": state.value},
        )

    # Discovery

    def fetch_auth_document(self, resource_url: str) -> Any:
        return fetch_auth_document(self.client, resource_url, timeout=self.settings.request_timeout)

    def discover(self, resource_url: str) -> tuple[Any, DiscoveryResult]:
        """Fetch a resource (401/403 tolerated) and classify its auth services."""
        document = self.fetch_auth_document(resource_url)
        result = discover(document)
        logger.info(
            "services_discovered",
            extra={
                "url": resource_url,
                "count": len(result.services),
                "auth_api_version": result.api_version,
            },
        )
        return document, result

    # Entry point

    def authenticate(
        self,
        resource_url: str,
        credentials: Credentials | None = None,
        options: AuthOptions | None = None,
    ) -> Session:
        """
        Return a valid Session for ``resource_url``, authenticating if needed.

        A valid stored session is returned as-is with no network call. A
        token or session id in ``options`` yields a session immediately.

        Raises:
            NoAuthServicesError: The resource declares no auth services
            NoLoginServiceError: No declared service can start a login
            UnsupportedAuthTypeError: The login service maps to no flow
            NoPortAvailableError: Browser flow found no free callback port
            CallbackTimeoutError: Browser flow ran past its deadline
            CallbackRejectedError: Callback arrived without usable credentials
            TokenServiceError: Token missing or reported an error
            NetworkError: Transport failure
        """
        options = options or AuthOptions()

        existing = self.store.get(resource_url)
        if existing is not None and existing.is_valid():
            logger.debug("session_reused", extra={"url": resource_url})
            self._transition(resource_url, FlowState.AUTHENTICATED)
            return existing

        if options.token or options.session_id:
            session = Session.expiring_in(
                resource_url,
                "token" if options.token else "cookie",
                self.settings.session_ttl,
                token=options.token,
                cookie=f"session={options.session_id}" if options.session_id else None,
            )
            return self._finish(session)

        self._transition(resource_url, FlowState.DISCOVERING)
        try:
            _, result = self.discover(resource_url)
            if not result.requires_auth:
                raise NoAuthServicesError("No authentication services found for this resource")
            service = result.login_service()
            if service is None:
                raise NoLoginServiceError("No login service found")

            auth_type = determine_auth_type(service)
            if auth_type == "cookie":
                session = self._cookie_flow(resource_url, service, credentials, options)
            elif auth_type == "token":
                session = self._token_flow(resource_url, service, credentials)
            elif auth_type == "external":
                session = self._external_flow(resource_url, service)
            else:
                raise UnsupportedAuthTypeError(f"Unsupported auth type: {service.profile}")
        except AuthError as e:
            logger.warning("authentication_failed", extra={"url": resource_url, "error": e.message})
            self._transition(resource_url, FlowState.FAILED)
            raise
        return self._finish(session)

    def _finish(self, session: Session) -> Session:
        self.store.set(session)
        self._transition(session.resource_url, FlowState.AUTHENTICATED)
        return session

    # Cookie flow

    def _cookie_flow(
        self,
        resource_url: str,
        service: AuthServiceDescriptor,
        credentials: Credentials | None,
        options: AuthOptions,
    ) -> Session:
        self._transition(resource_url, FlowState.COOKIE_FLOW)
        if credentials is not None and credentials.is_complete and not options.interactive:
            session = self._direct_login(resource_url, service.id, credentials)
            if session is not None:
                return session
            logger.info("direct_login_fallback", extra={"url": resource_url, "login_url": service.id})
        return self._browser_flow(
            resource_url, service, mode="cookie", token_service=service.nested_token_service()
        )

    def _direct_login(self, resource_url: str, login_url: str, credentials: Credentials) -> Session | None:
        """Form POST without following redirects; a Set-Cookie answer is a session."""
        try:
            resp = self.client.post(
                login_url,
                data={"username": credentials.username, "password": credentials.password},
                headers={"Accept": "application/json"},
                follow_redirects=False,
                timeout=self.settings.request_timeout,
            )
        except httpx.HTTPError as e:
            logger.info("direct_login_failed", extra={"login_url": login_url, "error": str(e)})
            return None
        if resp.status_code >= 500:
            logger.info("direct_login_failed", extra={"login_url": login_url, "status": resp.status_code})
            return None

        cookie = set_cookie_pairs(resp)
        if cookie is None:
            return None
        self.store.remember_cookie(resource_url, cookie)
        return Session.expiring_in(resource_url, "cookie", self.settings.session_ttl, cookie=cookie)

    def _verify_cookie(self, resource_url: str, cookie: str | None) -> Session | None:
        """Re-fetch the resource with ``cookie``; access granted means a session."""
        headers = {"Accept": JSON_ACCEPT}
        if cookie:
            headers["Cookie"] = cookie
        try:
            resp = self.client.get(resource_url, headers=headers, timeout=self.settings.request_timeout)
        except httpx.HTTPError as e:
            logger.info("callback_verify_failed", extra={"url": resource_url, "error": str(e)})
            return None
        if resp.status_code >= 400:
            logger.info("callback_verify_denied", extra={"url": resource_url, "status": resp.status_code})
            return None

        cookie = set_cookie_pairs(resp) or cookie
        if not cookie:
            return None
        self.store.remember_cookie(resource_url, cookie)
        return Session.expiring_in(resource_url, "cookie", self.settings.session_ttl, cookie=cookie)

    # Token flow

    def _token_flow(
        self,
        resource_url: str,
        service: AuthServiceDescriptor,
        credentials: Credentials | None,
    ) -> Session:
        self._transition(resource_url, FlowState.TOKEN_FLOW)
        token_service = service if service.role == "token" else service.nested_token_service()
        if token_service is None:
            raise TokenServiceError("No token service found")

        if credentials is not None and credentials.is_complete and token_service is not service:
            try:
                self.client.post(
                    service.id,
                    data={"username": credentials.username, "password": credentials.password},
                    timeout=self.settings.request_timeout,
                )
            except httpx.HTTPError as e:
                # Some services only need the token GET below.
                logger.debug("token_login_post_failed", extra={"login_url": service.id, "error": str(e)})

        try:
            resp = self.client.get(
                token_service.id,
                headers={"Accept": "application/json"},
                timeout=self.settings.request_timeout,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Token auth failed: {e}", cause=e) from e
        if resp.status_code >= 400:
            raise NetworkError(f"Token auth failed: HTTP {resp.status_code}")

        body = decode_json(resp)
        if not isinstance(body, dict):
            raise TokenServiceError("No token received from token service")
        token = body.get("accessToken") or body.get("token")
        if not token:
            raise TokenServiceError(str(body.get("error") or "No token received from token service"))

        return Session.expiring_in(
            resource_url,
            "token",
            self._token_ttl(body.get("expiresIn")),
            token=str(token),
        )

    def _token_ttl(self, expires_in: Any) -> timedelta:
        try:
            seconds = float(expires_in)
        except (TypeError, ValueError):
            return self.settings.session_ttl
        if not seconds > 0:
            return self.settings.session_ttl
        try:
            ttl = timedelta(seconds=seconds)
            utcnow() + ttl
        except OverflowError:
            # inf, or an expiry past datetime.max
            return self.settings.session_ttl
        return ttl

    # External flow

    def _external_flow(self, resource_url: str, service: AuthServiceDescriptor) -> Session:
        self._transition(resource_url, FlowState.EXTERNAL_FLOW)
        return self._browser_flow(resource_url, service, mode="external")

    # Browser flows

    def _browser_flow(
        self,
        resource_url: str,
        service: AuthServiceDescriptor,
        *,
        mode: CallbackMode,
        token_service: AuthServiceDescriptor | None = None,
    ) -> Session:
        """
        Run the listener (and the poller, if any) against one Completion.

        Whatever ends the wait (session, error or deadline), the stop event
        is set, the listener closed and the poller joined before returning.
        """
        settings = self.settings
        port = find_available_port(
            settings.port_range.start, settings.port_range.end, host=settings.callback_host
        )
        completion: Completion[Session] = Completion()
        stop = threading.Event()
        ttl = settings.session_ttl

        def on_callback(result: CallbackResult) -> None:
            if completion.done:
                return
            if mode == "external":
                self._resolve_external(resource_url, result, completion)
                return
            session = self._verify_cookie(resource_url, result.cookie_header or self.store.cookie_for(resource_url))
            if session is not None:
                completion.resolve(session)
            elif poller is None:
                completion.reject(
                    CallbackRejectedError(
                        "Authentication completed but no valid session cookie received",
                        hints=BROWSER_FLOW_HINTS,
                    )
                )
            else:
                logger.info("callback_unverified", extra={"url": resource_url, "waiting_for": "token"})

        def on_cookies(cookies: str) -> None:
            self.store.remember_cookie(resource_url, cookies)
            if completion.done:
                return
            session = self._verify_cookie(resource_url, cookies)
            if session is not None:
                completion.resolve(session)

        listener = CallbackListener(
            port,
            mode=mode,
            on_callback=on_callback,
            on_cookies=on_cookies if mode == "cookie" else None,
            host=settings.callback_host,
        )
        poller: TokenPoller | None = None
        if token_service is not None:
            poller = TokenPoller(
                self.client,
                token_service.id,
                origin=listener.origin,
                cookie_source=lambda: self.store.cookie_for(resource_url),
                interval=settings.poll_interval,
                grace_period=settings.poll_grace_period,
                max_polls=settings.max_polls,
                stop=stop,
                timeout=settings.request_timeout,
            )

        poller_thread: threading.Thread | None = None
        try:
            listener.start()
        except OSError as e:
            # taken between the scan and the bind
            raise NoPortAvailableError(
                f"Could not bind callback listener on port {port}: {e}", hints=BROWSER_FLOW_HINTS
            ) from e
        started = time.monotonic()
        try:
            login_url = build_login_url(
                service.id, origin=listener.origin, callback_url=listener.callback_url, mode=mode
            )
            logger.info(
                "browser_flow_started",
                extra={
                    "url": resource_url,
                    "mode": mode,
                    "login_url": login_url,
                    "callback_url": listener.callback_url,
                    "service_label": service.text("label"),
                    "token_url": token_service.id if token_service else None,
                },
            )
            self.open_url(login_url)

            if poller is not None:
                poller_thread = threading.Thread(
                    target=self._run_poller,
                    args=(poller, resource_url, ttl, completion),
                    name=f"iiif-auth-poller-{port}",
                    daemon=True,
                )
                poller_thread.start()

            remaining = settings.flow_deadline - (time.monotonic() - started)
            try:
                return completion.wait(timeout=max(remaining, 0.0))
            except TimeoutError as e:
                raise CallbackTimeoutError(
                    f"Authentication timeout after {settings.flow_deadline:g} seconds",
                    hints=BROWSER_FLOW_HINTS,
                ) from e
        finally:
            stop.set()
            listener.close()
            if poller_thread is not None:
                poller_thread.join(timeout=settings.request_timeout + 1.0)

    def _resolve_external(
        self, resource_url: str, result: CallbackResult, completion: Completion[Session]
    ) -> None:
        if result.token or result.session_id:
            completion.resolve(
                Session.expiring_in(
                    resource_url,
                    "external",
                    self.settings.session_ttl,
                    token=result.token,
                    cookie=f"session={result.session_id}" if result.session_id else None,
                )
            )
            return
        completion.reject(
            CallbackRejectedError(
                "No authentication data received from callback",
                hints=(
                    "Check whether the login page showed a token or session id, then pass it with "
                    "--token or --session-id.",
                    *BROWSER_FLOW_HINTS,
                ),
            )
        )

    @staticmethod
    def _run_poller(
        poller: TokenPoller, resource_url: str, ttl: timedelta, completion: Completion[Session]
    ) -> None:
        try:
            token = poller.poll()
        except AuthError as e:
            completion.reject(e)
            return
        if token:
            completion.resolve(Session.expiring_in(resource_url, "cookie", ttl, token=token))
