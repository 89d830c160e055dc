"""
Polling a IIIF token service until it issues an access token.

Token services built for browsers answer with an HTML page whose script
posts ``{"accessToken": ...}`` (or ``{"error": ...}``) to the opener; plain
JSON answers are accepted too. ``missingCredentials`` means the login has
not completed yet and polling continues.
"""

from __future__ import annotations

import logging
import re
import secrets
import threading
from typing import Callable

import httpx

from iiif_auth.errors import BROWSER_FLOW_HINTS, CallbackTimeoutError, TokenServiceError


TOKEN_ACCEPT = "text/html, application/json"
NOT_READY_ERROR = "missingCredentials"

_TOKEN_RE = re.compile(r"""["']accessToken["']\s*:\s*["']([^"']+)["']""")
_ERROR_RE = re.compile(r"""["']error["']\s*:\s*["']([^"']+)["']""")

logger = logging.getLogger(__name__)


def extract_token(resp: httpx.Response) -> tuple[str | None, str | None]:
    """
    Read a token service response.

    Returns:
        (token, error); both None when the body says neither
    """
    text = resp.text
    match = _TOKEN_RE.search(text)
    if match:
        return match.group(1), None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get("accessToken"):
            return str(body["accessToken"]), None
        if body.get("error"):
            return None, str(body["error"])
    match = _ERROR_RE.search(text)
    if match:
        return None, match.group(1)
    return None, None


class TokenPoller:
    """
    Fixed-interval poll of one token service.

    Nothing is requested during the grace period; then up to ``max_polls``
    attempts are made ``interval`` seconds apart (the last attempt counts).
    Setting ``stop`` ends polling before the next request.

    Parameters:
        client: Shared HTTP client (its cookie jar carries login cookies)
        token_url: Token service id
        origin: Origin of the callback listener, sent as ``origin``
        cookie_source: Returns a Cookie header captured mid-flow, if any
    """

    def __init__(
        self,
        client: httpx.Client,
        token_url: str,
        *,
        origin: str,
        cookie_source: Callable[[], str | None] | None = None,
        interval: float = 1.0,
        grace_period: float = 5.0,
        max_polls: int = 120,
        stop: threading.Event | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.token_url = token_url
        self.origin = origin
        self.cookie_source = cookie_source
        self.interval = interval
        self.grace_period = grace_period
        self.max_polls = max_polls
        self.stop = stop or threading.Event()
        self.timeout = timeout
        self._reported_not_ready = False

    def poll_once(self, attempt: int) -> str | None:
        """
        Make one token request.

        Returns:
            The token, or None if the service is not ready or unreachable

        Raises:
            TokenServiceError: The service reported an error other than
                missingCredentials
        """
        params = {"messageId": secrets.token_hex(6), "origin": self.origin}
        headers = {"Accept": TOKEN_ACCEPT}
        cookie = self.cookie_source() if self.cookie_source else None
        if cookie:
            headers["Cookie"] = cookie
        try:
            resp = self.client.get(self.token_url, params=params, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug("token_poll_failed", extra={"attempt": attempt, "error": str(e)})
            return None
        if resp.status_code != 200:
            logger.debug("token_poll_status", extra={"attempt": attempt, "status": resp.status_code})
            return None

        token, error = extract_token(resp)
        if token:
            logger.info("token_received", extra={"token_url": self.token_url, "attempt": attempt})
            return token
        if error == NOT_READY_ERROR:
            if not self._reported_not_ready:
                self._reported_not_ready = True
                logger.info(
                    "token_service_no_session",
                    extra={"token_url": self.token_url, "hint": "complete the login in the browser, then close its tab"},
                )
        elif error:
            raise TokenServiceError(error, hints=BROWSER_FLOW_HINTS)
        return None

    def poll(self) -> str | None:
        """
        Poll until a token arrives.

        Returns:
            The token, or None if ``stop`` was set first

        Raises:
            CallbackTimeoutError: All attempts were used without a token
            TokenServiceError: The service reported a fatal error
        """
        if self.stop.wait(self.grace_period):
            return None
        for attempt in range(1, self.max_polls + 1):
            if self.stop.is_set():
                return None
            token = self.poll_once(attempt)
            if token:
                return token
            if attempt % 10 == 0:
                logger.info("token_poll_waiting", extra={"attempt": attempt, "max_polls": self.max_polls})
            if attempt < self.max_polls and self.stop.wait(self.interval):
                return None
        raise CallbackTimeoutError(
            f"No token from {self.token_url} after {self.max_polls} attempts",
            hints=BROWSER_FLOW_HINTS,
        )
