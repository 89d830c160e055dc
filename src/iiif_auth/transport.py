"""
HTTP helpers shared by the discovery, flow and session layers.

All remote calls go through one httpx.Client so cookies set by a login
service are replayed to the token, probe and logout services.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import NetworkError


JSON_ACCEPT = "application/ld+json, application/json"
AUTH_FAILURE_STATUSES = frozenset({401, 403})

logger = logging.getLogger(__name__)


def make_client(*, timeout: float = 10.0) -> httpx.Client:
    """Create the shared client used for all auth-related requests."""
    return httpx.Client(timeout=timeout, follow_redirects=True)


def decode_json(resp: httpx.Response) -> Any:
    """
    Decode a JSON body.

    Raises:
        NetworkError: If the body is not valid JSON
    """
    try:
        return resp.json()
    except ValueError as e:
        raise NetworkError(f"Response from {resp.request.url} is not valid JSON", cause=e) from e


def decode_body(resp: httpx.Response) -> Any:
    """Parsed JSON when the body is JSON, otherwise the body text unchanged."""
    try:
        return resp.json()
    except ValueError:
        return resp.text


def set_cookie_pairs(resp: httpx.Response) -> str | None:
    """
    Collapse Set-Cookie headers into a Cookie header value.

    Only the ``name=value`` part of each cookie is kept, so the result can be
    replayed as-is: ``session=abc; csrftoken=xyz``.
    """
    pairs = []
    for header in resp.headers.get_list("set-cookie"):
        pair = header.split(";", 1)[0].strip()
        if pair:
            pairs.append(pair)
    return "; ".join(pairs) or None


def fetch_auth_document(client: httpx.Client, url: str, *, timeout: float = 10.0) -> Any:
    """
    Fetch a resource for auth discovery.

    401 and 403 are valid answers here: auth services are often declared in
    the error body. When such a body carries no ``service`` but the server
    sent a WWW-Authenticate header, ``{"authHeader": <header>}`` is returned.

    Parameters:
        client: Shared HTTP client
        url: Resource URL
        timeout: Request timeout in seconds

    Returns:
        Parsed JSON body, the raw text of a non-JSON success body (images,
        tiles), or the authHeader wrapper described above

    Raises:
        NetworkError: On transport failure, 5xx or other 4xx answers
    """
    try:
        resp = client.get(url, headers={"Accept": JSON_ACCEPT}, timeout=timeout)
    except httpx.HTTPError as e:
        raise NetworkError(f"Failed to fetch resource: {e}", cause=e) from e

    if resp.status_code >= 500:
        raise NetworkError(f"Failed to fetch resource: HTTP {resp.status_code}")

    if resp.status_code in AUTH_FAILURE_STATUSES:
        try:
            body = resp.json()
        except ValueError:
            body = None
        logger.debug("auth_challenge", extra={"url": url, "status": resp.status_code})
        if isinstance(body, dict) and body.get("service"):
            return body
        auth_header = resp.headers.get("www-authenticate")
        if auth_header:
            return {"authHeader": auth_header}
        return body if body is not None else {}

    if resp.status_code >= 400:
        raise NetworkError(f"Failed to fetch resource: HTTP {resp.status_code}")
    return decode_body(resp)
