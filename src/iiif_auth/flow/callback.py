"""
Ephemeral local HTTP listener receiving the browser redirect of a login.

Routes:
    GET  /callback          browser lands here after login
    POST /callback/cookies  page script relays ``document.cookie`` as JSON,
                            since cookies set for the login origin are not
                            sent to localhost
Anything else answers 404.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Literal
from urllib.parse import parse_qs, urlsplit


CallbackMode = Literal["cookie", "external"]

CALLBACK_PATH = "/callback"
COOKIES_PATH = "/callback/cookies"
MAX_RELAY_BYTES = 64 * 1024

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallbackResult:
    """Credentials captured from one browser redirect."""

    token: str | None = None
    session_id: str | None = None
    cookie_header: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.token or self.session_id or self.cookie_header)


_COOKIE_PAGE = """<html>
  <head><title>Authentication Callback</title></head>
  <body>
    <h1>Authentication Successful!</h1>
    <p>You can now close this window and return to the application.</p>
    <script>
      var sessionInfo = document.cookie;
      if (sessionInfo) {
        fetch('/callback/cookies', {
          method: 'POST',
          headers: {'Content-Type': 'application/json'},
          body: JSON.stringify({cookies: sessionInfo})
        });
      }
      setTimeout(function () { window.close(); }, 1000);
    </script>
  </body>
</html>
"""

_EXTERNAL_PAGE = """<html>
  <head><title>Authentication Callback</title></head>
  <body>
    <h1>Authentication Successful!</h1>
    <p>You can now close this window and return to the application.</p>
    <script>
      if (window.opener && window.opener.postMessage) {
        window.opener.postMessage(%s, '*');
      }
      setTimeout(function () { window.close(); }, 1000);
    </script>
  </body>
</html>
"""


def render_page(mode: CallbackMode, result: CallbackResult) -> bytes:
    """HTML confirmation page that closes the tab after a short delay."""
    if mode == "cookie":
        return _COOKIE_PAGE.encode("utf-8")
    message = {
        "type": "iiif-auth-callback",
        "token": result.token or "",
        "sessionId": result.session_id or "",
    }
    # "</" would end the script element early.
    payload = json.dumps(message).replace("</", "<\\/")
    return (_EXTERNAL_PAGE % payload).encode("utf-8")


def _first(query: dict[str, list[str]], *names: str) -> str | None:
    for name in names:
        values = query.get(name)
        if values and values[0]:
            return values[0]
    return None


def parse_callback(mode: CallbackMode, query_string: str, cookie_header: str | None) -> CallbackResult:
    """Extract the credentials a flow cares about from a callback request."""
    if mode == "cookie":
        return CallbackResult(cookie_header=cookie_header or None)
    query = parse_qs(query_string)
    return CallbackResult(
        token=_first(query, "token", "access_token"),
        session_id=_first(query, "session", "sessionId"),
    )


class CallbackListener:
    """
    Single-flow HTTP listener bound to ``host:port``.

    ``on_callback`` runs on the request thread after the confirmation page
    has been sent. ``on_cookies`` receives cookies relayed by the page script.
    Use as a context manager, or call start() and close(); close() is
    idempotent and must run on success, timeout and error alike.

    Example:
        >>> with CallbackListener(8080, mode="external", on_callback=print) as listener:
        ...     print(listener.callback_url)
        http://localhost:8080/callback
    """

    def __init__(
        self,
        port: int,
        *,
        mode: CallbackMode,
        on_callback: Callable[[CallbackResult], None],
        on_cookies: Callable[[str], None] | None = None,
        host: str = "127.0.0.1",
    ) -> None:
        self.port = port
        self.mode = mode
        self.host = host
        self.relayed_cookies: str | None = None
        self._on_callback = on_callback
        self._on_cookies = on_cookies
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._closed = threading.Event()

    @property
    def origin(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def callback_url(self) -> str:
        return f"{self.origin}{CALLBACK_PATH}"

    def _handler_class(self) -> type[BaseHTTPRequestHandler]:
        listener = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                parts = urlsplit(self.path)
                if parts.path != CALLBACK_PATH:
                    self._reply(404, b"Not found", "text/plain")
                    return
                result = parse_callback(listener.mode, parts.query, self.headers.get("Cookie"))
                self._reply(200, render_page(listener.mode, result), "text/html; charset=utf-8")
                logger.info(
                    "callback_received",
                    extra={"mode": listener.mode, "empty": result.is_empty},
                )
                if not listener._closed.is_set():
                    listener._on_callback(result)

            def do_POST(self) -> None:  # noqa: N802
                if urlsplit(self.path).path != COOKIES_PATH:
                    self._reply(404, b"Not found", "text/plain")
                    return
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                    if not 0 <= length <= MAX_RELAY_BYTES:
                        raise ValueError(f"bad Content-Length: {length}")
                    raw = self.rfile.read(length) if length else b""
                    cookies = json.loads(raw.decode("utf-8"))["cookies"]
                    if not isinstance(cookies, str) or not cookies:
                        raise ValueError("cookies must be a non-empty string")
                except (ValueError, KeyError, TypeError, UnicodeDecodeError):
                    self._reply(400, b"Bad Request", "text/plain")
                    return
                listener.relayed_cookies = cookies
                self._reply(200, b"OK", "text/plain")
                if listener._on_cookies is not None and not listener._closed.is_set():
                    listener._on_cookies(cookies)

            def _reply(self, status: int, body: bytes, content_type: str) -> None:
                self.send_response(status)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format: str, *args: object) -> None:  # noqa: A002
                logger.debug("callback_http " + format, *args)

        return Handler

    def start(self) -> "CallbackListener":
        self._server = ThreadingHTTPServer((self.host, self.port), self._handler_class())
        self._thread = threading.Thread(
            target=self._server.serve_forever, name=f"iiif-auth-callback-{self.port}", daemon=True
        )
        self._thread.start()
        logger.info("callback_listener_started", extra={"callback_url": self.callback_url})
        return self

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        if self._server is None:
            return
        try:
            self._server.shutdown()
            self._server.server_close()
        finally:
            if self._thread is not None:
                self._thread.join(timeout=2.0)
            logger.info("callback_listener_stopped", extra={"callback_url": self.callback_url})

    def __enter__(self) -> "CallbackListener":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
