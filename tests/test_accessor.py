"""Tests for ProtectedResourceAccessor."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from iiif_auth.client import AuthClient
from iiif_auth.errors import NetworkError, NoSessionError, SessionExpiredError
from iiif_auth.session import InMemorySessionStore, ProtectedResourceAccessor, Session


URL = "https://example.org/iiif/protected/manifest"
PROBE_URL = "https://example.org/auth/probe"
LOGOUT_URL = "https://example.org/auth/logout"


def make_accessor(handler):
    store = InMemorySessionStore()
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ProtectedResourceAccessor(client, store), store


def valid_session(**kwargs) -> Session:
    return Session.expiring_in(URL, kwargs.pop("auth_type", "token"), timedelta(hours=1), **kwargs)


def expired_session() -> Session:
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    return Session(URL, "token", token="old", expires_at=past)


class TestFetch:
    """Tests for fetch()."""

    def test_sends_bearer_token(self):
        """Token sessions send an Authorization header."""
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json={"id": URL})

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok-1"))

        assert accessor.fetch(URL) == {"id": URL}
        assert seen["authorization"] == "Bearer tok-1"
        assert "application/ld+json" in seen["accept"]

    def test_sends_cookie(self):
        """Cookie sessions send a Cookie header."""
        seen = {}

        def handler(request):
            seen["cookie"] = request.headers.get("cookie")
            return httpx.Response(200, json={})

        accessor, _ = make_accessor(handler)
        accessor.fetch(URL, valid_session(auth_type="cookie", cookie="session=abc123"))

        assert seen["cookie"] == "session=abc123"

    def test_missing_session(self):
        """No stored session is an error, with no request made."""
        accessor, _ = make_accessor(lambda request: pytest.fail("no request expected"))

        with pytest.raises(NoSessionError):
            accessor.fetch(URL)

    def test_expired_session_is_evicted(self):
        """An expired session is removed and reported, with no request made."""
        accessor, store = make_accessor(lambda request: pytest.fail("no request expected"))
        store.set(expired_session())

        with pytest.raises(SessionExpiredError):
            accessor.fetch(URL)
        assert store.get(URL) is None

    @pytest.mark.parametrize("status", [401, 403])
    def test_refused_session_is_evicted(self, status):
        """401/403 evicts the session and requires re-authentication."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, json={"error": "denied"})

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok"))

        with pytest.raises(SessionExpiredError):
            accessor.fetch(URL)
        assert store.get(URL) is None
        assert len(calls) == 1

    def test_server_error(self):
        """Other HTTP errors surface as NetworkError and keep the session."""
        accessor, store = make_accessor(lambda request: httpx.Response(500))
        store.set(valid_session(token="tok"))

        with pytest.raises(NetworkError):
            accessor.fetch(URL)
        assert store.get(URL) is not None

    def test_transport_error(self):
        """Connection failures surface as NetworkError with the cause kept."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok"))

        with pytest.raises(NetworkError) as excinfo:
            accessor.fetch(URL)
        assert isinstance(excinfo.value.cause, httpx.ConnectError)


class TestProbe:
    """Tests for probe()."""

    def test_probe_service_status_200(self):
        """HTTP 200 from the probe service grants access."""
        def handler(request):
            assert str(request.url) == PROBE_URL
            assert request.headers["authorization"] == "Bearer tok"
            return httpx.Response(200, json={"type": "AuthProbeResult2"})

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL, probe_url=PROBE_URL) is True

    def test_probe_service_body_status(self):
        """A body status of 200 grants access even on another HTTP status."""
        accessor, store = make_accessor(lambda request: httpx.Response(202, json={"status": 200}))
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL, probe_url=PROBE_URL) is True

    def test_probe_service_denied(self):
        """A 401 body status means no access."""
        accessor, store = make_accessor(lambda request: httpx.Response(401, json={"status": 401}))
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL, probe_url=PROBE_URL) is False

    def test_probe_falls_back_to_fetch(self):
        """Without a probe service the resource itself is fetched."""
        accessor, store = make_accessor(lambda request: httpx.Response(200, json={"id": URL}))
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL) is True

    def test_probe_without_session(self):
        """No session and no probe service means no access."""
        accessor, _ = make_accessor(lambda request: pytest.fail("no request expected"))
        assert accessor.probe(URL) is False

    def test_probe_expired_session(self):
        """Probing with an expired session evicts it and reports no access."""
        accessor, store = make_accessor(lambda request: pytest.fail("no request expected"))
        store.set(expired_session())

        assert accessor.probe(URL, probe_url=PROBE_URL) is False
        assert store.get(URL) is None

    def test_probe_transport_error(self):
        """Probe transport failures mean no access instead of raising."""
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL, probe_url=PROBE_URL) is False


class TestNonJsonResources:
    """Images, tiles and other non-JSON bodies."""

    JPEG = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01"

    def image(self, request):
        if request.headers.get("authorization") == "Bearer tok":
            return httpx.Response(200, content=self.JPEG, headers={"Content-Type": "image/jpeg"})
        return httpx.Response(401, json={"id": URL, "service": []})

    def test_probe_fallback_decides_on_status(self):
        """A 200 image body is access even though it is not JSON."""
        accessor, store = make_accessor(self.image)
        store.set(valid_session(token="tok"))
        assert accessor.probe(URL) is True

    def test_fetch_returns_text(self):
        """fetch() hands back non-JSON bodies instead of failing."""
        accessor, store = make_accessor(self.image)
        store.set(valid_session(token="tok"))
        assert "JFIF" in accessor.fetch(URL)

    def test_client_probe_access(self):
        """AuthClient.probe_access grants access to a readable image."""
        store = InMemorySessionStore()
        store.set(valid_session(token="tok"))
        http = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(
            200, content=self.JPEG, headers={"Content-Type": "image/jpeg"}
        )))
        with AuthClient(store=store, http_client=http) as auth:
            assert auth.probe_access(URL) is True
            assert auth.discover(URL).requires_auth is False


class TestLogout:
    """Tests for logout()."""

    def test_logout_calls_service_and_evicts(self):
        """The logout service is called with credentials, then the session is gone."""
        seen = []

        def handler(request):
            seen.append((str(request.url), request.headers.get("cookie")))
            return httpx.Response(200)

        accessor, store = make_accessor(handler)
        store.set(valid_session(auth_type="cookie", cookie="session=abc"))
        store.remember_cookie(URL, "session=abc")

        accessor.logout(URL, logout_url=LOGOUT_URL)

        assert seen == [(LOGOUT_URL, "session=abc")]
        assert store.get(URL) is None
        assert store.cookie_for(URL) is None

    def test_logout_service_failure_still_evicts(self):
        """Remote logout errors are swallowed."""
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        accessor, store = make_accessor(handler)
        store.set(valid_session(token="tok"))

        accessor.logout(URL, logout_url=LOGOUT_URL)
        assert store.get(URL) is None

    def test_logout_without_service(self):
        """Without a logout service only the local session is dropped."""
        accessor, store = make_accessor(lambda request: pytest.fail("no request expected"))
        store.set(valid_session(token="tok"))

        accessor.logout(URL)
        assert store.get(URL) is None
