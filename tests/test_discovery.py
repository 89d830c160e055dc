"""Tests for auth service discovery."""

from pathlib import Path
import json

from iiif_auth.services import (
    AuthServiceV1,
    AuthServiceV2,
    discover,
    overall_api_version,
    parse_auth_service,
)


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))


class TestDiscover:
    """Tests for discover() over whole documents."""

    def test_login_with_nested_token(self):
        """A login service with a nested token service yields both, as v1."""
        document = {
            "service": [
                {
                    "id": "https://x/login",
                    "profile": "http://iiif.io/api/auth/1/login",
                    "service": [{"id": "https://x/token", "profile": "http://iiif.io/api/auth/1/token"}],
                }
            ]
        }
        result = discover(document)

        assert [s.id for s in result.services] == ["https://x/login", "https://x/token"]
        assert result.api_version == "v1"
        assert result.requires_auth

    def test_mixed_api_versions(self):
        """Auth 1 and Auth 2 profiles together report 'mixed'."""
        document = {
            "service": [
                {"id": "https://x/login1", "profile": "http://iiif.io/api/auth/1/login"},
                {"id": "https://x/probe2", "profile": "http://iiif.io/api/auth/2/probe"},
            ]
        }
        assert discover(document).api_version == "mixed"

    def test_v2_only(self):
        """Only Auth 2 profiles report 'v2'."""
        document = {
            "service": {"id": "https://x/probe", "profile": "http://iiif.io/api/auth/2/probe"}
        }
        result = discover(document)
        assert result.api_version == "v2"
        assert isinstance(result.services[0], AuthServiceV2)

    def test_no_services(self):
        """A document without auth services has no version and needs no auth."""
        result = discover(load_fixture("manifest_open.json"))

        assert result.services == ()
        assert result.api_version is None
        assert not result.requires_auth
        assert result.login_service() is None

    def test_non_dict_document(self):
        """Lists, strings and None are accepted and yield nothing."""
        for document in ([], "manifest", None, 42):
            assert discover(document).services == ()

    def test_unknown_profiles_excluded(self):
        """Services with profiles outside the known set are dropped."""
        document = {
            "service": [
                {"id": "https://x/search", "profile": "http://iiif.io/api/search/1/search"},
                {"id": "https://x/login", "profile": "http://iiif.io/api/auth/3/login"},
                {"id": "https://x/login", "profile": "http://iiif.io/api/auth/1/login/"},
            ]
        }
        assert discover(document).services == ()

    def test_services_without_id_dropped(self):
        """An auth service with no id cannot be targeted and is dropped."""
        document = {
            "service": [
                {"profile": "http://iiif.io/api/auth/1/login"},
                {"id": "", "profile": "http://iiif.io/api/auth/1/token"},
                {"@id": "https://x/logout", "profile": "http://iiif.io/api/auth/1/logout"},
            ]
        }
        result = discover(document)
        assert [s.id for s in result.services] == ["https://x/logout"]

    def test_dedup_top_level_and_nested(self):
        """The same id reached at top level and nested collapses to one entry."""
        document = {
            "service": [
                {
                    "id": "https://x/login",
                    "profile": "http://iiif.io/api/auth/1/login",
                    "service": [{"id": "https://x/token", "profile": "http://iiif.io/api/auth/1/token"}],
                },
                {"id": "https://x/token", "profile": "http://iiif.io/api/auth/1/token"},
            ]
        }
        result = discover(document)
        assert [s.id for s in result.services] == ["https://x/login", "https://x/token"]

    def test_nested_recursion_is_one_level(self):
        """Services nested two levels deep are not collected."""
        document = {
            "service": [
                {
                    "id": "https://x/probe",
                    "profile": "http://iiif.io/api/auth/2/probe",
                    "service": [
                        {
                            "id": "https://x/login",
                            "profile": "http://iiif.io/api/auth/2/login",
                            "service": [
                                {"id": "https://x/token", "profile": "http://iiif.io/api/auth/2/token"}
                            ],
                        }
                    ],
                }
            ]
        }
        result = discover(document)
        assert [s.id for s in result.services] == ["https://x/probe", "https://x/login"]

    def test_presentation2_canvas_services(self):
        """v2 manifests: top-level services plus canvas image services, deduplicated."""
        result = discover(load_fixture("manifest_v2_auth.json"))

        assert [s.id for s in result.services] == [
            "https://example.org/auth/login",
            "https://example.org/auth/token",
            "https://example.org/auth/logout",
        ]
        assert result.api_version == "v1"
        assert all(isinstance(s, AuthServiceV1) for s in result.services)

    def test_presentation3_canvas_services(self):
        """v3 manifests: services on annotation bodies, non-auth services skipped."""
        result = discover(load_fixture("manifest_v3_canvas_auth.json"))

        assert [s.role for s in result.services] == ["probe", "login", "token", "logout"]
        assert result.api_version == "v2"

    def test_body_as_list(self):
        """Annotation bodies given as a list are walked too."""
        document = {
            "items": [
                {
                    "items": [
                        {
                            "items": [
                                {
                                    "body": [
                                        {"service": {"id": "https://x/probe", "profile": "http://iiif.io/api/auth/2/probe"}}
                                    ]
                                }
                            ]
                        }
                    ]
                }
            ]
        }
        assert [s.id for s in discover(document).services] == ["https://x/probe"]


class TestDiscoveryResult:
    """Tests for DiscoveryResult selection helpers."""

    def test_login_service_uses_declaration_order(self):
        """The first login-capable service in declaration order is selected."""
        document = {
            "service": [
                {"id": "https://x/probe", "profile": "http://iiif.io/api/auth/2/probe"},
                {"id": "https://x/ext", "profile": "http://iiif.io/api/auth/1/external"},
                {"id": "https://x/login", "profile": "http://iiif.io/api/auth/1/login"},
            ]
        }
        result = discover(document)
        assert result.login_service().id == "https://x/ext"

    def test_no_login_service(self):
        """Only probe/logout services means no login service."""
        document = {
            "service": [
                {"id": "https://x/probe", "profile": "http://iiif.io/api/auth/2/probe"},
                {"id": "https://x/logout", "profile": "http://iiif.io/api/auth/2/logout"},
            ]
        }
        result = discover(document)
        assert result.requires_auth
        assert result.login_service() is None

    def test_first_and_by_role(self):
        """first() and by_role() filter on the profile role."""
        result = discover(load_fixture("manifest_v3_canvas_auth.json"))

        assert result.first("logout").id == "https://example.org/auth2/logout"
        assert result.first("cookie") is None
        assert [s.id for s in result.by_role("probe")] == ["https://example.org/auth2/probe/1"]


class TestOverallApiVersion:
    """Tests for overall_api_version()."""

    def test_empty(self):
        """No services means no version."""
        assert overall_api_version([]) is None

    def test_each_generation(self):
        """Single-generation sets report their generation."""
        v1 = parse_auth_service({"id": "a", "profile": "http://iiif.io/api/auth/1/token"})
        v2 = parse_auth_service({"id": "b", "profile": "http://iiif.io/api/auth/2/token"})

        assert overall_api_version([v1]) == "v1"
        assert overall_api_version([v2]) == "v2"
        assert overall_api_version([v1, v2]) == "mixed"
