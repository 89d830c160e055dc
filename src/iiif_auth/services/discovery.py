"""
Discovery of IIIF auth services in arbitrary resource documents.

A resource (manifest, collection, image info.json, or the JSON body of a
401/403 response) may declare auth services at its top level, nested one
level under another auth service, or on the image bodies of its canvases.
discover() collects them all, keeps only known auth profiles, deduplicates
by id and reports the overall API generation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Literal

from .models import AuthServiceDescriptor, parse_auth_service


OverallVersion = Literal["v1", "v2", "mixed"]


@dataclass(frozen=True)
class DiscoveryResult:
    """
    Auth services found in a resource document.

    Attributes:
        services: Descriptors in declaration order, unique by id
        api_version: "v1", "v2", "mixed", or None when nothing was found
    """

    services: tuple[AuthServiceDescriptor, ...] = ()
    api_version: OverallVersion | None = None

    @property
    def requires_auth(self) -> bool:
        return bool(self.services)

    def by_role(self, role: str) -> list[AuthServiceDescriptor]:
        return [s for s in self.services if s.role == role]

    def first(self, role: str) -> AuthServiceDescriptor | None:
        for service in self.services:
            if service.role == role:
                return service
        return None

    def login_service(self) -> AuthServiceDescriptor | None:
        """First declared service able to start a login (login/cookie/token/external)."""
        for service in self.services:
            if service.starts_login:
                return service
        return None


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _with_nested(candidates: Iterable[Any]) -> Iterator[AuthServiceDescriptor]:
    """Yield accepted auth services, each followed by its nested auth services."""
    for raw in candidates:
        service = parse_auth_service(raw)
        if service is None:
            continue
        yield service
        yield from service.nested_services()


def _canvases(document: dict[str, Any]) -> list[Any]:
    items = document.get("items")
    if items:
        return _as_list(items)
    sequences = document.get("sequences")
    if isinstance(sequences, list) and sequences and isinstance(sequences[0], dict):
        return _as_list(sequences[0].get("canvases"))
    return []


def _canvas_candidates(canvas: Any) -> Iterator[Any]:
    """Raw service entries attached to a canvas's image content."""
    if not isinstance(canvas, dict):
        return
    # Presentation 3: canvas.items[] (AnnotationPage) .items[] (Annotation) .body.service
    for page in _as_list(canvas.get("items")):
        if not isinstance(page, dict):
            continue
        for annotation in _as_list(page.get("items")):
            if not isinstance(annotation, dict):
                continue
            for body in _as_list(annotation.get("body")):
                if isinstance(body, dict):
                    yield from _as_list(body.get("service"))
    # Presentation 2: canvas.images[].resource.service
    for image in _as_list(canvas.get("images")):
        if not isinstance(image, dict):
            continue
        resource = image.get("resource")
        if isinstance(resource, dict):
            yield from _as_list(resource.get("service"))


def overall_api_version(services: Iterable[AuthServiceDescriptor]) -> OverallVersion | None:
    """
    Summarize the API generations of a set of services.

    Returns "v2" if only Auth 2 profiles appear, "v1" if only Auth 1 profiles
    appear, "mixed" if both do, and None for an empty set.
    """
    has_v1 = has_v2 = False
    for service in services:
        has_v1 = has_v1 or "auth/1/" in service.profile
        has_v2 = has_v2 or "auth/2/" in service.profile
    if has_v1 and has_v2:
        return "mixed"
    if has_v2:
        return "v2"
    if has_v1:
        return "v1"
    return None


def discover(document: Any) -> DiscoveryResult:
    """
    Extract and classify the auth services declared by a resource document.

    Parameters:
        document: Parsed JSON of a IIIF resource (any shape is accepted)

    Returns:
        DiscoveryResult with unique services and the overall API version

    Example:
        >>> result = discover({"service": [{
        ...     "id": "https://x/login",
        ...     "profile": "http://iiif.io/api/auth/1/login",
        ...     "service": [{"id": "https://x/token",
        ...                  "profile": "http://iiif.io/api/auth/1/token"}],
        ... }]})
        >>> [s.role for s in result.services], result.api_version
        (['login', 'token'], 'v1')
    """
    if not isinstance(document, dict):
        return DiscoveryResult()

    found: list[AuthServiceDescriptor] = list(_with_nested(_as_list(document.get("service"))))
    for canvas in _canvases(document):
        found.extend(_with_nested(_canvas_candidates(canvas)))

    unique: dict[str, AuthServiceDescriptor] = {}
    for service in found:
        unique.setdefault(service.id, service)

    services = tuple(unique.values())
    return DiscoveryResult(services=services, api_version=overall_api_version(services))
