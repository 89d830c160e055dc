"""
IIIF auth service descriptors and discovery.

Basic usage:
    >>> from iiif_auth.services import discover
    >>>
    >>> result = discover(manifest_json)
    >>> if result.requires_auth:
    ...     login = result.login_service()
    ...     print(login.id, login.api_version)
"""

from .models import (
    AUTH_PROFILES,
    AuthService,
    AuthServiceV1,
    AuthServiceV2,
    AuthServiceDescriptor,
    first_value,
    is_auth_service,
    parse_auth_service,
)
from .discovery import (
    DiscoveryResult,
    discover,
    overall_api_version,
)
from .formatting import (
    format_auth_info,
    format_protected_resource,
    structured_auth_info,
)

__all__ = [
    # Models
    "AUTH_PROFILES",
    "AuthService",
    "AuthServiceV1",
    "AuthServiceV2",
    "AuthServiceDescriptor",
    "first_value",
    "is_auth_service",
    "parse_auth_service",
    # Discovery
    "DiscoveryResult",
    "discover",
    "overall_api_version",
    # Formatting
    "format_auth_info",
    "format_protected_resource",
    "structured_auth_info",
]
