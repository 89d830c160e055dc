"""
Pydantic models for IIIF Authentication API service descriptors.

Auth services come in two API generations (Auth 1.0 and Auth 2.0) and are
embedded in both Presentation 2.x (``@id``) and 3.x (``id``) documents. The
API generation is resolved once, when a raw service dict is parsed, into
either AuthServiceV1 or AuthServiceV2.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


AUTH_ROLES: tuple[str, ...] = ("login", "logout", "token", "probe", "cookie", "external")

AUTH_PROFILES: frozenset[str] = frozenset(
    f"http://iiif.io/api/auth/{version}/{role}" for version in (1, 2) for role in AUTH_ROLES
)

# Roles that can start an authentication attempt.
LOGIN_ROLES: frozenset[str] = frozenset({"login", "cookie", "token", "external"})

ApiVersion = Literal["v1", "v2"]
LanguageValue = Union[str, dict[str, Any], list[Any]]


def first_value(value: LanguageValue | None) -> str:
    """
    Return the first human-readable string from a IIIF text value.

    Handles plain strings, Presentation 3 language maps
    (``{"en": ["Login"]}``) and Presentation 2 value lists
    (``[{"@value": "Login", "@language": "en"}]``).

    Example:
        >>> first_value({"en": ["Log in"], "fr": ["Connexion"]})
        'Log in'
    """
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if "@value" in value:
            return str(value["@value"])
        for entry in value.values():
            if isinstance(entry, list) and entry:
                return str(entry[0])
            if isinstance(entry, str):
                return entry
        return ""
    if isinstance(value, list):
        for entry in value:
            text = first_value(entry)
            if text:
                return text
    return ""


class AuthService(BaseModel):
    """
    Common shape of a IIIF auth service descriptor.

    Concrete descriptors are AuthServiceV1 or AuthServiceV2; use
    parse_auth_service() to build one from raw JSON.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    api_version: ClassVar[ApiVersion]

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "@id"))
    profile: str
    type: str | None = Field(default=None, validation_alias=AliasChoices("type", "@type"))
    label: LanguageValue | None = None
    header: LanguageValue | None = None
    description: LanguageValue | None = None
    confirm_label: LanguageValue | None = Field(default=None, alias="confirmLabel")
    failure_header: LanguageValue | None = Field(default=None, alias="failureHeader")
    failure_description: LanguageValue | None = Field(default=None, alias="failureDescription")
    service: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("service", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        if isinstance(value, list):
            return [v for v in value if isinstance(v, dict)]
        return []

    @property
    def role(self) -> str:
        """Last profile segment: login, logout, token, probe, cookie or external."""
        return self.profile.rstrip("/").rsplit("/", 1)[-1]

    @property
    def starts_login(self) -> bool:
        return self.role in LOGIN_ROLES

    def nested_services(self) -> list["AuthServiceDescriptor"]:
        """Auth services declared directly under this one (one level only)."""
        parsed = (parse_auth_service(raw) for raw in self.service)
        return [s for s in parsed if s is not None]

    def nested_token_service(self) -> "AuthServiceDescriptor | None":
        for nested in self.nested_services():
            if nested.role == "token":
                return nested
        return None

    def text(self, field_name: str) -> str:
        """First value of a language-tagged field, or an empty string."""
        return first_value(getattr(self, field_name, None))


class AuthServiceV1(AuthService):
    """IIIF Authentication API 1.0 service (``http://iiif.io/api/auth/1/...``)."""

    api_version: ClassVar[ApiVersion] = "v1"


class AuthServiceV2(AuthService):
    """IIIF Authorization Flow API 2.0 service (``http://iiif.io/api/auth/2/...``)."""

    api_version: ClassVar[ApiVersion] = "v2"


AuthServiceDescriptor = Union[AuthServiceV1, AuthServiceV2]


def is_auth_service(raw: Any) -> bool:
    """True if ``raw`` is a dict whose profile is one of the known auth profiles."""
    return isinstance(raw, dict) and raw.get("profile") in AUTH_PROFILES


def parse_auth_service(raw: Any) -> AuthServiceDescriptor | None:
    """
    Parse a raw service dict into a versioned descriptor.

    Returns None for non-auth services and for auth services that cannot be
    targeted later (no ``id``/``@id``).
    """
    if not is_auth_service(raw):
        return None
    model = AuthServiceV2 if "/auth/2/" in raw["profile"] else AuthServiceV1
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None
