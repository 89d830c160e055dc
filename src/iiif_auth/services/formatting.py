"""
Human-readable and structured renderings of discovered auth services.
"""

from __future__ import annotations

import json
from typing import Any

from .discovery import DiscoveryResult
from .models import AuthServiceDescriptor, first_value


SERVICE_TYPE_NAMES = {
    "login": "Login Service",
    "cookie": "Login Service",
    "external": "Login Service",
    "logout": "Logout Service",
    "token": "Token Service",
    "probe": "Probe Service",
}

_TEXT_FIELDS = (
    ("label", "Label"),
    ("header", "Header"),
    ("description", "Description"),
    ("confirm_label", "Confirm Label"),
    ("failure_header", "Failure Header"),
    ("failure_description", "Failure Description"),
)

_GROUPS = (
    ("login_services", ("login", "cookie", "external"), "Login Services"),
    ("token_services", ("token",), "Token Services"),
    ("logout_services", ("logout",), "Logout Services"),
    ("probe_services", ("probe",), "Probe Services"),
)


def resource_id(document: Any) -> str:
    if isinstance(document, dict):
        return document.get("id") or document.get("@id") or ""
    return ""


def service_type(service: AuthServiceDescriptor) -> str:
    return SERVICE_TYPE_NAMES.get(service.role, "Unknown Service")


def _format_service(service: AuthServiceDescriptor, index: int) -> str:
    lines = [
        f"**[{index}] {service_type(service)}**",
        f"- URL: {service.id}",
        f"- Profile: {service.profile}",
        f"- API Version: {service.api_version}",
    ]
    for attr, title in _TEXT_FIELDS:
        text = service.text(attr)
        if text:
            lines.append(f"- {title}: {text}")
    return "\n".join(lines) + "\n\n"


def format_auth_info(document: Any, result: DiscoveryResult) -> str:
    """
    Render a markdown report of a resource's auth requirements.

    Services are grouped by role; resources without services get a short
    "no authentication required" note.
    """
    output = "## Authentication Information\n\n"
    output += f"**Resource**: {resource_id(document) or 'Unknown'}\n"

    if not result.requires_auth:
        return output + "\n*No authentication required for this resource.*\n"

    output += "**Authentication Required**: Yes\n"
    if result.api_version:
        output += f"**Auth API Version**: {result.api_version}\n"
    output += f"**Total Auth Services**: {len(result.services)}\n\n"

    for _key, roles, title in _GROUPS:
        group = [s for s in result.services if s.role in roles]
        if not group:
            continue
        output += f"### {title} ({len(group)}):\n\n"
        for idx, service in enumerate(group, start=1):
            output += _format_service(service, idx)

    output += "\n### Authentication Flow:\n"
    output += "1. **Login**: Direct user to login service URL\n"
    output += "2. **Token**: Exchange auth code for access token\n"
    output += "3. **Access**: Include token in requests to protected resources\n"
    output += "4. **Probe**: (Optional) Check access before full resource request\n"
    output += "5. **Logout**: (Optional) Invalidate session\n"
    return output


def structured_auth_info(document: Any, result: DiscoveryResult) -> dict[str, Any]:
    """Machine-readable counterpart of format_auth_info()."""
    info: dict[str, Any] = {
        "resource_url": resource_id(document),
        "requires_auth": result.requires_auth,
        "auth_services": [],
        "login_services": [],
        "token_services": [],
        "logout_services": [],
        "probe_services": [],
    }
    if result.api_version:
        info["auth_api_version"] = result.api_version

    for service in result.services:
        entry: dict[str, Any] = {
            "id": service.id,
            "type": service_type(service),
            "profile": service.profile,
        }
        for attr, _title in _TEXT_FIELDS:
            text = service.text(attr)
            if text:
                entry[attr] = text
        info["auth_services"].append(entry)

        for key, roles, _title in _GROUPS:
            if service.role not in roles:
                continue
            grouped: dict[str, Any] = {"id": service.id, "auth_api_version": service.api_version}
            if key in ("login_services", "logout_services") and service.text("label"):
                grouped["label"] = service.text("label")
            info[key].append(grouped)
    return info


def format_protected_resource(url: str, data: Any) -> str:
    """Short header (label, type) followed by the raw JSON of a protected resource."""
    output = f"## Protected Resource\n\n**URL**: {url}\n\n"
    if isinstance(data, dict):
        if data.get("label"):
            output += f"**Label**: {first_value(data['label'])}\n"
        kind = data.get("type") or data.get("@type")
        if kind:
            output += f"**Type**: {kind}\n"
    output += "\n### Raw Data:\n```json\n"
    output += json.dumps(data, indent=2, ensure_ascii=False)
    output += "\n```"
    return output
