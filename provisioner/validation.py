"""
Draft validation — offline checks run before any network call.
"""

from __future__ import annotations

import re

from .models import NapDraft, ValidationReport

MAX_NAME_LENGTH = 50

_IPV4 = re.compile(r'^(\d{1,3}\.){3}\d{1,3}$')
_DOMAIN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9-]{1,61}[a-zA-Z0-9](\.[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?)*\.[a-zA-Z]{2,}$')


def _is_ipv4(value: str) -> bool:
    return bool(_IPV4.match(value)) and all(int(part) <= 255 for part in value.split("."))


def _is_int(value) -> bool:
    return str(value).strip().isdigit()


def validate(draft: NapDraft) -> ValidationReport:
    """Check *draft* for errors (blocking) and warnings (advisory)."""
    errors = []
    warnings = []

    if not draft.name or not draft.name.strip():
        errors.append("NAP name is required")
    elif len(draft.name) > MAX_NAME_LENGTH:
        warnings.append(f"NAP name is longer than {MAX_NAME_LENGTH} characters")

    proxy = draft.get("sip_destination_ip")
    if proxy:
        proxy = str(proxy).strip()
        if not (_is_ipv4(proxy) or _DOMAIN.match(proxy)):
            errors.append(f"Invalid proxy address: {proxy}")

    port = draft.get("sip_destination_port")
    if port not in (None, ""):
        if not _is_int(port) or not 1 <= int(port) <= 65535:
            errors.append(f"Proxy port must be between 1 and 65535 (got {port})")

    profile = draft.get("profile_id")
    if profile not in (None, "") and not _is_int(profile):
        errors.append(f"Profile id must be numeric (got {profile})")

    if draft.get("sip_auth_user") and not draft.get("sip_auth_pass"):
        warnings.append("Authentication user specified without a password")

    if draft.get("register_to_proxy") and not draft.get("aor"):
        warnings.append("Register to proxy is enabled without an Address of Record")

    for kind, refs in (("SIP server", draft.sip_servers), ("port range", draft.port_ranges)):
        for ref in refs:
            if not _is_int(ref):
                errors.append(f"Invalid {kind} id: {ref}")

    return ValidationReport(is_valid=not errors, errors=errors, warnings=warnings)
