"""
Data Models
===========
Plain data containers passed between the provisioner components.

- ``RemoteInstance``    — one ProSBC appliance (owned by an external registry)
- ``NapDraft``          — caller-supplied NAP configuration, never persisted
- ``ChildOutcome``      — result of one SIP server / port range attachment
- ``CreationResult``    — terminal value of a creation workflow run
- ``ValidationReport``  — output of the offline draft validator
- ``NapSummary``        — one row of the remote NAP list
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .auth.base_auth import Credentials


# ---------------------------------------------------------------------------
# Remote instance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemoteInstance:
    """Connection parameters for one ProSBC appliance."""
    id: str
    base_url: str
    username: str = ""
    password: str = field(default="", repr=False)
    name: str = ""
    is_active: bool = True

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)

    @property
    def display_name(self) -> str:
        return self.name or f"instance {self.id}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteInstance":
        """Build from a registry record (accepts camelCase or snake_case keys)."""
        return cls(
            id=str(data.get("id", "")),
            base_url=data.get("base_url") or data.get("baseUrl") or "",
            username=data.get("username", ""),
            password=data.get("password", ""),
            name=data.get("name", ""),
            is_active=bool(data.get("is_active", data.get("isActive", True))),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Registry-safe view (password omitted)."""
        return {
            "id": self.id,
            "name": self.name,
            "baseUrl": self.base_url,
            "username": self.username,
            "isActive": self.is_active,
        }


# ---------------------------------------------------------------------------
# NAP draft
# ---------------------------------------------------------------------------

# Fields the create submission covers; anything else triggers an update.
MINIMAL_FIELDS = frozenset({"enabled", "profile_id"})

# camelCase keys accepted from API-style callers
_FIELD_ALIASES = {
    "profileId": "profile_id",
    "proxyAddress": "sip_destination_ip",
    "proxyPort": "sip_destination_port",
    "useProxy": "sip_use_proxy",
    "filterByProxyPort": "filter_by_remote_port",
    "pollProxy": "poll_proxy",
    "pollInterval": "proxy_polling_interval",
    "ignoreRealm": "sip_auth_ignore_realm",
    "reuseChallenge": "sip_auth_reuse_challenge",
    "realm": "sip_auth_realm",
    "authUser": "sip_auth_user",
    "authPassword": "sip_auth_pass",
    "rateLimitCps": "rate_limit_cps",
    "rateLimitCpsIn": "rate_limit_cps_in",
    "rateLimitCpsOut": "rate_limit_cps_out",
    "maxIncomingCalls": "max_incoming_calls",
    "maxOutgoingCalls": "max_outgoing_calls",
    "maxTotalCalls": "max_incoming_outgoing_calls",
    "max_total_calls": "max_incoming_outgoing_calls",
    "congestionThreshold": "congestion_threshold_nb_calls",
    "congestionPeriod": "congestion_threshold_period_sec",
    "registerToProxy": "register_to_proxy",
    "acceptOnlyAuthorizedUsers": "accept_only_authorized_users",
}


@dataclass
class NapDraft:
    """Transient NAP configuration built from caller input.

    ``fields`` is a flat mapping in the remote field vocabulary
    (``sip_destination_ip``, ``rate_limit_cps`` ...).  Child resources are
    kept apart because they are attached after the NAP exists.
    """
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    sip_servers: List[str] = field(default_factory=list)
    port_ranges: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NapDraft":
        data = dict(data)
        name = str(data.pop("name", "") or "").strip()
        sip_servers = data.pop("sip_servers", None) or data.pop("sipServers", None) or []
        port_ranges = data.pop("port_ranges", None) or data.pop("portRanges", None) or []
        fields = {}
        for key, value in data.items():
            fields[_FIELD_ALIASES.get(key, key)] = value
        return cls(
            name=name,
            fields=fields,
            sip_servers=[str(s) for s in sip_servers],
            port_ranges=[str(r) for r in port_ranges],
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @property
    def enabled(self) -> bool:
        value = self.fields.get("enabled", True)
        if isinstance(value, str):
            return value.strip().lower() not in ("0", "false", "no", "off", "")
        return value is not False and value is not None

    @property
    def profile_id(self) -> str:
        return str(self.fields.get("profile_id") or "1")

    @property
    def has_extended_fields(self) -> bool:
        """True when the caller supplied anything beyond name/enabled/profile."""
        return any(
            key not in MINIMAL_FIELDS and value not in (None, "")
            for key, value in self.fields.items()
        )

    @property
    def has_children(self) -> bool:
        return bool(self.sip_servers or self.port_ranges)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ChildOutcome:
    """Outcome of attaching one child resource to a NAP."""
    kind: str                       # "sip_server" | "port_range"
    ref: str
    success: bool
    status_code: Optional[int] = None
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "ref": self.ref, "success": self.success}
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class CreationResult:
    """Terminal value of one creation workflow run.

    ``success=True`` with ``entity_id=None`` is a legitimate outcome: the
    NAP was created but its id could not be recovered.
    """
    success: bool
    message: str
    entity_id: Optional[str] = None
    edit_path: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    child_outcomes: List[ChildOutcome] = field(default_factory=list)
    error: Optional[Exception] = field(default=None, repr=False)

    @property
    def warning(self) -> Optional[str]:
        return "; ".join(self.warnings) if self.warnings else None

    @property
    def child_failures(self) -> List[ChildOutcome]:
        return [c for c in self.child_outcomes if not c.success]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "entityId": self.entity_id,
            "editPath": self.edit_path,
        }
        if self.warnings:
            data["warning"] = self.warning
        if self.child_failures:
            data["childFailures"] = [c.to_dict() for c in self.child_failures]
        return data


@dataclass
class ValidationReport:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class NapSummary:
    id: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}
