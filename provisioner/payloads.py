"""
Form Payloads
=============
Form-encoded bodies in the exact vocabulary of the ProSBC NAP forms.

Every builder returns a list of ``(key, value)`` pairs, not a dict: Rails
checkboxes are submitted as a hidden ``0`` followed by the real value under
the same key, and the order of the pair matters.

Builders:
    - ``build_create_form``       POST /naps                 (minimal fields)
    - ``build_update_form``       POST /naps/{id}            (_method=put)
    - ``build_sip_server_form``   POST /nap/add_sip_sap/{id}
    - ``build_port_range_form``   POST /nap/add_port_range/{id}
"""

from __future__ import annotations

import re
from typing import Any, List, Tuple

from .models import NapDraft

Form = List[Tuple[str, str]]

# Keys consumed by the update builder; anything else that looks like a form
# key is passed through verbatim.
KNOWN_FIELDS = frozenset({
    "enabled", "profile_id", "get_stats_on_leg_termination",
    # SIP proxy
    "sip_destination_ip", "sip_destination_port", "sip_use_proxy",
    "filter_by_remote_port", "poll_proxy", "proxy_polling_interval",
    "proxy_polling_interval_unit_conversion", "poll_proxy_ping_quirk",
    "proxy_polling_response_timeout", "proxy_polling_max_forwards",
    "accept_only_authorized_users", "register_to_proxy", "aor",
    # Digest authentication
    "sip_auth_ignore_realm", "sip_auth_reuse_challenge", "sip_auth_realm",
    "sip_auth_user", "sip_auth_pass",
    # NAT
    "remote_nat_traversal_method_id", "remote_sip_nat_traversal_method_id",
    "nat_cfg_id", "nat_cfg_sip_id",
    # SIP-I
    "sipi_enable", "sipi_isup_protocol_variant_id", "sipi_version",
    "sipi_use_info_progress", "append_trailing_f_to_number",
    "sip_183_call_progress", "sip_privacy_type_id",
    # Rate limiting
    "rate_limit_cps", "rate_limit_cps_in", "rate_limit_cps_out",
    "max_incoming_calls", "max_outgoing_calls", "max_incoming_outgoing_calls",
    "rate_limit_delay_low", "rate_limit_delay_high",
    "rate_limit_cpu_usage_low", "rate_limit_cpu_usage_high",
    # Congestion
    "congestion_threshold_nb_calls", "congestion_threshold_period_sec",
    "congestion_threshold_period_sec_unit_conversion",
})

_FORM_KEY = re.compile(r'^[A-Za-z_]\w*(\[[\w]*\])+$')

_FALSE_STRINGS = ("0", "false", "no", "off", "")


def is_form_key(key: str) -> bool:
    """``nap[foo]`` / ``nap_sip_cfg[bar]`` style keys pass through verbatim."""
    return bool(_FORM_KEY.match(key))


# ── Value coercion ────────────────────────────────────────────────

def _truthy(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _value(value: Any, default: Any = "") -> str:
    if value is None or value == "" or value is False:
        return str(default)
    return str(value)


def _checkbox(form: Form, key: str, checked: bool) -> None:
    form.append((key, "0"))
    if checked:
        form.append((key, "1"))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def build_create_form(draft: NapDraft, token: str, configuration_id: str = "1") -> Form:
    """Minimal body accepted by ``POST /naps``."""
    return [
        ("authenticity_token", token),
        ("nap[name]", draft.name),
        ("nap[enabled]", "0"),
        ("nap[enabled]", "1" if draft.enabled else "0"),
        ("nap[profile_id]", draft.profile_id),
        ("nap[get_stats_on_leg_termination]", "true"),
        ("nap[rate_limit_cps]", "0"),
        ("nap[rate_limit_cps_in]", "0"),
        ("nap[rate_limit_cps_out]", "0"),
        ("nap[max_incoming_calls]", "0"),
        ("nap[max_outgoing_calls]", "0"),
        ("nap[max_incoming_outgoing_calls]", "0"),
        ("nap[rate_limit_delay_low]", "3"),
        ("nap[rate_limit_delay_low_unit_conversion]", "1000.0"),
        ("nap[rate_limit_delay_high]", "6"),
        ("nap[rate_limit_delay_high_unit_conversion]", "1000.0"),
        ("nap[rate_limit_cpu_usage_low]", "0"),
        ("nap[rate_limit_cpu_usage_high]", "0"),
        ("nap[congestion_threshold_nb_calls]", "1"),
        ("nap[congestion_threshold_period_sec]", "1"),
        ("nap[congestion_threshold_period_sec_unit_conversion]", "60.0"),
        ("nap[configuration_id]", str(configuration_id)),
        ("commit", "Create"),
    ]


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

def build_update_form(draft: NapDraft, token: str, configuration_id: str = "1") -> Form:
    """Full edit-form body for ``POST /naps/{id}`` (``_method=put``)."""
    f = draft.fields
    form: Form = [
        ("_method", "put"),
        ("authenticity_token", token),
        ("nap[name]", draft.name),
    ]
    _checkbox(form, "nap[enabled]", draft.enabled)
    form.append(("nap[profile_id]", draft.profile_id))
    form.append(("nap[get_stats_on_leg_termination]", _value(f.get("get_stats_on_leg_termination"), "true")))

    # ── SIP proxy ─────────────────────────────────────────────
    proxy_ip = f.get("sip_destination_ip")
    _checkbox(form, "nap_sip_cfg[sip_use_proxy]", _truthy(f.get("sip_use_proxy"), bool(proxy_ip)))
    form.append(("nap[sip_destination_ip]", _value(proxy_ip)))
    form.append(("nap[sip_destination_port]", _value(f.get("sip_destination_port"), 5060)))
    _checkbox(form, "nap_sip_cfg[filter_by_remote_port]", _truthy(f.get("filter_by_remote_port"), True))
    _checkbox(form, "nap_sip_cfg[poll_proxy]", _truthy(f.get("poll_proxy"), True))
    form.append(("nap_sip_cfg[proxy_polling_interval]", _value(f.get("proxy_polling_interval"), 1)))
    form.append((
        "nap_sip_cfg[proxy_polling_interval_unit_conversion]",
        _value(f.get("proxy_polling_interval_unit_conversion"), "60000.0"),
    ))
    _checkbox(form, "nap_sip_cfg[accept_only_authorized_users]", _truthy(f.get("accept_only_authorized_users")))
    _checkbox(form, "nap_sip_cfg[register_to_proxy]", _truthy(f.get("register_to_proxy")))
    form.append(("nap_sip_cfg[aor]", _value(f.get("aor"))))

    # ── Digest authentication ─────────────────────────────────
    _checkbox(form, "nap[sip_auth_ignore_realm]", _truthy(f.get("sip_auth_ignore_realm")))
    _checkbox(form, "nap[sip_auth_reuse_challenge]", _truthy(f.get("sip_auth_reuse_challenge")))
    form.append(("nap[sip_auth_realm]", _value(f.get("sip_auth_realm"))))
    form.append(("nap[sip_auth_user]", _value(f.get("sip_auth_user"))))
    form.append(("nap[sip_auth_pass]", _value(f.get("sip_auth_pass"))))

    # ── NAT ───────────────────────────────────────────────────
    form.append(("nap_sip_cfg[remote_nat_traversal_method_id]", _value(f.get("remote_nat_traversal_method_id"), 0)))
    form.append(("nap_sip_cfg[remote_sip_nat_traversal_method_id]", _value(f.get("remote_sip_nat_traversal_method_id"), 0)))
    # Local NAT configs are only sent when chosen
    for key in ("nat_cfg_id", "nat_cfg_sip_id"):
        if _value(f.get(key)):
            form.append((f"nap_sip_cfg[{key}]", _value(f.get(key))))

    # ── SIP-I ─────────────────────────────────────────────────
    _checkbox(form, "nap_sip_cfg[sipi_enable]", _truthy(f.get("sipi_enable")))
    form.append(("nap_sip_cfg[sipi_isup_protocol_variant_id]", _value(f.get("sipi_isup_protocol_variant_id"), 5)))
    form.append(("nap_sip_cfg[sipi_version]", _value(f.get("sipi_version"), "itu-t")))
    form.append(("nap_sip_cfg[sipi_use_info_progress]", _value(f.get("sipi_use_info_progress"), 0)))
    _checkbox(form, "nap_tdm_cfg[append_trailing_f_to_number]", _truthy(f.get("append_trailing_f_to_number")))

    # ── Advanced proxy polling ────────────────────────────────
    _checkbox(form, "nap_sip_cfg[poll_proxy_ping_quirk]", _truthy(f.get("poll_proxy_ping_quirk"), True))
    form.append(("nap_sip_cfg[proxy_polling_response_timeout]", _value(f.get("proxy_polling_response_timeout"), 12)))
    form.append(("nap_sip_cfg[proxy_polling_response_timeout_unit_conversion]", "1000.0"))
    form.append(("nap_sip_cfg[proxy_polling_max_forwards]", _value(f.get("proxy_polling_max_forwards"), 1)))
    _checkbox(form, "nap_sip_cfg[sip_183_call_progress]", _truthy(f.get("sip_183_call_progress")))
    form.append(("nap_sip_cfg[sip_privacy_type_id]", _value(f.get("sip_privacy_type_id"), 3)))

    # ── Rate limiting ─────────────────────────────────────────
    for key in ("rate_limit_cps", "rate_limit_cps_in", "rate_limit_cps_out",
                "max_incoming_calls", "max_outgoing_calls", "max_incoming_outgoing_calls"):
        form.append((f"nap[{key}]", _value(f.get(key), 0)))
    # Delay thresholds set on create survive unless the caller overrides them
    for key in ("rate_limit_delay_low", "rate_limit_delay_high"):
        if _value(f.get(key)):
            form.append((f"nap[{key}]", _value(f.get(key))))
            form.append((f"nap[{key}_unit_conversion]", "1.0"))
    form.append(("nap[rate_limit_cpu_usage_low]", _value(f.get("rate_limit_cpu_usage_low"), 0)))
    form.append(("nap[rate_limit_cpu_usage_high]", _value(f.get("rate_limit_cpu_usage_high"), 0)))

    # ── Congestion ────────────────────────────────────────────
    form.append(("nap[congestion_threshold_nb_calls]", _value(f.get("congestion_threshold_nb_calls"), 1)))
    form.append(("nap[congestion_threshold_period_sec]", _value(f.get("congestion_threshold_period_sec"), 1)))
    form.append((
        "nap[congestion_threshold_period_sec_unit_conversion]",
        _value(f.get("congestion_threshold_period_sec_unit_conversion"), "60.0"),
    ))

    # Newer firmware fields supplied by the caller
    for key, value in f.items():
        if key not in KNOWN_FIELDS and is_form_key(key):
            form.append((key, _value(value)))

    form.append(("nap[configuration_id]", str(configuration_id)))
    form.append(("commit", "Save"))
    return form


# ---------------------------------------------------------------------------
# Child resources
# ---------------------------------------------------------------------------

def build_sip_server_form(token: str, server_id: str) -> Form:
    return [
        ("authenticity_token", token),
        ("sip_sap[][sip_sap]", str(server_id)),
    ]


def build_port_range_form(token: str, range_id: str) -> Form:
    return [
        ("authenticity_token", token),
        ("port_range[][port_range]", str(range_id)),
    ]
