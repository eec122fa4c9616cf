"""
Unified Run Configuration
=========================
Single source of truth for ALL provisioner defaults and runtime limits.

Every component (login, navigation, token lookup, id recovery, the
credential cache and the CLI) reads from this object.  CLI flags and
``PROSBC_*`` environment variables populate it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "login_timeout_s": 30.0,
    "navigation_timeout_s": 30.0,
    "submit_timeout_s": 60.0,
    "list_timeout_s": 120.0,        # NAP list pages are slow on large appliances
    "verify_tls": False,            # appliances ship self-signed certificates
    "user_agent": "Mozilla/5.0 (compatible; ProSBC-Automation)",
    "id_retry_delay_s": 1.5,
    "id_retry_attempts": 1,         # extra passes of the id chain
    "proxy_prefix": "/api",
    "cache_ttl_s": 600.0,
    "cache_high_water": 20,
    "cache_keep": 15,
    "abort_on_check_failure": True,
    "configuration_id": "1",
    "registry_file": None,
}

_ENV_PREFIX = "PROSBC_"

_TRUE_STRINGS = ("1", "true", "yes", "on")


@dataclass
class ProvisionerRunConfig:
    """
    Unified configuration consumed by every provisioner subsystem.

    Populate via:
      - ``ProvisionerRunConfig()``                   → all defaults
      - ``ProvisionerRunConfig(submit_timeout_s=5)`` → override one value
      - ``ProvisionerRunConfig.from_cli_args(ns)``   → from argparse Namespace
      - ``ProvisionerRunConfig.from_env()``          → from ``PROSBC_*`` vars
    """

    # ---- Per-call timeouts (seconds) ----
    login_timeout_s: float = _DEFAULTS["login_timeout_s"]
    navigation_timeout_s: float = _DEFAULTS["navigation_timeout_s"]
    submit_timeout_s: float = _DEFAULTS["submit_timeout_s"]
    list_timeout_s: float = _DEFAULTS["list_timeout_s"]

    # ---- Transport ----
    verify_tls: bool = _DEFAULTS["verify_tls"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Id recovery ----
    id_retry_delay_s: float = _DEFAULTS["id_retry_delay_s"]
    id_retry_attempts: int = _DEFAULTS["id_retry_attempts"]
    proxy_prefix: str = _DEFAULTS["proxy_prefix"]

    # ---- Credential cache ----
    cache_ttl_s: float = _DEFAULTS["cache_ttl_s"]
    cache_high_water: int = _DEFAULTS["cache_high_water"]
    cache_keep: int = _DEFAULTS["cache_keep"]

    # ---- Workflow policy ----
    abort_on_check_failure: bool = _DEFAULTS["abort_on_check_failure"]
    configuration_id: str = _DEFAULTS["configuration_id"]

    # ---- Instance registry ----
    registry_file: Optional[str] = _DEFAULTS["registry_file"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "ProvisionerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Values absent from the namespace fall back to the environment,
        then to ``_DEFAULTS``.
        """
        base = cls.from_env()
        timeout = getattr(args, "timeout", None)
        if timeout:
            base.login_timeout_s = timeout
            base.navigation_timeout_s = timeout
            base.submit_timeout_s = timeout
        if getattr(args, "verify_tls", False):
            base.verify_tls = True
        if getattr(args, "no_abort_on_check_failure", False):
            base.abort_on_check_failure = False
        registry = getattr(args, "registry", None)
        if registry:
            base.registry_file = registry
        retries = getattr(args, "id_retries", None)
        if retries is not None:
            base.id_retry_attempts = retries
        return base

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "ProvisionerRunConfig":
        """Build config from ``PROSBC_<FIELD>`` environment variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for key, default in _DEFAULTS.items():
            raw = env.get(_ENV_PREFIX + key.upper())
            if raw is None or raw == "":
                continue
            try:
                if isinstance(default, bool):
                    overrides[key] = raw.strip().lower() in _TRUE_STRINGS
                elif isinstance(default, int):
                    overrides[key] = int(raw)
                elif isinstance(default, float):
                    overrides[key] = float(raw)
                else:
                    overrides[key] = raw
            except ValueError:
                logger.warning(f"Ignoring invalid {_ENV_PREFIX}{key.upper()}={raw!r}")
        return cls(**overrides)

    # -----------------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------------
    def timeouts(self) -> Dict[str, float]:
        """Per-call timeout table keyed by call category."""
        return {
            "login": self.login_timeout_s,
            "navigation": self.navigation_timeout_s,
            "submit": self.submit_timeout_s,
            "list": self.list_timeout_s,
        }

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, base_url: str = "") -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("PROVISIONER RUN CONFIG")
        logger.info("=" * 60)
        if base_url:
            logger.info(f"  Instance URL:     {base_url}")
        logger.info(
            f"  Timeouts:         login {self.login_timeout_s}s, "
            f"nav {self.navigation_timeout_s}s, submit {self.submit_timeout_s}s, "
            f"list {self.list_timeout_s}s"
        )
        logger.info(f"  Verify TLS:       {self.verify_tls}")
        logger.info(f"  Id Retries:       {self.id_retry_attempts} x {self.id_retry_delay_s}s")
        logger.info(f"  Proxy Prefix:     {self.proxy_prefix or '(none)'}")
        logger.info(f"  Check Failure:    {'abort' if self.abort_on_check_failure else 'continue'}")
        logger.info(
            f"  Credential Cache: ttl {self.cache_ttl_s}s, "
            f"keep {self.cache_keep} of {self.cache_high_water}"
        )
        if self.registry_file:
            logger.info(f"  Registry:         {self.registry_file}")
        logger.info("=" * 60)
