"""
NAP Provisioner Service
=======================
Per-instance entry point tying the components together.

    instance id ──► CredentialCache ──► LoginManager ──► AdminSession
                                                            │
              NapCreationWorkflow ◄─────────────────────────┘
                       │
                CreationResult

Usage::

    from provisioner import NapProvisioner, JsonInstanceRegistry

    provisioner = NapProvisioner(JsonInstanceRegistry("instances.json"))
    result = provisioner.create_nap("3", {"name": "carrier-a",
                                         "sip_destination_ip": "10.0.0.5"})
    print(result.to_dict())
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .auth.login_manager import LoginManager
from .auth.session_store import AdminSession
from .errors import (
    AuthenticationFailed,
    EntityNotFound,
    InstanceNotFound,
    ProvisionerError,
    TransportError,
)
from .id_resolution import parse_nap_list
from .instance_cache import (
    CredentialCache,
    InstanceRegistry,
    default_instance_from_env,
    registry_loader,
)
from .models import CreationResult, NapDraft, NapSummary, RemoteInstance
from .navigator import PageNavigator
from .run_config import ProvisionerRunConfig
from .validation import validate
from .workflow import NapCreationWorkflow

logger = logging.getLogger(__name__)


class NapProvisioner:
    """Creates and inspects NAPs on registry-managed ProSBC instances."""

    def __init__(
        self,
        registry: InstanceRegistry,
        *,
        config: Optional[ProvisionerRunConfig] = None,
        login_manager: Optional[LoginManager] = None,
        cache: Optional[CredentialCache] = None,
    ):
        self.registry = registry
        self.config = config or ProvisionerRunConfig()
        self.login_manager = login_manager or LoginManager(self.config)
        self.cache = cache or CredentialCache(
            registry_loader(registry),
            ttl_s=self.config.cache_ttl_s,
            high_water=self.config.cache_high_water,
            keep=self.config.cache_keep,
        )
        self.navigator = PageNavigator()

    # ── Instances ─────────────────────────────────────────────────

    def resolve_instance(self, instance_id: Optional[str] = None) -> RemoteInstance:
        """Look up *instance_id*; without one, fall back to the first active
        registry entry and then to the ``PROSBC_*`` environment."""
        if instance_id:
            return self.cache.get(str(instance_id))

        try:
            active = [i for i in self.registry.list_instances() if i.is_active]
        except (ProvisionerError, OSError, ValueError) as exc:
            logger.warning(f"[CACHE] Instance registry unavailable: {exc}")
            active = []
        if active:
            return self.cache.get(active[0].id)

        fallback = default_instance_from_env()
        if fallback is None:
            raise InstanceNotFound("default")
        logger.info("[CACHE] Using default instance from environment")
        return fallback

    def open_session(self, instance_id: Optional[str] = None) -> AdminSession:
        return self.login_manager.establish(self.resolve_instance(instance_id))

    def clear_cache(self, instance_id: Optional[str] = None) -> None:
        self.cache.clear(instance_id)

    def cache_stats(self) -> dict:
        return self.cache.stats()

    # ── Operations ────────────────────────────────────────────────

    def create_nap(
        self, instance_id: Optional[str], draft: Union[NapDraft, Dict[str, Any]]
    ) -> CreationResult:
        """Validate *draft*, log in and run the creation workflow.

        Never raises for workflow failures; inspect ``result.success``.
        """
        if not isinstance(draft, NapDraft):
            draft = NapDraft.from_dict(draft)

        report = validate(draft)
        if not report.is_valid:
            return CreationResult(
                success=False,
                message="Invalid NAP configuration: " + "; ".join(report.errors),
            )
        for warning in report.warnings:
            logger.warning(f"[NAP] {warning}")

        try:
            session = self.open_session(instance_id)
        except (ProvisionerError, ValueError) as exc:
            logger.error(f"[AUTH] {exc}")
            return CreationResult(success=False, message=f"Login failed: {exc}", error=exc)

        with session:
            workflow = NapCreationWorkflow(session, config=self.config, navigator=self.navigator)
            result = workflow.run(draft)
        result.warnings[:0] = [w for w in report.warnings if w not in result.warnings]
        return result

    def check_nap_exists(self, instance_id: Optional[str], name: str) -> bool:
        """Raises ``CheckFailed`` when the list cannot be read."""
        with self.open_session(instance_id) as session:
            return NapCreationWorkflow(session, config=self.config).check_duplicate(name)

    def list_naps(self, instance_id: Optional[str]) -> List[NapSummary]:
        with self.open_session(instance_id) as session:
            visit = self.navigator.open_nap_list(session)
            if not visit.ok:
                raise TransportError(f"NAP list returned HTTP {visit.status_code}", url=visit.url)
            naps = parse_nap_list(visit.body)
        logger.info(f"[NAP] Found {len(naps)} NAPs")
        return naps

    def resolve_nap_id(self, instance_id: Optional[str], identifier: str) -> str:
        """Numeric identifiers pass through; names are looked up.

        Raises:
            EntityNotFound: no NAP with that name.
        """
        identifier = str(identifier).strip()
        if identifier.isdigit():
            return identifier
        for nap in self.list_naps(instance_id):
            if nap.name == identifier:
                return nap.id
        raise EntityNotFound(f'NAP "{identifier}" not found')

    def test_connection(self, instance_id: Optional[str]) -> Dict[str, Any]:
        """Log in only.  Never raises; failures come back in the dict."""
        try:
            instance = self.resolve_instance(instance_id)
        except (ProvisionerError, ValueError) as exc:
            return {"success": False, "message": str(exc), "details": {"instanceId": instance_id}}

        details = {"instanceId": instance.id, "name": instance.name, "baseUrl": instance.base_url}
        try:
            with self.login_manager.establish(instance) as session:
                details["sessionEstablished"] = session.is_established
        except AuthenticationFailed as exc:
            return {"success": False, "message": f"Authentication failed: {exc}", "details": details}
        except (ProvisionerError, ValueError) as exc:
            return {"success": False, "message": f"Connection failed: {exc}", "details": details}
        return {"success": True, "message": f"Connected to {instance.display_name}", "details": details}
