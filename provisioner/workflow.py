"""
NAP Creation Workflow
=====================
State machine that creates one NAP through the appliance's browser forms.

States::

    IDLE -> CHECKING_DUPLICATE -> CREATING -> RESOLVING_ID
         -> UPDATING (optional) -> ATTACHING_CHILDREN (optional) -> DONE
                                                   any fatal step -> FAILED

Only duplicate names, a failed duplicate check (under the default policy)
and an impossible create submission end in FAILED.  Everything after the
create is best-effort: an unresolved id, a rejected update or a rejected
child attachment is reported on the ``CreationResult`` instead.

A workflow object runs exactly once; build a new one per NAP.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

import requests

from .auth.session_store import AdminSession, AuthenticityToken
from .errors import (
    AuthenticationFailed,
    CheckFailed,
    ChildAttachmentFailed,
    DuplicateNameError,
    IdResolutionAmbiguous,
    ProvisionerError,
    StaleTokenError,
    TokenNotFound,
    TransportError,
)
from .id_resolution import IdResolver, Rendered, classify_response, parse_nap_list
from .models import ChildOutcome, CreationResult, NapDraft
from .navigator import NAP_LIST_PATHS, PageNavigator
from .payloads import (
    build_create_form,
    build_port_range_form,
    build_sip_server_form,
    build_update_form,
)
from .run_config import ProvisionerRunConfig
from .tokens import TokenResolver

logger = logging.getLogger(__name__)


CREATE_PATH = "/naps"
UPDATE_PATH = "/naps/{id}"
EDIT_PATH = "/naps/{id}/edit"
ADD_SIP_SERVER_PATH = "/nap/add_sip_sap/{id}"
ADD_PORT_RANGE_PATH = "/nap/add_port_range/{id}"

ID_UNKNOWN_WARNING = "NAP created but ID could not be determined for further configuration"

_DUPLICATE_MARKERS = ("already exists", "has already been taken", "duplicate")
_FORM_ERROR_MARKERS = ("errorExplanation", "error_explanation")


class WorkflowState(Enum):
    IDLE = "idle"
    CHECKING_DUPLICATE = "checking_duplicate"
    CREATING = "creating"
    RESOLVING_ID = "resolving_id"
    UPDATING = "updating"
    ATTACHING_CHILDREN = "attaching_children"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = (WorkflowState.DONE, WorkflowState.FAILED)


def mentions_duplicate(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in _DUPLICATE_MARKERS)


def rejection_reason(body: str, name: str) -> Optional[ProvisionerError]:
    """Inspect a rendered create response for a form validation error."""
    if not any(marker in body for marker in _FORM_ERROR_MARKERS):
        return None
    if mentions_duplicate(body):
        return DuplicateNameError(name)
    return ProvisionerError("ProSBC rejected the NAP form (see errorExplanation)")


class NapCreationWorkflow:
    """Creates one NAP on an authenticated ``AdminSession``.

    Usage::

        workflow = NapCreationWorkflow(session, config=cfg)
        result = workflow.run(NapDraft.from_dict({"name": "carrier-a"}))
    """

    def __init__(
        self,
        session: AdminSession,
        *,
        config: Optional[ProvisionerRunConfig] = None,
        navigator: Optional[PageNavigator] = None,
        token_resolver: Optional[TokenResolver] = None,
        id_resolver: Optional[IdResolver] = None,
    ):
        self.session = session
        self.config = config or ProvisionerRunConfig()
        self.navigator = navigator or PageNavigator()
        self.token_resolver = token_resolver or TokenResolver()
        self.id_resolver = id_resolver or IdResolver(
            self.navigator,
            proxy_prefix=self.config.proxy_prefix,
            retry_delay_s=self.config.id_retry_delay_s,
            retry_attempts=self.config.id_retry_attempts,
        )
        self.state = WorkflowState.IDLE
        self.history: List[WorkflowState] = [WorkflowState.IDLE]
        self._submissions = {"create": 0, "update": 0}

    # ── State helpers ─────────────────────────────────────────────

    def _transition(self, state: WorkflowState) -> None:
        logger.debug(f"[NAP] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, message: str, error: Optional[Exception] = None) -> CreationResult:
        self._transition(WorkflowState.FAILED)
        logger.error(f"[NAP] {message}")
        return CreationResult(success=False, message=message, error=error)

    def _submit(self, kind: str, path: str, form) -> requests.Response:
        if self._submissions[kind]:
            raise RuntimeError(f"{kind} already submitted in this workflow run")
        self._submissions[kind] += 1
        return self.session.post_form(path, form, timeout_kind="submit", allow_redirects=False)

    # ── Public API ────────────────────────────────────────────────

    def check_duplicate(self, name: str) -> bool:
        """Return True if a NAP named *name* is on the NAP list page.

        The candidate list paths are tried in order and the first one that
        answers 2xx with a NAP section marker is searched.  The NAP counts as
        absent only when every path answers 404.

        Raises:
            CheckFailed: no path produced a readable list and at least one
                failed with something other than a 404.
        """
        failures = []
        for path in NAP_LIST_PATHS:
            try:
                response = self.session.get(path, timeout_kind="list")
            except TransportError as exc:
                failures.append(f"{path}: {exc}")
                continue
            status = response.status_code
            body = response.text or ""
            if 200 <= status < 300 and self.navigator.has_marker(body):
                return any(nap.name == name for nap in parse_nap_list(body))
            if status != 404:
                failures.append(f"{path}: HTTP {status}")
        if failures:
            raise CheckFailed(f"NAP list unavailable ({'; '.join(failures)})")
        logger.info(f"[NAP] No NAP list page found, treating \"{name}\" as absent")
        return False

    def run(self, draft: NapDraft) -> CreationResult:
        if self.state is not WorkflowState.IDLE:
            raise RuntimeError("A NapCreationWorkflow can only run once")

        name = draft.name
        logger.info(f"[NAP] Creating NAP \"{name}\" on {self.session.base_url}")

        # ── Duplicate check ───────────────────────────────────────
        self._transition(WorkflowState.CHECKING_DUPLICATE)
        try:
            if self.check_duplicate(name):
                return self._fail(str(DuplicateNameError(name)), DuplicateNameError(name))
        except CheckFailed as exc:
            if self.config.abort_on_check_failure:
                return self._fail(f"Duplicate check failed: {exc}", exc)
            logger.warning(f"[NAP] Duplicate check failed, continuing: {exc}")

        # ── Create ────────────────────────────────────────────────
        self._transition(WorkflowState.CREATING)
        try:
            visit = self.navigator.visit_sip_section(self.session)
            token = self.token_resolver.resolve(self.session, page=visit.body)
            response = self._submit(
                "create", CREATE_PATH,
                build_create_form(draft, self.session.require_current(token).value, self.config.configuration_id),
            )
        except (AuthenticationFailed, TokenNotFound, StaleTokenError, TransportError) as exc:
            return self._fail(f"Could not submit NAP creation: {exc}", exc)

        if response.status_code >= 400:
            return self._fail(f"NAP creation rejected with HTTP {response.status_code}")

        outcome = classify_response(response)
        if isinstance(outcome, Rendered):
            rejected = rejection_reason(outcome.body, name)
            if rejected is not None:
                return self._fail(str(rejected), rejected)
        logger.info(f"[NAP] Create submitted (HTTP {response.status_code}, {type(outcome).__name__})")

        # ── Resolve id ────────────────────────────────────────────
        self._transition(WorkflowState.RESOLVING_ID)
        try:
            entity_id = self.id_resolver.resolve(self.session, outcome, name).entity_id
        except IdResolutionAmbiguous as exc:
            logger.warning(f"[NAP] {exc}")
            if isinstance(outcome, Rendered) and mentions_duplicate(outcome.body):
                return self._fail(str(DuplicateNameError(name)), DuplicateNameError(name))
            self._transition(WorkflowState.DONE)
            return CreationResult(
                success=True,
                message=f"NAP \"{name}\" created",
                warnings=[ID_UNKNOWN_WARNING],
            )

        warnings: List[str] = []

        # ── Update ────────────────────────────────────────────────
        if draft.has_extended_fields:
            self._transition(WorkflowState.UPDATING)
            warning = self._update(entity_id, draft, token)
            if warning:
                warnings.append(warning)

        # ── Children ──────────────────────────────────────────────
        outcomes: List[ChildOutcome] = []
        if draft.has_children:
            self._transition(WorkflowState.ATTACHING_CHILDREN)
            outcomes = self.attach_children(entity_id, draft, token)
            failed = [o for o in outcomes if not o.success]
            if failed:
                warnings.append(f"{len(failed)} of {len(outcomes)} child attachments failed")

        self._transition(WorkflowState.DONE)
        message = f"NAP \"{name}\" created with id {entity_id}"
        logger.info(f"[NAP] {message}")
        return CreationResult(
            success=True,
            message=message,
            entity_id=entity_id,
            edit_path=EDIT_PATH.format(id=entity_id),
            warnings=warnings,
            child_outcomes=outcomes,
        )

    # ── Steps ─────────────────────────────────────────────────────

    def _update(self, entity_id: str, draft: NapDraft, token: AuthenticityToken) -> Optional[str]:
        """Submit the full edit form; return a warning instead of raising."""
        try:
            self.session.require_current(token)
            response = self._submit(
                "update", UPDATE_PATH.format(id=entity_id),
                build_update_form(draft, token.value, self.config.configuration_id),
            )
        except (StaleTokenError, TransportError) as exc:
            logger.warning(f"[NAP] Update of NAP {entity_id} failed: {exc}")
            return f"NAP created but configuration update failed: {exc}"
        if response.status_code >= 400:
            logger.warning(f"[NAP] Update of NAP {entity_id} returned HTTP {response.status_code}")
            return f"NAP created but configuration update failed (HTTP {response.status_code})"
        logger.info(f"[NAP] Configuration applied to NAP {entity_id}")
        return None

    def attach_children(self, entity_id: str, draft: NapDraft, token: AuthenticityToken) -> List[ChildOutcome]:
        """Attach SIP servers, then port ranges; one outcome per reference."""
        plan = (
            [("sip_server", ref) for ref in draft.sip_servers]
            + [("port_range", ref) for ref in draft.port_ranges]
        )
        outcomes = []
        for kind, ref in plan:
            try:
                status = self._attach_one(kind, entity_id, ref, token)
                outcomes.append(ChildOutcome(kind=kind, ref=ref, success=True, status_code=status))
                logger.info(f"[NAP] Attached {kind} {ref} to NAP {entity_id}")
            except ChildAttachmentFailed as exc:
                logger.warning(f"[NAP] {exc}")
                outcomes.append(ChildOutcome(
                    kind=kind, ref=ref, success=False,
                    status_code=exc.status_code, error=exc.reason,
                ))
        return outcomes

    def _attach_one(self, kind: str, entity_id: str, ref: str, token: AuthenticityToken) -> int:
        if kind == "sip_server":
            path = ADD_SIP_SERVER_PATH.format(id=entity_id)
            form = build_sip_server_form(token.value, ref)
        else:
            path = ADD_PORT_RANGE_PATH.format(id=entity_id)
            form = build_port_range_form(token.value, ref)
        try:
            self.session.require_current(token)
            response = self.session.post_form(path, form, timeout_kind="submit", allow_redirects=False)
        except (StaleTokenError, TransportError) as exc:
            raise ChildAttachmentFailed(kind, ref, str(exc)) from exc
        if response.status_code >= 400:
            raise ChildAttachmentFailed(
                kind, ref, f"HTTP {response.status_code}", status_code=response.status_code
            )
        return response.status_code

    @property
    def is_finished(self) -> bool:
        return self.state in _TERMINAL
