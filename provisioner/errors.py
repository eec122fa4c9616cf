"""
Provisioner Errors
==================
Exception taxonomy for the NAP provisioning workflow.

Fatal conditions are raised; caveats (unresolved id, failed child
attachment, failed update) are reported as fields on ``CreationResult``
instead, so callers only need ``except`` for real failures.

Hierarchy::

    ProvisionerError
    ├── AuthenticationFailed
    │   └── AuthTokenNotFound
    ├── TokenNotFound
    ├── StaleTokenError
    ├── DuplicateNameError
    ├── CheckFailed
    ├── IdResolutionAmbiguous
    ├── ChildAttachmentFailed
    ├── EntityNotFound
    ├── InstanceNotFound
    ├── InstanceUnavailable
    └── TransportError
        └── NetworkTimeout
"""

from __future__ import annotations

from typing import Optional


class ProvisionerError(Exception):
    """Base exception for everything raised by the provisioner."""
    pass


# ---------------------------------------------------------------------------
# Authentication / token errors
# ---------------------------------------------------------------------------

class AuthenticationFailed(ProvisionerError):
    """Login was rejected or the session cookie could not be obtained."""
    pass


class AuthTokenNotFound(AuthenticationFailed):
    """The login page carried no usable authenticity token."""

    def __init__(self, message: str = "authenticity_token not found in login page"):
        super().__init__(message)


class TokenNotFound(ProvisionerError):
    """No page in the session yielded a valid anti-forgery token."""
    pass


class StaleTokenError(ProvisionerError):
    """A token was presented after the session that issued it was reset."""

    def __init__(self, token_epoch: int, session_epoch: int):
        super().__init__(
            f"Token issued in session epoch {token_epoch} cannot be used "
            f"in epoch {session_epoch}"
        )
        self.token_epoch = token_epoch
        self.session_epoch = session_epoch


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------

class DuplicateNameError(ProvisionerError):
    """A NAP with the requested name already exists on the remote side."""

    def __init__(self, name: str):
        super().__init__(f'NAP "{name}" already exists')
        self.name = name


class CheckFailed(ProvisionerError):
    """The duplicate-name lookup could not be completed."""
    pass


class IdResolutionAmbiguous(ProvisionerError):
    """Every id-resolution strategy came back empty."""

    def __init__(self, name: str, attempts: int = 1):
        super().__init__(
            f'Could not determine the id of NAP "{name}" '
            f"after {attempts} attempt(s)"
        )
        self.name = name
        self.attempts = attempts


class ChildAttachmentFailed(ProvisionerError):
    """A single child-resource attachment was rejected."""

    def __init__(self, kind: str, ref: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Failed to attach {kind} {ref}: {reason}")
        self.kind = kind
        self.ref = ref
        self.reason = reason
        self.status_code = status_code


class EntityNotFound(ProvisionerError):
    """A NAP looked up by name does not exist on the remote side."""
    pass


# ---------------------------------------------------------------------------
# Instance registry errors
# ---------------------------------------------------------------------------

class InstanceNotFound(ProvisionerError):
    """The registry has no instance with the requested id."""

    def __init__(self, instance_id: str):
        super().__init__(f"ProSBC instance with ID {instance_id} not found")
        self.instance_id = instance_id


class InstanceUnavailable(ProvisionerError):
    """The instance exists but is disabled or incompletely configured."""
    pass


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------

class TransportError(ProvisionerError):
    """The HTTP exchange itself failed (connection, TLS, protocol)."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class NetworkTimeout(TransportError):
    """A call exceeded its per-call timeout."""
    pass
