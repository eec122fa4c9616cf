"""
NAP Provisioner Package
Scripted creation of Network Access Points on ProSBC appliances through the
server-rendered Web Configuration Tool.

CLI Usage:
    python -m provisioner <command> [options]

    Commands:
        create           Create a NAP (optionally configure it and attach children)
        validate         Validate a NAP draft without touching the network
        check            Check whether a NAP name already exists
        list             List NAP names and ids
        resolve-id       Resolve a NAP name to its numeric id
        test-connection  Log in and report
        instances        List registry instances
"""

from .auth import AdminSession, AuthenticityToken, Credentials, LoginManager
from .errors import (
    AuthenticationFailed,
    AuthTokenNotFound,
    CheckFailed,
    ChildAttachmentFailed,
    DuplicateNameError,
    EntityNotFound,
    IdResolutionAmbiguous,
    InstanceNotFound,
    InstanceUnavailable,
    NetworkTimeout,
    ProvisionerError,
    StaleTokenError,
    TokenNotFound,
    TransportError,
)
from .models import ChildOutcome, CreationResult, NapDraft, NapSummary, RemoteInstance, ValidationReport
from .run_config import ProvisionerRunConfig
from .navigator import PageNavigator, PageVisit
from .tokens import TokenResolver, TokenStrategy, is_valid_token
from .id_resolution import IdResolver, Opaque, Redirected, Rendered, classify_response
from .validation import validate
from .workflow import NapCreationWorkflow, WorkflowState
from .instance_cache import (
    CredentialCache,
    EnvInstanceRegistry,
    InstanceRegistry,
    JsonInstanceRegistry,
    default_instance_from_env,
)
from .service import NapProvisioner

__all__ = [
    'NapProvisioner',
    'NapCreationWorkflow',
    'WorkflowState',
    'ProvisionerRunConfig',
    # Session / auth
    'AdminSession',
    'AuthenticityToken',
    'Credentials',
    'LoginManager',
    # Components
    'PageNavigator',
    'PageVisit',
    'TokenResolver',
    'TokenStrategy',
    'is_valid_token',
    'IdResolver',
    'Redirected',
    'Rendered',
    'Opaque',
    'classify_response',
    'validate',
    # Instances
    'CredentialCache',
    'InstanceRegistry',
    'JsonInstanceRegistry',
    'EnvInstanceRegistry',
    'default_instance_from_env',
    # Models
    'RemoteInstance',
    'NapDraft',
    'NapSummary',
    'CreationResult',
    'ChildOutcome',
    'ValidationReport',
    # Errors
    'ProvisionerError',
    'AuthenticationFailed',
    'AuthTokenNotFound',
    'TokenNotFound',
    'StaleTokenError',
    'DuplicateNameError',
    'CheckFailed',
    'IdResolutionAmbiguous',
    'ChildAttachmentFailed',
    'EntityNotFound',
    'InstanceNotFound',
    'InstanceUnavailable',
    'TransportError',
    'NetworkTimeout',
]

__version__ = '1.0.0'
