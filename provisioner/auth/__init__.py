"""
Authentication Module
=====================
Session handling for the ProSBC Web Configuration Tool.

Architecture:
    - ``Credentials``    — credential container (registry record or env)
    - ``AdminSession``   — cookie jar + authenticity token for one appliance
    - ``LoginManager``   — form login producing an established session

Usage::

    from provisioner.auth import LoginManager

    session = LoginManager().establish(instance)
"""

from .base_auth import Credentials
from .session_store import SESSION_COOKIE_NAME, AdminSession, AuthenticityToken
from .login_manager import LoginManager

__all__ = [
    "Credentials",
    "AdminSession",
    "AuthenticityToken",
    "SESSION_COOKIE_NAME",
    "LoginManager",
]
