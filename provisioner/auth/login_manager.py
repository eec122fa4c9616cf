"""
Login Manager
=============
Form-based login against the ProSBC Web Configuration Tool.

Flow:
    1. GET ``/login`` with redirects disabled (must answer 200)
    2. Pull the ``authenticity_token`` out of the login form
    3. POST ``/login/check`` with ``user[name]`` / ``user[pass]``,
       redirects disabled, ``Referer`` pointing at the login page
    4. Capture the ``_WebOAMP_session`` cookie from ``Set-Cookie``

There is no retry at this layer; callers re-run the whole workflow.

Security:
    - Credentials are never logged or printed.
    - Only the login URL, status codes and a truncated token appear in logs.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

import requests

from ..errors import AuthenticationFailed, AuthTokenNotFound
from ..run_config import ProvisionerRunConfig
from ..tokens import extract_token
from .base_auth import Credentials
from .session_store import SESSION_COOKIE_NAME, AdminSession

if TYPE_CHECKING:
    from ..models import RemoteInstance

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Endpoints and accepted statuses
# ---------------------------------------------------------------------------

LOGIN_PATH = "/login"
LOGIN_CHECK_PATH = "/login/check"

# 302 -> redirect into the app, 200 -> rendered landing page, 401 -> rejected
_ACCEPTED_LOGIN_STATUSES = (200, 302, 401)

_SESSION_COOKIE_RE = re.compile(rf'{re.escape(SESSION_COOKIE_NAME)}=([^;,\s]+)')

SessionFactory = Callable[[str], AdminSession]


def build_login_form(token: str, creds: Credentials) -> List[Tuple[str, str]]:
    return [
        ("authenticity_token", token),
        ("user[name]", creds.username),
        ("user[pass]", creds.password),
        ("commit", "Login"),
    ]


def session_cookie_from(response: requests.Response) -> Optional[str]:
    """Read ``_WebOAMP_session`` from the response jar or raw ``Set-Cookie``."""
    value = response.cookies.get(SESSION_COOKIE_NAME)
    if value:
        return value
    match = _SESSION_COOKIE_RE.search(response.headers.get("Set-Cookie", ""))
    return match.group(1) if match else None


class LoginManager:
    """Establishes authenticated ``AdminSession`` objects.

    Usage::

        manager = LoginManager(ProvisionerRunConfig())
        session = manager.establish(instance)
    """

    def __init__(
        self,
        config: Optional[ProvisionerRunConfig] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
    ):
        """
        Args:
            config:          Run configuration (timeouts, TLS, user agent).
            session_factory: Builds a fresh ``AdminSession`` for a base URL.
                             Defaults to one configured from *config*.
        """
        self.config = config or ProvisionerRunConfig()
        self._session_factory = session_factory or self._default_session

    def _default_session(self, base_url: str) -> AdminSession:
        return AdminSession(
            base_url,
            user_agent=self.config.user_agent,
            verify_tls=self.config.verify_tls,
            timeouts=self.config.timeouts(),
        )

    # ── Public API ────────────────────────────────────────────────

    def establish(
        self, instance: "RemoteInstance", session: Optional[AdminSession] = None
    ) -> AdminSession:
        """Log in to *instance* and return the authenticated session.

        When *session* is given it is reset first (its old tokens become
        stale) and re-authenticated in place.

        Raises:
            AuthTokenNotFound:    login page carried no usable token
            AuthenticationFailed: bad credentials or no session cookie
            TransportError:       network failure (``NetworkTimeout`` on stall)
        """
        creds = instance.credentials
        if not creds.is_complete:
            raise AuthenticationFailed(
                f"Incomplete credentials for {instance.display_name}"
            )

        if session is None:
            session = self._session_factory(instance.base_url)
        else:
            session.reset()

        logger.info(f"[AUTH] Logging in to {session.base_url}{LOGIN_PATH}")

        # ── Step 1: login page ────────────────────────────────────
        page = session.get(LOGIN_PATH, timeout_kind="login", allow_redirects=False)
        if page.status_code != 200:
            raise AuthenticationFailed(
                f"Login page returned HTTP {page.status_code}"
            )

        # ── Step 2: form token ────────────────────────────────────
        found = extract_token(page.text)
        if not found:
            raise AuthTokenNotFound()
        token_value, strategy = found

        # ── Step 3: credentials ───────────────────────────────────
        response = session.post_form(
            LOGIN_CHECK_PATH,
            build_login_form(token_value, creds),
            timeout_kind="login",
            allow_redirects=False,
            headers={"Referer": session.url(LOGIN_PATH)},
        )
        status = response.status_code
        if status not in _ACCEPTED_LOGIN_STATUSES:
            raise AuthenticationFailed(f"Login failed with HTTP {status}")
        if status == 401:
            raise AuthenticationFailed("Invalid credentials (HTTP 401)")
        location = response.headers.get("Location", "")
        if status == 302 and location.rstrip("/").endswith(LOGIN_PATH):
            raise AuthenticationFailed("Invalid credentials (redirected back to login)")

        # ── Step 4: session cookie ────────────────────────────────
        cookie = session_cookie_from(response)
        if not cookie:
            raise AuthenticationFailed(
                f"Session cookie {SESSION_COOKIE_NAME} not found in login response"
            )

        token = session.establish(cookie, token_value, source=strategy)
        logger.info(f"[AUTH] Login successful (HTTP {status}), token {token}")
        return session
