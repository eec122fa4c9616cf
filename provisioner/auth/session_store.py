"""
Session Store
=============
Authenticated HTTP session against one ProSBC appliance.

Responsibilities:
    1. Own the cookie jar (``_WebOAMP_session``) and the current
       authenticity token for the session window
    2. Resolve relative paths against the normalized base URL
    3. Apply the per-category timeout (login / navigation / submit / list)
    4. Translate ``requests`` exceptions into ``TransportError`` /
       ``NetworkTimeout`` at this boundary
    5. Invalidate tokens when the session is reset (epoch counter)

Every workflow step receives the ``AdminSession`` explicitly; it is never
shared between concurrent workflows without ``clone()``.

Usage::

    from provisioner.auth.session_store import AdminSession

    session = AdminSession("sbc.example.com:12358")
    page = session.get("/naps", timeout_kind="list")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin, urlparse

import requests

from ..errors import NetworkTimeout, StaleTokenError, TransportError
from ..run_config import _DEFAULTS
from ..utils import mask_secret, normalize_base_url

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings
# ---------------------------------------------------------------------------

SESSION_COOKIE_NAME = "_WebOAMP_session"

_DEFAULT_TIMEOUTS = {
    "login": _DEFAULTS["login_timeout_s"],
    "navigation": _DEFAULTS["navigation_timeout_s"],
    "submit": _DEFAULTS["submit_timeout_s"],
    "list": _DEFAULTS["list_timeout_s"],
}

FormData = Union[Dict[str, str], Sequence[Tuple[str, str]]]


@dataclass(frozen=True)
class AuthenticityToken:
    """An anti-forgery token bound to the session window that issued it."""
    value: str
    epoch: int
    source: str = ""

    def __str__(self) -> str:
        return mask_secret(self.value)


def _create_http_session(user_agent: str, verify_tls: bool) -> requests.Session:
    """Create configured requests session with browser-like headers."""
    http = requests.Session()
    http.headers.update({
        'User-Agent': user_agent,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Connection': 'keep-alive',
        'Upgrade-Insecure-Requests': '1',
    })
    http.verify = verify_tls
    return http


class AdminSession:
    """Cookie jar + authenticity token for one appliance."""

    def __init__(
        self,
        base_url: str,
        *,
        user_agent: str = _DEFAULTS["user_agent"],
        verify_tls: bool = _DEFAULTS["verify_tls"],
        timeouts: Optional[Dict[str, float]] = None,
        http: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url:   Appliance URL; ``https://`` is added when missing.
            user_agent: User-Agent header sent on every request.
            verify_tls: Verify the appliance certificate.
            timeouts:   Per-category timeout overrides (seconds).
            http:       Pre-built ``requests.Session`` (tests mount adapters).
        """
        self.base_url = normalize_base_url(base_url)
        self.user_agent = user_agent
        self.verify_tls = verify_tls
        self.timeouts = dict(_DEFAULT_TIMEOUTS)
        if timeouts:
            self.timeouts.update(timeouts)
        self.http = http if http is not None else _create_http_session(user_agent, verify_tls)
        self.token: Optional[AuthenticityToken] = None
        self.established_at: Optional[float] = None
        self.epoch = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def host(self) -> str:
        return urlparse(self.base_url).hostname or ""

    @property
    def session_cookie(self) -> Optional[str]:
        for cookie in self.http.cookies:
            if cookie.name == SESSION_COOKIE_NAME:
                return cookie.value
        return None

    @property
    def is_established(self) -> bool:
        return self.established_at is not None and self.session_cookie is not None

    def url(self, path: str) -> str:
        """Resolve *path* against the base URL (absolute URLs pass through)."""
        if path.startswith(("http://", "https://")):
            return path
        return urljoin(self.base_url + "/", path.lstrip("/"))

    # ── HTTP ──────────────────────────────────────────────────────

    def get(
        self,
        path: str,
        *,
        timeout_kind: str = "navigation",
        allow_redirects: bool = True,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        return self._request(
            "GET", path,
            timeout_kind=timeout_kind,
            allow_redirects=allow_redirects,
            headers=headers,
        )

    def post_form(
        self,
        path: str,
        data: FormData,
        *,
        timeout_kind: str = "submit",
        allow_redirects: bool = False,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """POST an ``application/x-www-form-urlencoded`` body.

        *data* may be a list of pairs so repeated keys (the Rails checkbox
        idiom) keep their order.
        """
        return self._request(
            "POST", path,
            data=list(data.items()) if isinstance(data, dict) else list(data),
            timeout_kind=timeout_kind,
            allow_redirects=allow_redirects,
            headers=headers,
        )

    def _request(self, method: str, path: str, *, timeout_kind: str, **kwargs) -> requests.Response:
        url = self.url(path)
        timeout = self.timeouts.get(timeout_kind, self.timeouts["navigation"])
        try:
            response = self.http.request(method, url, timeout=timeout, **kwargs)
        except requests.Timeout as exc:
            logger.warning(f"[HTTP] {method} {url} timed out after {timeout}s")
            raise NetworkTimeout(f"{method} {url} timed out after {timeout}s", url=url) from exc
        except requests.RequestException as exc:
            logger.warning(f"[HTTP] {method} {url} failed: {exc}")
            raise TransportError(f"{method} {url} failed: {exc}", url=url) from exc
        logger.debug(f"[HTTP] {method} {url} -> {response.status_code}")
        return response

    # ── Session window ────────────────────────────────────────────

    def establish(self, session_cookie: str, token_value: str, source: str = "login") -> AuthenticityToken:
        """Record a successful login: store the cookie and the login token."""
        self.http.cookies.set(SESSION_COOKIE_NAME, session_cookie, domain=self.host, path="/")
        self.established_at = time.time()
        return self.issue_token(token_value, source)

    def issue_token(self, value: str, source: str = "") -> AuthenticityToken:
        """Bind *value* to the current session window and make it current."""
        self.token = AuthenticityToken(value=value, epoch=self.epoch, source=source)
        return self.token

    def require_current(self, token: AuthenticityToken) -> AuthenticityToken:
        """Raise ``StaleTokenError`` if *token* predates the last reset."""
        if token.epoch != self.epoch:
            raise StaleTokenError(token.epoch, self.epoch)
        return token

    def reset(self) -> None:
        """Drop cookies and token; tokens issued before this are stale."""
        self.http.cookies.clear()
        self.token = None
        self.established_at = None
        self.epoch += 1
        logger.info(f"[SESSION] Session for {self.base_url} reset (epoch {self.epoch})")

    def clone(self) -> "AdminSession":
        """Independent copy (own cookie jar) for use by another workflow."""
        http = _create_http_session(self.user_agent, self.verify_tls)
        http.headers.update(self.http.headers)
        http.adapters.update(self.http.adapters)
        http.cookies.update(self.http.cookies)
        twin = AdminSession(
            self.base_url,
            user_agent=self.user_agent,
            verify_tls=self.verify_tls,
            timeouts=self.timeouts,
            http=http,
        )
        twin.established_at = self.established_at
        if self.token is not None:
            twin.issue_token(self.token.value, self.token.source)
        return twin

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "AdminSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "established" if self.is_established else "anonymous"
        return f"<AdminSession {self.base_url} {state} epoch={self.epoch}>"
