"""
Token Resolver
==============
Finds the Rails ``authenticity_token`` in server-rendered ProSBC pages.

The appliance embeds the token in different places depending on the page
(hidden form field, ``<meta>`` tag, inline script) and some pages also carry
script-built decoys such as ``encodeURIComponent(window._token)``.  The
lookup is an ordered cascade of named strategies; every candidate from every
strategy goes through the same validator, and the first valid candidate wins.

Cascade:
    1. ``hidden_field``     — ``<input name="authenticity_token" value=...>``
    2. ``meta_tag``         — ``<meta name="csrf-token" content=...>``
    3. ``script_variable``  — ``authenticity_token = "..."`` in ``<script>``
    4. ``hidden_input``     — any hidden input with a long value
    5. ``base64_fallback``  — any 40+ char base64url-like run in the page

Usage::

    resolver = TokenResolver()
    token = resolver.resolve(session, page=html)   # AuthenticityToken
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from .auth.session_store import AdminSession, AuthenticityToken
from .errors import TokenNotFound, TransportError
from .utils import make_soup, mask_secret

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

MIN_TOKEN_LENGTH = 11

_TOKEN_CHARSET = re.compile(r'^[A-Za-z0-9+/=_-]+$')

# Fragments that only appear in script source, never in a real token
_CODE_MARKERS = re.compile(
    r'encodeURIComponent|function|\b(?:var|let|const)\b|window\.|document\.|\s\+\s|[()]'
)


def is_code_like(candidate: str) -> bool:
    return bool(_CODE_MARKERS.search(candidate))


def is_valid_token(candidate: Optional[str]) -> bool:
    """Shared predicate applied to every candidate of every strategy."""
    if not candidate or len(candidate) < MIN_TOKEN_LENGTH:
        return False
    if is_code_like(candidate):
        return False
    return bool(_TOKEN_CHARSET.match(candidate))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenStrategy:
    """A named candidate source.  ``extract`` yields raw candidates in order."""
    name: str
    extract: Callable[[str, BeautifulSoup], Iterator[str]]


def _regex_candidates(patterns: Sequence[re.Pattern], text: str) -> Iterator[str]:
    for pattern in patterns:
        for match in pattern.finditer(text):
            yield html_lib.unescape(match.group(1)).strip()


_HIDDEN_FIELD_PATTERNS = [
    re.compile(r'name="authenticity_token"[^>]*value="([^"]+)"', re.IGNORECASE),
    re.compile(r"name='authenticity_token'[^>]*value='([^']+)'", re.IGNORECASE),
    re.compile(r'authenticity_token"[^>]*value=\'([^\']+)\'', re.IGNORECASE),
    re.compile(r'<input[^>]*value="([^"]+)"[^>]*name="authenticity_token"', re.IGNORECASE),
]

_HIDDEN_FIELD_SELECTORS = [
    'input[name="authenticity_token"]',
    'input[name="csrf_token"]',
    'input[type="hidden"][name*="token"]',
]


def _hidden_field(page: str, soup: BeautifulSoup) -> Iterator[str]:
    yield from _regex_candidates(_HIDDEN_FIELD_PATTERNS, page)
    for selector in _HIDDEN_FIELD_SELECTORS:
        for element in soup.select(selector):
            yield (element.get("value") or "").strip()


_META_PATTERNS = [
    re.compile(r'<meta[^>]*name="csrf-token"[^>]*content="([^"]+)"', re.IGNORECASE),
    re.compile(r'<meta[^>]*content="([^"]+)"[^>]*name="csrf-token"', re.IGNORECASE),
    re.compile(r'<meta[^>]*name="authenticity_token"[^>]*content="([^"]+)"', re.IGNORECASE),
    re.compile(r'<meta[^>]*content="([^"]+)"[^>]*name="authenticity_token"', re.IGNORECASE),
]


def _meta_tag(page: str, soup: BeautifulSoup) -> Iterator[str]:
    yield from _regex_candidates(_META_PATTERNS, page)
    for selector in ('meta[name="csrf-token"]', 'meta[name="authenticity_token"]'):
        for element in soup.select(selector):
            yield (element.get("content") or "").strip()


_SCRIPT_PATTERNS = [
    re.compile(r'authenticity_token[^=\n]*=\s*["\']([^"\']+)["\']', re.IGNORECASE),
    re.compile(r'csrf_token[^=\n]*=\s*["\']([^"\']+)["\']', re.IGNORECASE),
    re.compile(r'window\.csrfToken\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE),
    re.compile(r'token[^=\n]*=\s*["\']([A-Za-z0-9+/=]{20,})["\']', re.IGNORECASE),
]


def _script_variable(page: str, soup: BeautifulSoup) -> Iterator[str]:
    for script in soup.find_all("script"):
        yield from _regex_candidates(_SCRIPT_PATTERNS, script.string or script.get_text() or "")


def _hidden_input(page: str, soup: BeautifulSoup) -> Iterator[str]:
    for element in soup.select('input[type="hidden"]'):
        value = (element.get("value") or "").strip()
        if len(value) > 20:
            yield value


_BASE64_RUN = re.compile(r'[A-Za-z0-9+/_-]{40,}={0,2}')


def _base64_fallback(page: str, soup: BeautifulSoup) -> Iterator[str]:
    for match in _BASE64_RUN.finditer(page):
        yield match.group(0)


DEFAULT_STRATEGIES: List[TokenStrategy] = [
    TokenStrategy("hidden_field", _hidden_field),
    TokenStrategy("meta_tag", _meta_tag),
    TokenStrategy("script_variable", _script_variable),
    TokenStrategy("hidden_input", _hidden_input),
    TokenStrategy("base64_fallback", _base64_fallback),
]


def extract_token(
    page: str, strategies: Sequence[TokenStrategy] = DEFAULT_STRATEGIES
) -> Optional[Tuple[str, str]]:
    """Run the cascade over one page.

    Returns:
        ``(token, strategy_name)`` for the first valid candidate, or None.
    """
    if not page:
        return None
    soup = make_soup(page)
    for strategy in strategies:
        for candidate in strategy.extract(page, soup):
            if is_valid_token(candidate):
                logger.debug(f"[TOKEN] {strategy.name} -> {mask_secret(candidate)}")
                return candidate, strategy.name
            if candidate:
                logger.debug(f"[TOKEN] {strategy.name} rejected candidate {mask_secret(candidate)}")
    return None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

NEW_NAP_PATHS = ["/naps/new"]
LOGIN_PATH = "/login"


class TokenResolver:
    """Walks a page sequence until the cascade yields a valid token.

    Page order: the supplied page, then each of *fallback_paths*; when every
    page comes back empty the login page is fetched fresh and the cascade
    runs once more before ``TokenNotFound``.
    """

    def __init__(
        self,
        strategies: Sequence[TokenStrategy] = DEFAULT_STRATEGIES,
        *,
        fallback_paths: Sequence[str] = tuple(NEW_NAP_PATHS),
        login_path: str = LOGIN_PATH,
    ):
        self.strategies = list(strategies)
        self.fallback_paths = list(fallback_paths)
        self.login_path = login_path

    def extract(self, page: str) -> Optional[Tuple[str, str]]:
        return extract_token(page, self.strategies)

    def resolve(self, session: AdminSession, page: Optional[str] = None) -> AuthenticityToken:
        """Return a token bound to *session*'s current window."""
        if page:
            found = self.extract(page)
            if found:
                return self._issue(session, found, "supplied page")

        for path in self.fallback_paths:
            found = self._extract_from(session, path)
            if found:
                return self._issue(session, found, path)

        logger.info("[TOKEN] No token on workflow pages — re-fetching login page")
        found = self._extract_from(session, self.login_path)
        if found:
            return self._issue(session, found, self.login_path)

        raise TokenNotFound(
            "No valid authenticity_token found on "
            f"{', '.join(['supplied page'] + self.fallback_paths + [self.login_path])}"
        )

    def _extract_from(self, session: AdminSession, path: str) -> Optional[Tuple[str, str]]:
        try:
            response = session.get(path)
        except TransportError as exc:
            logger.warning(f"[TOKEN] Could not fetch {path}: {exc}")
            return None
        if response.status_code >= 400:
            logger.debug(f"[TOKEN] {path} returned HTTP {response.status_code}")
            return None
        return self.extract(response.text)

    def _issue(self, session: AdminSession, found: Tuple[str, str], where: str) -> AuthenticityToken:
        value, strategy = found
        token = session.issue_token(value, source=strategy)
        logger.info(f"[TOKEN] Found via {strategy} on {where}: {token}")
        return token
