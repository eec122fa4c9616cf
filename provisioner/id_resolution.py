"""
ID Resolution Engine
====================
Recovers the server-assigned NAP id after a create submission.

The appliance never returns the id in a structured form.  Depending on the
firmware and on any reverse proxy in front of it, a create either redirects
to ``/naps/{id}/edit``, renders the NAP list, or comes back opaque.  The
response is first classified into a tagged outcome, then an ordered chain of
read-only strategies runs until one yields a plausible id:

    1. ``redirect_location``  — parse the ``Location`` header
    2. ``rendered_listing``   — edit link in the row naming the NAP
    3. ``canonical_listing``  — re-fetch the NAP list and repeat 2
    4. ``effective_url``      — the request's final URL, when an upstream
                                proxy already followed the redirect

Each strategy only reads, so the whole chain can be retried after a delay.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import requests
from bs4 import BeautifulSoup

from .auth.session_store import AdminSession
from .errors import IdResolutionAmbiguous, TransportError
from .models import NapSummary
from .navigator import NAP_LIST_PATHS, PageNavigator
from .utils import clean_text, location_path, make_soup

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tagged response outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Redirected:
    status_code: int
    location: str


@dataclass(frozen=True)
class Rendered:
    status_code: int
    body: str
    url: str


@dataclass(frozen=True)
class Opaque:
    status_code: int
    url: str


ResponseOutcome = Union[Redirected, Rendered, Opaque]


def classify_response(response: requests.Response) -> ResponseOutcome:
    """Tag a create response as Redirected, Rendered or Opaque."""
    status = response.status_code
    url = response.url or ""
    location = response.headers.get("Location", "")
    if 300 <= status < 400:
        if location:
            return Redirected(status, location)
        return Opaque(status, url)
    body = response.text or ""
    if body.strip():
        return Rendered(status, body, url)
    return Opaque(status, url)


# ---------------------------------------------------------------------------
# Pure parsers
# ---------------------------------------------------------------------------

_PLAUSIBLE_ID = re.compile(r'^\d{1,10}$')

# Ordered: NAP-specific first, then any trailing numeric segment
_DETAIL_PATH_PATTERNS = [
    re.compile(r'/naps/(\d+)(?:/edit)?/?$'),
    re.compile(r'/naps/(\d+)(?:/[^/]*)?/?$'),
    re.compile(r'/(\d+)(?:/edit)?/?$'),
]

_EDIT_HREF = re.compile(r'/(\d+)/edit(?:[/?#]|$)')
_NAP_HREF = re.compile(r'/naps/(\d+)(?:[/?#]|$)')

EDIT_LINK_SELECTOR = 'a.edit_link, a[href*="/naps/"][href*="/edit"]'


def is_plausible_id(candidate: Optional[str]) -> bool:
    """Digits only, 1-10 characters, greater than zero."""
    if candidate is None:
        return False
    candidate = str(candidate)
    return bool(_PLAUSIBLE_ID.match(candidate)) and int(candidate) > 0


def id_from_path(
    url: str, proxy_prefix: str = "/api", patterns: Sequence[re.Pattern] = tuple(_DETAIL_PATH_PATTERNS)
) -> Optional[str]:
    """Parse a NAP id from a detail URL or redirect target."""
    path = location_path(url, proxy_prefix)
    for pattern in patterns:
        match = pattern.search(path)
        if match and is_plausible_id(match.group(1)):
            return match.group(1)
    return None


def _id_from_href(href: str) -> Optional[str]:
    for pattern in (_EDIT_HREF, _NAP_HREF):
        match = pattern.search(href or "")
        if match and is_plausible_id(match.group(1)):
            return match.group(1)
    return None


def _row_ids(row) -> List[str]:
    ids = []
    for anchor in row.find_all("a", href=True):
        found = _id_from_href(anchor["href"])
        if found:
            ids.append(found)
    return ids


def _row_names_exactly(row, name: str) -> bool:
    for cell in row.find_all(["td", "th", "a"]):
        if clean_text(cell.get_text()) == name:
            return True
    return False


def id_from_listing(page: Union[str, BeautifulSoup], name: str) -> Optional[str]:
    """Edit-link id from the table row naming *name*.

    Only rows with a cell whose text equals *name* count; a row for
    ``carrier-10`` never answers for ``carrier-1``.  Among matching rows the
    last one in document order wins.
    """
    if not name:
        return None
    soup = make_soup(page) if isinstance(page, str) else page
    rows = [row for row in soup.find_all("tr") if _row_names_exactly(row, name)]
    for row in reversed(rows):
        ids = _row_ids(row)
        if ids:
            return ids[-1]
    return None


def parse_nap_list(page: str) -> List[NapSummary]:
    """All ``{id, name}`` pairs linked from a NAP list page, in page order."""
    soup = make_soup(page)
    seen = set()
    naps = []
    for anchor in soup.select(EDIT_LINK_SELECTOR):
        href = anchor.get("href", "")
        match = re.search(r'/naps/(\d+)/edit', href)
        name = clean_text(anchor.get_text())
        if not match or not name or match.group(1) in seen:
            continue
        seen.add(match.group(1))
        naps.append(NapSummary(id=match.group(1), name=name))
    return naps


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

@dataclass
class IdResolution:
    entity_id: str
    strategy: str
    attempt: int


Strategy = Callable[[AdminSession, ResponseOutcome, str], Optional[str]]


class IdResolver:
    """Runs the id strategy chain, retrying it in full after a delay."""

    def __init__(
        self,
        navigator: Optional[PageNavigator] = None,
        *,
        list_paths: Sequence[str] = tuple(NAP_LIST_PATHS),
        proxy_prefix: str = "/api",
        retry_delay_s: float = 1.5,
        retry_attempts: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            navigator:      Navigator used to re-fetch the canonical list.
            list_paths:     Candidate NAP list paths.
            proxy_prefix:   Reverse-proxy prefix stripped from locations.
            retry_delay_s:  Fixed pause before each extra pass.
            retry_attempts: Number of extra passes after the first.
            sleep:          Injected for tests.
        """
        self.navigator = navigator or PageNavigator()
        self.list_paths = list(list_paths)
        self.proxy_prefix = proxy_prefix
        self.retry_delay_s = retry_delay_s
        self.retry_attempts = max(0, retry_attempts)
        self._sleep = sleep
        self.strategies: List[Tuple[str, Strategy]] = [
            ("redirect_location", self._from_redirect),
            ("rendered_listing", self._from_rendered),
            ("canonical_listing", self._from_canonical_listing),
            ("effective_url", self._from_effective_url),
        ]

    def resolve(
        self, session: AdminSession, response: Union[requests.Response, ResponseOutcome], name: str
    ) -> IdResolution:
        """Return the created NAP's id.

        Raises:
            IdResolutionAmbiguous: every strategy failed on every attempt.
        """
        outcome = response if isinstance(response, (Redirected, Rendered, Opaque)) else classify_response(response)
        total = 1 + self.retry_attempts
        for attempt in range(1, total + 1):
            if attempt > 1:
                logger.info(f"[ID] Retrying id lookup in {self.retry_delay_s}s (attempt {attempt}/{total})")
                self._sleep(self.retry_delay_s)
            for label, strategy in self.strategies:
                entity_id = strategy(session, outcome, name)
                if entity_id:
                    logger.info(f"[ID] NAP \"{name}\" has id {entity_id} (via {label})")
                    return IdResolution(entity_id=entity_id, strategy=label, attempt=attempt)
        logger.warning(f"[ID] Could not determine id of NAP \"{name}\"")
        raise IdResolutionAmbiguous(name, attempts=total)

    # ── Strategies ────────────────────────────────────────────────

    def _from_redirect(self, session: AdminSession, outcome: ResponseOutcome, name: str) -> Optional[str]:
        if isinstance(outcome, Redirected):
            return id_from_path(outcome.location, self.proxy_prefix)
        return None

    def _from_rendered(self, session: AdminSession, outcome: ResponseOutcome, name: str) -> Optional[str]:
        if isinstance(outcome, Rendered):
            return id_from_listing(outcome.body, name)
        return None

    def _from_canonical_listing(self, session: AdminSession, outcome: ResponseOutcome, name: str) -> Optional[str]:
        try:
            visit = self.navigator.navigate_to(session, self.list_paths, timeout_kind="list")
        except TransportError as exc:
            logger.warning(f"[ID] NAP list unavailable: {exc}")
            return None
        if not visit.ok:
            return None
        return id_from_listing(visit.body, name)

    def _from_effective_url(self, session: AdminSession, outcome: ResponseOutcome, name: str) -> Optional[str]:
        if isinstance(outcome, Redirected) or not outcome.url:
            return None
        return id_from_path(outcome.url, self.proxy_prefix, _DETAIL_PATH_PATTERNS[:2])
