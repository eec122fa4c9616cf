"""
Page Navigator
==============
Locates the NAP section of the Web Configuration Tool.

Appliance firmware versions mount the SIP/NAP pages under different paths,
so navigation tries a bank of candidate paths in order and stops at the
first page that mentions a NAP section marker.  A failing path is logged and
skipped; when nothing matches the last page fetched is used as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .auth.session_store import AdminSession
from .errors import TransportError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Candidate path banks (tried in order)
# ---------------------------------------------------------------------------

SECTION_MARKERS: List[str] = ["nap", "NAP", "Network Access Point"]

SIP_SECTION_PATHS: List[str] = [
    "/configurations",
    "/configurations/1/sip",
    "/configurations/1/sip/naps",
    "/sip/naps",
    "/sip_cfg",
    "/configurations/1",
]

NAP_LIST_PATHS: List[str] = [
    "/naps",
    "/configurations/1/sip/naps",
    "/sip/naps",
    "/sip_naps",
]


@dataclass
class PageVisit:
    """A fetched page and whether it carried a section marker."""
    path: str
    status_code: int
    body: str
    url: str
    matched: bool

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class PageNavigator:
    """Walks candidate paths until one looks like the NAP section."""

    def __init__(self, markers: Sequence[str] = tuple(SECTION_MARKERS)):
        self.markers = list(markers)

    def has_marker(self, body: str) -> bool:
        return any(marker in body for marker in self.markers)

    def navigate_to(
        self,
        session: AdminSession,
        candidate_paths: Sequence[str],
        *,
        timeout_kind: str = "navigation",
    ) -> PageVisit:
        """Return the first matching page, else the last page fetched.

        Raises:
            TransportError: no candidate path could be fetched at all.
        """
        last: Optional[PageVisit] = None
        last_error: Optional[TransportError] = None

        for path in candidate_paths:
            try:
                response = session.get(path, timeout_kind=timeout_kind)
            except TransportError as exc:
                logger.warning(f"[NAV] {path} failed: {exc}")
                last_error = exc
                continue

            body = response.text or ""
            matched = response.status_code < 400 and self.has_marker(body)
            visit = PageVisit(
                path=path,
                status_code=response.status_code,
                body=body,
                url=response.url or session.url(path),
                matched=matched,
            )
            if matched:
                logger.info(f"[NAV] Reached NAP section at {path}")
                return visit
            logger.debug(f"[NAV] {path} (HTTP {response.status_code}) has no section marker")
            last = visit

        if last is None:
            raise TransportError(
                f"None of {len(candidate_paths)} candidate pages could be fetched: {last_error}",
                url=session.base_url,
            )
        logger.info(f"[NAV] No section marker found — using last page {last.path}")
        return last

    def visit_sip_section(self, session: AdminSession) -> PageVisit:
        return self.navigate_to(session, SIP_SECTION_PATHS)

    def open_nap_list(self, session: AdminSession) -> PageVisit:
        return self.navigate_to(session, NAP_LIST_PATHS, timeout_kind="list")
