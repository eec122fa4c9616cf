"""
Utility Functions
URL normalization, HTML parsing and small helpers shared by the provisioner.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Choose the best available HTML parser; prefer lxml for speed,
# fall back to the stdlib parser if lxml is not installed.
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"
    logger.info("lxml not installed — using html.parser (slower but functional)")


def make_soup(html: str) -> BeautifulSoup:
    """Parse *html* with the preferred parser."""
    return BeautifulSoup(html or "", _BS_PARSER)


def normalize_base_url(url: str) -> str:
    """
    Normalize an appliance base URL.

    Adds ``https://`` when no scheme is given and strips trailing slashes::

        normalize_base_url("sbc.example.com:12358/")  -> "https://sbc.example.com:12358"
    """
    if not url:
        raise ValueError("Base URL is required")
    url = url.strip()
    if not re.match(r'^https?://', url, re.IGNORECASE):
        url = f"https://{url}"
    return url.rstrip('/')


def location_path(location: str, proxy_prefix: str = "/api") -> str:
    """
    Reduce a redirect target to its path.

    Strips scheme and host, the reverse-proxy prefix (``/api/naps/5`` ->
    ``/naps/5``) and any query string or fragment.
    """
    if not location:
        return ""
    parsed = urlparse(location.strip())
    path = parsed.path or ""
    if proxy_prefix:
        marker = proxy_prefix.rstrip('/') + '/'
        idx = path.find(marker)
        if idx != -1:
            path = path[idx + len(marker) - 1:]
    return path


def clean_text(text: Optional[str]) -> str:
    """Clean and normalize text content."""
    if not text:
        return ""

    # Replace multiple whitespace with single space
    text = re.sub(r'\s+', ' ', text)

    return text.strip()


def mask_secret(value: Optional[str], keep: int = 10) -> str:
    """Truncate a token for logging; never log the full value."""
    if not value:
        return "<none>"
    if len(value) <= keep:
        return value[:3] + "..."
    return value[:keep] + "..."
