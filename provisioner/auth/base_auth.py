"""
Credentials
===========
Credential container shared by the login flow and the instance registry.

Credentials are resolved once (registry record, then ``{PREFIX}_USERNAME`` /
``{PREFIX}_PASSWORD`` environment variables) and never logged.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIXES = ("PROSBC",)


@dataclass
class Credentials:
    """Plain credential container — resolved once, used by the login flow."""
    username: str = ""
    password: str = field(default="", repr=False)
    extra: Dict[str, str] = field(default_factory=dict)
    """Extra fields (unused by ProSBC, kept for custom registries)."""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    def resolve(
        self,
        prefixes: Iterable[str] = DEFAULT_ENV_PREFIXES,
        environ: Optional[Dict[str, str]] = None,
    ) -> "Credentials":
        """Fill missing values from environment variables.

        Resolution order:
            1. Values already set on this object
            2. ``{PREFIX}_USERNAME`` / ``{PREFIX}_PASSWORD`` for each prefix
        """
        if self.is_complete:
            return self

        env = os.environ if environ is None else environ
        for prefix in prefixes:
            if not self.username:
                self.username = env.get(f"{prefix}_USERNAME", "")
            if not self.password:
                self.password = env.get(f"{prefix}_PASSWORD", "")

        if self.is_complete:
            logger.info("[AUTH] Credentials resolved from environment")
        return self
