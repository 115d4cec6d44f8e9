"""
Remote-procedure-first reads with a direct-table fallback.

Some deployments expose read helpers as remote procedures, others only have
the tables. A ``LookupChain`` runs the ``PrimaryLookup`` and switches to the
``FallbackLookup`` only when the backend reports the procedure as unavailable.
Any other backend error is a real failure and propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from regadmin.clients.backend_client import BackendUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimaryLookup:
    """Preferred read path, usually a remote procedure."""

    name: str
    fetch: Callable[[], Any]


@dataclass(frozen=True)
class FallbackLookup:
    """Read path used when the primary one is unavailable."""

    name: str
    fetch: Callable[[], Any]


@dataclass(frozen=True)
class LookupChain:
    primary: PrimaryLookup
    fallback: FallbackLookup

    def resolve(self) -> Any:
        try:
            return self.primary.fetch()
        except BackendUnavailableError as exc:
            logger.warning(
                "Primary lookup unavailable, using fallback",
                extra={
                    "primary": self.primary.name,
                    "fallback": self.fallback.name,
                    "reason": exc.message,
                },
            )
        return self.fallback.fetch()
