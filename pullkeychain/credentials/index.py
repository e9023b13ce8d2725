"""Lookup index over the entries of one credential document."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from pullkeychain.registry.auth import Credential
from pullkeychain.registry.parser import Target, parse_target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchKey:
    """Normalized ``(registry, path)`` pair a credential applies to.

    An empty :attr:`path` makes the entry registry-wide.
    """

    registry: str
    path: str = ""

    def covers(self, target: Target) -> bool:
        """Return whether this key applies to *target*.

        The path must be a whole-segment prefix of the target repository, so
        ``r.io/ns`` covers ``r.io/ns/img`` but not ``r.io/nsx``.
        """
        if self.registry != target.registry:
            return False
        if not self.path:
            return True
        repo = target.repository
        return repo == self.path or repo.startswith(self.path + "/")

    def __str__(self) -> str:
        return f"{self.registry}/{self.path}" if self.path else self.registry


@dataclass(frozen=True)
class CredentialEntry:
    """A credential together with the key it was configured under."""

    key: MatchKey
    credential: Credential


class CredentialIndex:
    """Read-only index of the credentials parsed from one document.

    Args:
        entries: Entries in document order.
    """

    def __init__(self, entries: Iterable[CredentialEntry] = ()) -> None:
        self._entries: tuple[CredentialEntry, ...] = tuple(entries)

    @classmethod
    def empty(cls) -> CredentialIndex:
        """Return an index without entries; it never matches."""
        return cls()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CredentialEntry]:
        return iter(self._entries)

    def __repr__(self) -> str:
        keys = ", ".join(str(entry.key) for entry in self._entries)
        return f"CredentialIndex([{keys}])"

    def match(self, target: str | Target) -> Credential | None:
        """Return the most specific credential for *target*, or ``None``.

        Among entries covering the target, the one with the longest path
        wins; registry-wide entries have the shortest path and so only apply
        when nothing more specific does. On equal paths the first entry in
        document order is kept.
        """
        target = parse_target(target)

        best: CredentialEntry | None = None
        for entry in self._entries:
            if not entry.key.covers(target):
                continue
            if best is None or len(entry.key.path) > len(best.key.path):
                best = entry

        if best is None:
            return None
        logger.debug("Matched %s against credential key %s", target, best.key)
        return best.credential
