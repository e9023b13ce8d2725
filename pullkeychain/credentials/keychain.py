"""Resolve authenticators from an ordered list of credential sources."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from pullkeychain.config import KeychainOptions
from pullkeychain.credentials.dockercfg import MalformedConfigError, parse
from pullkeychain.credentials.index import CredentialIndex
from pullkeychain.credentials.sources import (
    DocumentSource,
    RecordNotFoundError,
    SecretRecord,
    index_for_secret,
)
from pullkeychain.registry.auth import ANONYMOUS, Authenticator, authenticator_for
from pullkeychain.registry.parser import Target, parse_target

logger = logging.getLogger(__name__)


class Keychain:
    """Ordered credential sources plus an anonymous fallback.

    The first source with *any* credential applying to a target wins, even
    if a later source holds a more specific one. Sources are never merged.

    Args:
        indexes: One index per credential source, in precedence order.
            ``None`` stands for a source that contributed nothing.
        fallback: Returned when no source matches.
    """

    def __init__(
        self,
        indexes: Iterable[CredentialIndex | None] = (),
        fallback: Authenticator = ANONYMOUS,
    ) -> None:
        self._indexes: tuple[CredentialIndex, ...] = tuple(
            index if index is not None else CredentialIndex.empty() for index in indexes
        )
        self._fallback = fallback

    @property
    def indexes(self) -> tuple[CredentialIndex, ...]:
        return self._indexes

    @property
    def fallback(self) -> Authenticator:
        return self._fallback

    def __len__(self) -> int:
        return len(self._indexes)

    def resolve(self, target: str | Target) -> Authenticator:
        """Return the authenticator for *target*.

        Args:
            target: A registry host, a repository, or a :class:`Target`.

        Returns:
            The authenticator of the first matching source, or the fallback
            when no source has credentials for the target or the target
            cannot be parsed.
        """
        try:
            target = parse_target(target)
        except ValueError as exc:
            logger.debug("Unusable target %r, using fallback: %s", target, exc)
            return self._fallback
        for position, index in enumerate(self._indexes):
            credential = index.match(target)
            if credential is not None:
                logger.debug("Resolved %s from credential source #%d", target, position)
                return authenticator_for(credential)

        logger.debug("No credentials configured for %s, using fallback", target)
        return self._fallback


def build_resolver(
    indexes: Sequence[CredentialIndex | None],
    fallback: Authenticator = ANONYMOUS,
) -> Keychain:
    """Build a :class:`Keychain` over already parsed sources."""
    return Keychain(indexes, fallback)


def keychain_from_documents(
    documents: Iterable[bytes | str],
    fallback: Authenticator = ANONYMOUS,
) -> Keychain:
    """Parse raw credential documents and build a :class:`Keychain`.

    A document that fails to parse contributes nothing; it is logged and the
    remaining documents keep their order.
    """
    indexes: list[CredentialIndex] = []
    for position, document in enumerate(documents):
        try:
            indexes.append(parse(document))
        except MalformedConfigError as exc:
            logger.warning("Ignoring malformed credential source #%d: %s", position, exc)
    return Keychain(indexes, fallback)


def keychain_from_pull_secrets(
    secrets: Iterable[SecretRecord],
    fallback: Authenticator = ANONYMOUS,
) -> Keychain:
    """Build a :class:`Keychain` from already fetched pull secrets, in order.

    Secrets that cannot be parsed are logged and skipped.
    """
    indexes: list[CredentialIndex] = []
    for secret in secrets:
        try:
            indexes.append(index_for_secret(secret))
        except MalformedConfigError as exc:
            logger.warning("Ignoring pull secret %s/%s: %s", secret.namespace, secret.name, exc)
    return Keychain(indexes, fallback)


def new_keychain(
    source: DocumentSource,
    options: KeychainOptions | None = None,
    fallback: Authenticator = ANONYMOUS,
) -> Keychain:
    """Build a :class:`Keychain` for a workload identity.

    The explicitly named pull secrets come first, followed by those attached
    to the service account. A name listed twice keeps its first position.
    Missing secrets and a missing service account are logged and skipped.
    """
    options = options or KeychainOptions()
    names: list[str] = list(options.image_pull_secrets)

    try:
        account = source.get_service_account(options.namespace, options.service_account_name)
    except RecordNotFoundError as exc:
        logger.warning("Service account lookup failed: %s", exc)
    else:
        names.extend(account.image_pull_secrets)

    secrets: list[SecretRecord] = []
    for name in dict.fromkeys(names):
        try:
            secrets.append(source.get_secret(options.namespace, name))
        except RecordNotFoundError as exc:
            logger.warning("Pull secret lookup failed: %s", exc)
    return keychain_from_pull_secrets(secrets, fallback)
