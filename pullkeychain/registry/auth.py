"""Authenticators handed back to callers of the keychain."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credential:
    """Decoded credential material for one registry or repository.

    Both wire shapes (plaintext ``username``/``password`` and the encoded
    ``auth`` field) are decoded into this single representation.
    """

    username: str = ""
    password: str = field(default="", repr=False)
    identity_token: str = field(default="", repr=False)
    registry_token: str = field(default="", repr=False)

    @property
    def is_empty(self) -> bool:
        return not (self.username or self.password or self.identity_token or self.registry_token)


class Authenticator(ABC):
    """Something that can authorize requests against a registry."""

    @abstractmethod
    def authorization(self) -> Credential:
        """Return the credential material this authenticator carries."""

    @abstractmethod
    def header(self) -> str | None:
        """Return the value of an HTTP ``Authorization`` header, or ``None``."""


@dataclass(frozen=True)
class Anonymous(Authenticator):
    """No authentication at all."""

    def authorization(self) -> Credential:
        return Credential()

    def header(self) -> str | None:
        return None


@dataclass(frozen=True)
class Basic(Authenticator):
    """HTTP basic authentication, optionally carrying an OAuth identity token."""

    username: str
    password: str = field(repr=False)
    identity_token: str = field(default="", repr=False)

    def authorization(self) -> Credential:
        return Credential(
            username=self.username,
            password=self.password,
            identity_token=self.identity_token,
        )

    def header(self) -> str | None:
        raw = f"{self.username}:{self.password}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")


@dataclass(frozen=True)
class Bearer(Authenticator):
    """A pre-issued registry bearer token."""

    token: str = field(repr=False)

    def authorization(self) -> Credential:
        return Credential(registry_token=self.token)

    def header(self) -> str | None:
        return f"Bearer {self.token}"


#: Shared anonymous authenticator used as the default fallback.
ANONYMOUS = Anonymous()


def authenticator_for(credential: Credential) -> Authenticator:
    """Wrap a :class:`Credential` in the matching authenticator type.

    A registry token wins over username/password; an empty credential is
    anonymous.
    """
    if credential.registry_token:
        return Bearer(credential.registry_token)
    if credential.is_empty:
        return ANONYMOUS
    return Basic(
        username=credential.username,
        password=credential.password,
        identity_token=credential.identity_token,
    )
