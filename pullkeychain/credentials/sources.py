"""Where credential documents come from: pull secrets and service accounts.

The keychain itself never talks to a cluster. Anything implementing
:class:`DocumentSource` can feed it; this module ships a dict-backed source
and one that reads Kubernetes manifests from disk.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from pullkeychain.credentials.dockercfg import (
    MalformedConfigError,
    parse,
    parse_docker_config_json,
)
from pullkeychain.credentials.index import CredentialIndex

logger = logging.getLogger(__name__)

SECRET_TYPE_DOCKERCFG = "kubernetes.io/dockercfg"
SECRET_TYPE_DOCKERCONFIGJSON = "kubernetes.io/dockerconfigjson"

DOCKERCFG_KEY = ".dockercfg"
DOCKERCONFIGJSON_KEY = ".dockerconfigjson"

# Secret type → (data key, parser).
_SECRET_PARSERS = {
    SECRET_TYPE_DOCKERCFG: (DOCKERCFG_KEY, parse),
    SECRET_TYPE_DOCKERCONFIGJSON: (DOCKERCONFIGJSON_KEY, parse_docker_config_json),
}


class RecordNotFoundError(LookupError):
    """Raised when a secret or service account does not exist."""


@dataclass(frozen=True)
class SecretRecord:
    """An already fetched secret. ``data`` values are raw (not base64) bytes."""

    name: str
    namespace: str = "default"
    type: str = SECRET_TYPE_DOCKERCONFIGJSON
    data: Mapping[str, bytes] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class ServiceAccountRecord:
    """A workload identity and the pull secrets attached to it, in order."""

    name: str
    namespace: str = "default"
    image_pull_secrets: tuple[str, ...] = ()


class DocumentSource(Protocol):
    """Lookup of secrets and service accounts by namespace and name."""

    def get_secret(self, namespace: str, name: str) -> SecretRecord:
        """Return the secret, or raise :class:`RecordNotFoundError`."""
        ...

    def get_service_account(self, namespace: str, name: str) -> ServiceAccountRecord:
        """Return the service account, or raise :class:`RecordNotFoundError`."""
        ...


def index_for_secret(secret: SecretRecord) -> CredentialIndex:
    """Parse the credential document held by a pull secret.

    Raises:
        MalformedConfigError: If the secret has an unsupported type, lacks
            its data key, or holds an undecodable document.
    """
    try:
        data_key, parser = _SECRET_PARSERS[secret.type]
    except KeyError:
        raise MalformedConfigError(
            f"Secret {secret.namespace}/{secret.name} has unsupported type {secret.type!r}"
        ) from None

    if data_key not in secret.data:
        raise MalformedConfigError(
            f"Secret {secret.namespace}/{secret.name} has no {data_key!r} key"
        )
    return parser(secret.data[data_key])


class InMemorySource:
    """:class:`DocumentSource` backed by plain dicts.

    Args:
        secrets: Secrets to serve.
        service_accounts: Service accounts to serve.
    """

    def __init__(
        self,
        secrets: Iterable[SecretRecord] = (),
        service_accounts: Iterable[ServiceAccountRecord] = (),
    ) -> None:
        self._secrets = {(s.namespace, s.name): s for s in secrets}
        self._service_accounts = {(sa.namespace, sa.name): sa for sa in service_accounts}

    def get_secret(self, namespace: str, name: str) -> SecretRecord:
        try:
            return self._secrets[(namespace, name)]
        except KeyError:
            raise RecordNotFoundError(f"Secret {namespace}/{name} not found") from None

    def get_service_account(self, namespace: str, name: str) -> ServiceAccountRecord:
        try:
            return self._service_accounts[(namespace, name)]
        except KeyError:
            raise RecordNotFoundError(f"ServiceAccount {namespace}/{name} not found") from None


class ManifestSource(InMemorySource):
    """:class:`DocumentSource` loaded from Kubernetes ``Secret``/``ServiceAccount`` manifests.

    Manifests may be multi-document YAML, JSON, or ``kind: List`` wrappers.
    Objects of any other kind are ignored.
    """

    @classmethod
    def from_file(cls, path: str | Path) -> ManifestSource:
        """Load manifests from a YAML or JSON file."""
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            try:
                return cls.from_objects([json.loads(text)])
            except json.JSONDecodeError as exc:
                raise MalformedConfigError(f"Cannot parse manifests in {path}: {exc}") from exc
        return cls.from_text(text)

    @classmethod
    def from_text(cls, text: str) -> ManifestSource:
        """Load manifests from YAML text (JSON is valid YAML too)."""
        try:
            documents = list(yaml.safe_load_all(text))
        except yaml.YAMLError as exc:
            raise MalformedConfigError(f"Cannot parse manifests: {exc}") from exc
        return cls.from_objects(documents)

    @classmethod
    def from_objects(cls, objects: Iterable[Any]) -> ManifestSource:
        secrets: list[SecretRecord] = []
        service_accounts: list[ServiceAccountRecord] = []
        for obj in _flatten_lists(objects):
            kind = obj.get("kind")
            if kind == "Secret":
                secrets.append(_secret_from_manifest(obj))
            elif kind == "ServiceAccount":
                service_accounts.append(_service_account_from_manifest(obj))
            else:
                logger.debug("Ignoring manifest of kind %s", kind)
        return cls(secrets, service_accounts)


def _flatten_lists(objects: Iterable[Any]) -> Iterable[dict[str, Any]]:
    for obj in objects:
        if not isinstance(obj, dict):
            continue
        if str(obj.get("kind") or "").endswith("List"):
            yield from _flatten_lists(obj.get("items") or [])
        else:
            yield obj


def _metadata(obj: dict[str, Any]) -> tuple[str, str]:
    meta = obj.get("metadata") or {}
    name = meta.get("name")
    if not name:
        raise MalformedConfigError(f"{obj.get('kind')} manifest has no metadata.name")
    return meta.get("namespace") or "default", name


def _secret_from_manifest(obj: dict[str, Any]) -> SecretRecord:
    namespace, name = _metadata(obj)
    data: dict[str, bytes] = {}
    for key, value in (obj.get("data") or {}).items():
        try:
            data[key] = base64.b64decode(value or "", validate=True)
        except (binascii.Error, TypeError) as exc:
            raise MalformedConfigError(
                f"Secret {namespace}/{name} key {key!r} is not valid base64: {exc}"
            ) from exc
    # stringData wins over data, as on the API server.
    for key, value in (obj.get("stringData") or {}).items():
        data[key] = str(value).encode("utf-8")

    return SecretRecord(
        name=name,
        namespace=namespace,
        type=obj.get("type") or "Opaque",
        data=data,
    )


def _service_account_from_manifest(obj: dict[str, Any]) -> ServiceAccountRecord:
    namespace, name = _metadata(obj)
    refs = obj.get("imagePullSecrets") or []
    return ServiceAccountRecord(
        name=name,
        namespace=namespace,
        image_pull_secrets=tuple(ref["name"] for ref in refs if ref.get("name")),
    )
