"""Decode registry credential documents (``.dockercfg`` / ``.dockerconfigjson``)."""

from __future__ import annotations

import base64
import binascii
import functools
import json
import logging
from importlib import resources
from typing import Any

import jsonschema

from pullkeychain.credentials.index import CredentialEntry, CredentialIndex, MatchKey
from pullkeychain.registry.auth import Credential
from pullkeychain.registry.parser import split_key

logger = logging.getLogger(__name__)

_DOCKERCFG_SCHEMA = "dockercfg.schema.json"
_DOCKERCONFIGJSON_SCHEMA = "dockerconfigjson.schema.json"


class MalformedConfigError(ValueError):
    """Raised when a credential document or one of its entries cannot be decoded."""


def parse(data: bytes | str) -> CredentialIndex:
    """Parse a flat credential document into a :class:`CredentialIndex`.

    The document is a JSON object keyed by registry or repository URLs::

        {
            "r.io": {"auth": "dTpw"},
            "https://r.io/ns/img": {"username": "v", "password": "q"}
        }

    Args:
        data: Raw document bytes (UTF-8) or text.

    Returns:
        The index of every entry that carries credential material.

    Raises:
        MalformedConfigError: If the document, or any single entry in it,
            cannot be decoded. No partial index is produced.
    """
    document = _load_document(data, _DOCKERCFG_SCHEMA)
    return _build_index(document)


def parse_docker_config_json(data: bytes | str) -> CredentialIndex:
    """Parse a ``config.json`` style document, reading only its ``auths`` section.

    Raises:
        MalformedConfigError: If the document cannot be decoded.
    """
    document = _load_document(data, _DOCKERCONFIGJSON_SCHEMA)
    auths = document.get("auths") or {}
    _validate(auths, _DOCKERCFG_SCHEMA)
    return _build_index(auths)


# ------------------------------------------------------------------
# Internal
# ------------------------------------------------------------------


def _load_document(data: bytes | str, schema_file: str) -> dict[str, Any]:
    """Decode JSON text and validate it against *schema_file*."""
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedConfigError(f"Credential document is not valid UTF-8: {exc}") from exc
    try:
        document = json.loads(data)
    except json.JSONDecodeError as exc:
        raise MalformedConfigError(f"Credential document is not valid JSON: {exc}") from exc

    _validate(document, schema_file)
    return document  # type: ignore[no-any-return]


def _validate(document: Any, schema_file: str) -> None:
    schema = _load_schema(schema_file)
    try:
        jsonschema.validate(instance=document, schema=schema)
    except jsonschema.ValidationError as exc:
        raise MalformedConfigError(
            f"Credential document failed schema validation: {exc.message}"
        ) from exc


@functools.lru_cache(maxsize=None)
def _load_schema(schema_file: str) -> dict[str, Any]:
    """Load a JSON Schema file from the ``pullkeychain.schemas`` package, once."""
    schema_ref = resources.files("pullkeychain.schemas").joinpath(schema_file)
    schema_text = schema_ref.read_text(encoding="utf-8")
    return json.loads(schema_text)  # type: ignore[no-any-return]


def _build_index(document: dict[str, Any]) -> CredentialIndex:
    entries: list[CredentialEntry] = []
    for raw_key, value in document.items():
        registry, path = split_key(raw_key)
        if not registry:
            raise MalformedConfigError(f"Credential key {raw_key!r} has no registry host")

        credential = _decode_entry(raw_key, value)
        if credential.is_empty:
            logger.debug("Skipping credential key %s: no credential material", raw_key)
            continue
        entries.append(CredentialEntry(MatchKey(registry, path), credential))

    logger.debug("Parsed credential document with %d entries", len(entries))
    return CredentialIndex(entries)


def _decode_entry(key: str, value: dict[str, Any]) -> Credential:
    """Resolve one entry's alternative shapes into a single :class:`Credential`.

    An ``auth`` field takes precedence over plaintext ``username``/``password``.
    """
    username = value.get("username", "")
    password = value.get("password", "")
    registry_token = value.get("registrytoken", "")
    identity_token = value.get("identitytoken", "")

    auth = value.get("auth", "")
    if auth:
        decoded = _decode_auth(key, auth)
        if ":" in decoded:
            username, password = decoded.split(":", 1)
        else:
            # Not a user:pass pair, treat it as an opaque token.
            registry_token = registry_token or decoded

    return Credential(
        username=username,
        password=password,
        identity_token=identity_token,
        registry_token=registry_token,
    )


def _decode_auth(key: str, auth: str) -> str:
    """Decode the base64 ``auth`` field; missing padding is tolerated."""
    padded = auth.strip() + "=" * (-len(auth.strip()) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MalformedConfigError(f"Cannot decode auth field for {key!r}: {exc}") from exc
