"""pullkeychain — resolve registry credentials from cluster pull secrets."""

from pullkeychain.config import KeychainOptions
from pullkeychain.credentials.dockercfg import MalformedConfigError, parse, parse_docker_config_json
from pullkeychain.credentials.index import CredentialEntry, CredentialIndex, MatchKey
from pullkeychain.credentials.keychain import (
    Keychain,
    build_resolver,
    keychain_from_documents,
    keychain_from_pull_secrets,
    new_keychain,
)
from pullkeychain.credentials.sources import (
    InMemorySource,
    ManifestSource,
    RecordNotFoundError,
    SecretRecord,
    ServiceAccountRecord,
)
from pullkeychain.registry.auth import (
    ANONYMOUS,
    Anonymous,
    Authenticator,
    Basic,
    Bearer,
    Credential,
    authenticator_for,
)
from pullkeychain.registry.parser import DEFAULT_REGISTRY, Target, normalize_registry, parse_target

__version__ = "0.1.0"

__all__ = [
    "ANONYMOUS",
    "DEFAULT_REGISTRY",
    "Anonymous",
    "Authenticator",
    "Basic",
    "Bearer",
    "Credential",
    "CredentialEntry",
    "CredentialIndex",
    "InMemorySource",
    "Keychain",
    "KeychainOptions",
    "MalformedConfigError",
    "ManifestSource",
    "MatchKey",
    "RecordNotFoundError",
    "SecretRecord",
    "ServiceAccountRecord",
    "Target",
    "authenticator_for",
    "build_resolver",
    "keychain_from_documents",
    "keychain_from_pull_secrets",
    "new_keychain",
    "normalize_registry",
    "parse",
    "parse_docker_config_json",
    "parse_target",
]
