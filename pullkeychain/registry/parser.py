"""Parse registry keys and image references into normalized match targets."""

from __future__ import annotations

import re
from dataclasses import dataclass

#: Host that unqualified image references (``nginx``) resolve to.
DEFAULT_REGISTRY = "registry-1.docker.io"

# Well-known Docker Hub hosts, all equivalent to the default registry.
_REGISTRY_ALIASES: dict[str, str] = {
    "index.docker.io": DEFAULT_REGISTRY,
    "docker.io": DEFAULT_REGISTRY,
    "hub.docker.com": DEFAULT_REGISTRY,
}

# Legacy API version suffix found on Docker Hub keys, e.g. ``https://index.docker.io/v1/``.
_VERSION_PATH_RE = re.compile(r"^v[0-9]+$")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


@dataclass(frozen=True)
class Target:
    """Resource that credentials are requested for.

    Attributes:
        registry: Normalized registry host (e.g. ``registry-1.docker.io``).
        repository: Repository path (e.g. ``library/nginx``), empty for a
            registry-wide lookup.
    """

    registry: str
    repository: str = ""

    def __str__(self) -> str:
        if self.repository:
            return f"{self.registry}/{self.repository}"
        return self.registry


def normalize_registry(host: str) -> str:
    """Return the canonical form of a registry host.

    Hosts are compared case-insensitively, and every Docker Hub alias maps to
    :data:`DEFAULT_REGISTRY`.
    """
    host = host.strip().lower()
    return _REGISTRY_ALIASES.get(host, host)


def strip_scheme(value: str) -> str:
    """Remove a leading ``scheme://`` prefix, if any."""
    return _SCHEME_RE.sub("", value.strip(), count=1)


def split_key(key: str) -> tuple[str, str]:
    """Split a credential document key into a normalized ``(registry, path)`` pair.

    Keys go through the same normalization as targets, so a key and a
    reference naming the same resource compare equal.

    Examples::

        "https://r.io/ns/img"          → ("r.io", "ns/img")
        "r.io/"                        → ("r.io", "")
        "https://index.docker.io/v1/"  → ("registry-1.docker.io", "")
        "docker.io/nginx"              → ("registry-1.docker.io", "library/nginx")

    A key without a host (``/ns/img``) yields an empty registry.
    """
    value = strip_scheme(key)
    if not value or value.startswith("/"):
        return "", value.strip("/")
    return _split_reference(value.rstrip("/"), drop_version=True)


def parse_target(ref: str | Target) -> Target:
    """Parse a registry host, repository or image reference into a :class:`Target`.

    Supported formats:

    * ``myregistry.example.com`` / ``localhost:5000`` / ``registry:5000``  (bare registry)
    * ``myregistry.example.com/org/image:tag``
    * ``https://myregistry.example.com/org``
    * ``nginx`` / ``nginx:alpine``  (bare image name, assumes Docker Hub)
    * ``nginxinc/nginx-unprivileged``

    Args:
        ref: The reference string, or an already parsed :class:`Target`.

    Returns:
        A :class:`Target` whose registry and repository are normalized.

    Raises:
        ValueError: If the reference is empty.
    """
    if isinstance(ref, Target):
        registry = normalize_registry(ref.registry)
        repo = ref.repository.strip("/")
        if registry == DEFAULT_REGISTRY:
            repo = _docker_hub_repository(repo)
        return Target(registry, repo)

    value = strip_scheme(ref).strip("/")
    if not value:
        raise ValueError(f"Cannot parse an empty reference: {ref!r}")

    registry, repo = _split_reference(value)
    return Target(registry, repo)


def _split_reference(value: str, *, drop_version: bool = False) -> tuple[str, str]:
    """Split a scheme-less reference into a normalized ``(registry, repository)``."""
    head, sep, rest = value.partition("/")
    if sep and _looks_like_host(head):
        registry, repo = normalize_registry(head), _strip_tag(rest)
    elif not sep and _looks_like_bare_host(head):
        registry, repo = normalize_registry(head), ""
    else:
        # Otherwise assume Docker Hub.
        registry, repo = DEFAULT_REGISTRY, _strip_tag(value)

    if registry == DEFAULT_REGISTRY:
        if drop_version and _VERSION_PATH_RE.match(repo):
            repo = ""
        repo = _docker_hub_repository(repo)
    return registry, repo


def _docker_hub_repository(repo: str) -> str:
    # Official images live under library/ on Docker Hub.
    if repo and "/" not in repo:
        return "library/" + repo
    return repo


def _looks_like_host(component: str) -> bool:
    """Heuristic: a component with a dot or a port, or ``localhost``, is a registry host."""
    return "." in component or ":" in component or component == "localhost"


def _looks_like_bare_host(component: str) -> bool:
    """A lone component is a host with a dot, a numeric port, or as ``localhost``.

    ``nginx:alpine`` is an image with a tag, ``registry:5000`` is a host.
    """
    host, sep, port = component.partition(":")
    return "." in host or host == "localhost" or (bool(sep) and port.isdigit())


def _strip_tag(repo: str) -> str:
    """Drop a trailing ``:tag`` and/or ``@digest`` from a repository path."""
    repo = repo.split("@", 1)[0]
    name, sep, tag = repo.rpartition(":")
    if sep and "/" not in tag:
        repo = name
    return repo.strip("/")
