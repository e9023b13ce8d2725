"""Tests for the keychain resolver and its builders."""

import base64
import json
import logging

import pytest

from pullkeychain.config import KeychainOptions
from pullkeychain.credentials.dockercfg import parse
from pullkeychain.credentials.keychain import (
    Keychain,
    build_resolver,
    keychain_from_documents,
    keychain_from_pull_secrets,
    new_keychain,
)
from pullkeychain.credentials.sources import (
    DOCKERCFG_KEY,
    DOCKERCONFIGJSON_KEY,
    SECRET_TYPE_DOCKERCFG,
    SECRET_TYPE_DOCKERCONFIGJSON,
    InMemorySource,
    SecretRecord,
    ServiceAccountRecord,
)
from pullkeychain.registry.auth import ANONYMOUS, Basic, Bearer
from pullkeychain.registry.parser import Target


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _doc(**entries: str) -> bytes:
    """Build a flat document from ``key=user:pass`` pairs (dots spelled ``__``)."""
    return json.dumps(
        {key.replace("__", "."): {"auth": _b64(creds)} for key, creds in entries.items()}
    ).encode("utf-8")


def _dockercfg_secret(name: str, document: dict, namespace: str = "ns") -> SecretRecord:
    return SecretRecord(
        name=name,
        namespace=namespace,
        type=SECRET_TYPE_DOCKERCFG,
        data={DOCKERCFG_KEY: json.dumps(document).encode("utf-8")},
    )


# ---------------------------------------------------------------------------
# Keychain.resolve
# ---------------------------------------------------------------------------


class TestResolve:
    """Test resolution across ordered sources."""

    def test_anonymous_fallback(self):
        """Test that a keychain without sources is anonymous."""
        keychain = Keychain()
        assert keychain.resolve("fake.registry.io") is ANONYMOUS

    def test_no_matching_entry_falls_back(self):
        """Test the fallback when no entry applies."""
        keychain = build_resolver([parse(_doc(r__io="u:p"))])
        assert keychain.resolve("other.io/img") is ANONYMOUS

    def test_custom_fallback(self):
        """Test a caller-supplied fallback."""
        fallback = Basic("default", "creds")
        keychain = build_resolver([parse(b"{}")], fallback=fallback)
        assert keychain.resolve("r.io") == fallback
        assert keychain.fallback == fallback

    def test_registry_and_repository_entries(self):
        """Test registry-wide and repository entries in one source."""
        document = json.dumps(
            {"r.io": {"auth": _b64("u:p")}, "r.io/ns/img": {"auth": _b64("v:q")}}
        )
        keychain = build_resolver([parse(document)])
        assert keychain.resolve("r.io") == Basic("u", "p")
        assert keychain.resolve("r.io/ns/img") == Basic("v", "q")
        assert keychain.resolve("r.io/other") == Basic("u", "p")

    def test_first_source_wins(self):
        """Test that the first source wins for the same registry."""
        keychain = build_resolver([parse(_doc(r__io="u1:p1")), parse(_doc(r__io="u2:p2"))])
        assert keychain.resolve("r.io") == Basic("u1", "p1")

    def test_first_source_wins_over_more_specific_later_source(self):
        """Test that a later, more specific source does not override the first."""
        first = parse(json.dumps({"r.io": {"auth": _b64("u1:p1")}}))
        second = parse(json.dumps({"r.io/ns/img": {"auth": _b64("u2:p2")}}))
        keychain = build_resolver([first, second])
        assert keychain.resolve("r.io/ns/img") == Basic("u1", "p1")

    def test_later_source_used_when_first_has_no_match(self):
        """Test falling through to a later source."""
        first = parse(json.dumps({"a.io": {"auth": _b64("a:a")}}))
        second = parse(json.dumps({"r.io": {"auth": _b64("r:r")}}))
        keychain = build_resolver([first, second])
        assert keychain.resolve("r.io/img") == Basic("r", "r")

    def test_none_source_is_empty(self):
        """Test that a missing source contributes nothing."""
        keychain = build_resolver([None, parse(_doc(r__io="u:p"))])
        assert len(keychain) == 2
        assert keychain.resolve("r.io") == Basic("u", "p")

    def test_token_credential(self):
        """Test resolving a registry token."""
        keychain = build_resolver([parse(json.dumps({"r.io": {"registrytoken": "tok"}}))])
        assert keychain.resolve(Target("r.io", "img")) == Bearer("tok")

    @pytest.mark.parametrize("prefix", ["", "http://", "https://"])
    def test_scheme_prefixed_keys(self, prefix):
        """Test that scheme-prefixed and bare keys resolve alike."""
        document = json.dumps(
            {
                f"{prefix}fake.scheme-registry.io": {"auth": _b64("foo:bar")},
                f"{prefix}fake.scheme-registry.io/more/specific": {"auth": _b64("very:specific")},
            }
        )
        keychain = build_resolver([parse(document)])
        assert keychain.resolve("fake.scheme-registry.io") == Basic("foo", "bar")
        assert keychain.resolve("fake.scheme-registry.io/more/specific") == Basic(
            "very", "specific"
        )

    @pytest.mark.parametrize(
        "key", ["https://index.docker.io/v1/", "index.docker.io", "docker.io"]
    )
    def test_docker_hub_alias(self, key):
        """Test that Docker Hub keys apply to bare image names."""
        keychain = build_resolver([parse(json.dumps({key: {"auth": _b64("foo:bar")}}))])
        assert keychain.resolve("nginx") == Basic("foo", "bar")
        assert keychain.resolve("docker.io/library/nginx") == Basic("foo", "bar")
        assert keychain.resolve("index.docker.io") == Basic("foo", "bar")

    @pytest.mark.parametrize("key", ["docker.io/nginx", "nginx", "docker.io/library/nginx"])
    def test_docker_hub_repository_key(self, key):
        """Test that repository-scoped Docker Hub keys match however the image is named."""
        keychain = build_resolver([parse(json.dumps({key: {"auth": _b64("u:p")}}))])
        assert keychain.resolve("docker.io/nginx") == Basic("u", "p")
        assert keychain.resolve("nginx:alpine") == Basic("u", "p")
        assert keychain.resolve(Target("docker.io", "nginx")) == Basic("u", "p")
        assert keychain.resolve("docker.io/other") is ANONYMOUS

    def test_host_with_port(self):
        """Test resolving an in-cluster registry addressed as ``host:port``."""
        keychain = build_resolver([parse(json.dumps({"registry:5000": {"auth": _b64("u:p")}}))])
        assert keychain.resolve("registry:5000") == Basic("u", "p")
        assert keychain.resolve("registry:5000/team/img") == Basic("u", "p")

    @pytest.mark.parametrize("target", ["", "https://", "///"])
    def test_unparseable_target_returns_fallback(self, target):
        """Test that resolve never raises, even for an empty reference."""
        fallback = Basic("default", "creds")
        keychain = build_resolver([parse(_doc(r__io="u:p"))], fallback=fallback)
        assert keychain.resolve(target) == fallback


# ---------------------------------------------------------------------------
# keychain_from_documents
# ---------------------------------------------------------------------------


class TestKeychainFromDocuments:
    """Test building a keychain from raw documents."""

    def test_malformed_source_skipped(self, caplog):
        """Test that an unparseable document is logged and skipped."""
        with caplog.at_level(logging.WARNING, logger="pullkeychain.credentials.keychain"):
            keychain = keychain_from_documents([b"{broken", _doc(r__io="u2:p2")])
        assert len(keychain) == 1
        assert keychain.resolve("r.io") == Basic("u2", "p2")
        assert "malformed credential source #0" in caplog.text

    def test_malformed_entry_skips_whole_source(self):
        """Test that one bad entry drops its whole source."""
        bad = json.dumps({"r.io": {"auth": _b64("u1:p1")}, "s.io": {"auth": "!!"}})
        keychain = keychain_from_documents([bad, _doc(r__io="u2:p2")])
        assert keychain.resolve("r.io") == Basic("u2", "p2")

    def test_all_malformed(self):
        """Test that only malformed sources leave the fallback."""
        keychain = keychain_from_documents([b"[]", b"nope"])
        assert keychain.resolve("r.io") is ANONYMOUS


# ---------------------------------------------------------------------------
# keychain_from_pull_secrets
# ---------------------------------------------------------------------------


class TestKeychainFromPullSecrets:
    """Test building a keychain from pull secrets."""

    def test_from_pull_secrets(self):
        """Test pull secrets with scheme, repository and Docker Hub keys."""
        secrets = [
            _dockercfg_secret(
                "secret",
                {
                    "fake.registry.io": {"auth": _b64("foo:bar")},
                    "fake.registry.io/more/specific": {"auth": _b64("very:specific")},
                    "http://fake.scheme-registry.io": {"auth": _b64("foo:bar")},
                    "https://fake.scheme-registry.io/more/specific": {
                        "auth": _b64("very:specific")
                    },
                    "https://index.docker.io/v1/": {"auth": _b64("foo:bar")},
                },
            ),
            # A later secret for the same registry must not be used.
            _dockercfg_secret(
                "secret-2", {"fake.registry.io": {"auth": _b64("anotherUser:anotherPass")}}
            ),
        ]
        keychain = keychain_from_pull_secrets(secrets)

        assert keychain.resolve("fake.registry.io") == Basic("foo", "bar")
        assert keychain.resolve("fake.registry.io/more/specific") == Basic("very", "specific")
        assert keychain.resolve("fake.scheme-registry.io") == Basic("foo", "bar")
        assert keychain.resolve("fake.scheme-registry.io/more/specific") == Basic(
            "very", "specific"
        )
        assert keychain.resolve("nginx") == Basic("foo", "bar")

    def test_dockerconfigjson_secret(self):
        """Test a ``kubernetes.io/dockerconfigjson`` secret."""
        secret = SecretRecord(
            name="secret",
            type=SECRET_TYPE_DOCKERCONFIGJSON,
            data={
                DOCKERCONFIGJSON_KEY: json.dumps(
                    {"auths": {"r.io": {"username": "foo", "password": "bar"}}}
                ).encode("utf-8")
            },
        )
        keychain = keychain_from_pull_secrets([secret])
        assert keychain.resolve("r.io") == Basic("foo", "bar")

    def test_unusable_secrets_skipped(self, caplog):
        """Test that secrets of the wrong type or without data are skipped."""
        secrets = [
            SecretRecord(name="opaque", type="Opaque", data={"token": b"x"}),
            SecretRecord(name="empty", type=SECRET_TYPE_DOCKERCFG),
            _dockercfg_secret("good", {"r.io": {"auth": _b64("u:p")}}),
        ]
        with caplog.at_level(logging.WARNING):
            keychain = keychain_from_pull_secrets(secrets)
        assert len(keychain) == 1
        assert keychain.resolve("r.io") == Basic("u", "p")
        assert "default/opaque" in caplog.text
        assert "default/empty" in caplog.text


# ---------------------------------------------------------------------------
# new_keychain
# ---------------------------------------------------------------------------


class TestNewKeychain:
    """Test building a keychain for a workload identity."""

    def test_default_service_account_without_secrets(self):
        """Test a service account with no attached secrets."""
        source = InMemorySource(service_accounts=[ServiceAccountRecord("default", "default")])
        keychain = new_keychain(source)
        assert keychain.resolve("fake.registry.io") is ANONYMOUS

    def test_attached_service_account(self):
        """Test secrets attached to a service account."""
        source = InMemorySource(
            secrets=[
                _dockercfg_secret(
                    "secret",
                    {"fake.registry.io": {"username": "foo", "password": "bar"}},
                )
            ],
            service_accounts=[ServiceAccountRecord("svcacct", "ns", ("secret",))],
        )
        keychain = new_keychain(
            source, KeychainOptions(namespace="ns", service_account_name="svcacct")
        )
        assert keychain.resolve("fake.registry.io") == Basic("foo", "bar")

    def test_explicit_pull_secrets(self):
        """Test explicitly named pull secrets."""
        source = InMemorySource(
            secrets=[
                _dockercfg_secret(
                    "secret",
                    {
                        "fake.registry.io": {"auth": _b64("foo:bar")},
                        "fake.registry.io/more/specific": {"auth": _b64("very:specific")},
                    },
                )
            ],
            service_accounts=[ServiceAccountRecord("default", "ns")],
        )
        keychain = new_keychain(
            source, KeychainOptions(namespace="ns", image_pull_secrets=("secret",))
        )
        assert keychain.resolve("fake.registry.io") == Basic("foo", "bar")
        assert keychain.resolve("fake.registry.io/more/specific") == Basic("very", "specific")

    def test_explicit_secrets_precede_attached(self):
        """Test that named secrets come before attached ones."""
        source = InMemorySource(
            secrets=[
                _dockercfg_secret("attached", {"r.io": {"auth": _b64("sa:sa")}}),
                _dockercfg_secret("explicit", {"r.io": {"auth": _b64("ex:ex")}}),
            ],
            service_accounts=[ServiceAccountRecord("default", "ns", ("attached", "explicit"))],
        )
        keychain = new_keychain(
            source, KeychainOptions(namespace="ns", image_pull_secrets=("explicit",))
        )
        assert len(keychain) == 2
        assert keychain.resolve("r.io") == Basic("ex", "ex")

    def test_missing_records_skipped(self, caplog):
        """Test that missing secrets and service accounts are skipped."""
        source = InMemorySource(
            secrets=[_dockercfg_secret("present", {"r.io": {"auth": _b64("u:p")}})],
        )
        with caplog.at_level(logging.WARNING):
            keychain = new_keychain(
                source,
                KeychainOptions(namespace="ns", image_pull_secrets=("missing", "present")),
            )
        assert keychain.resolve("r.io") == Basic("u", "p")
        assert "ServiceAccount ns/default not found" in caplog.text
        assert "Secret ns/missing not found" in caplog.text
