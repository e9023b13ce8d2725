"""Keychain options and their environment overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ENV_NAMESPACE = "PULLKEYCHAIN_NAMESPACE"
ENV_SERVICE_ACCOUNT = "PULLKEYCHAIN_SERVICE_ACCOUNT"
ENV_IMAGE_PULL_SECRETS = "PULLKEYCHAIN_IMAGE_PULL_SECRETS"


@dataclass(frozen=True)
class KeychainOptions:
    """Which workload identity and pull secrets a keychain is built from.

    Attributes:
        namespace: Namespace holding the service account and secrets.
        service_account_name: Service account whose attached pull secrets
            are consulted after the explicit ones.
        image_pull_secrets: Secret names consulted first, in order.
    """

    namespace: str = "default"
    service_account_name: str = "default"
    image_pull_secrets: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> KeychainOptions:
        """Build options from ``PULLKEYCHAIN_*`` environment variables.

        Order of precedence:
        1. ``PULLKEYCHAIN_NAMESPACE`` / ``PULLKEYCHAIN_SERVICE_ACCOUNT``
        2. Defaults (``default`` / ``default``)

        ``PULLKEYCHAIN_IMAGE_PULL_SECRETS`` is a comma-separated list.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        namespace = env.get(ENV_NAMESPACE, "").strip() or defaults.namespace
        service_account = env.get(ENV_SERVICE_ACCOUNT, "").strip() or defaults.service_account_name
        secrets = tuple(
            name.strip() for name in env.get(ENV_IMAGE_PULL_SECRETS, "").split(",") if name.strip()
        )

        logger.debug(
            "Keychain options from environment: namespace=%s service_account=%s secrets=%s",
            namespace,
            service_account,
            secrets,
        )
        return cls(
            namespace=namespace,
            service_account_name=service_account,
            image_pull_secrets=secrets,
        )
