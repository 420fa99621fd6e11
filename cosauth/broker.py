# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Credential broker: the single entry point for callers.

``CredentialBroker.authorize()`` ensures a valid temporary credential is
cached (fetching it through the federation endpoint on a miss) and signs
the requested storage operation with it.  The caller receives the
authorization string and session token, never the long-lived secret.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from cosauth.cache import CredentialCache
from cosauth.config import BrokerConfig
from cosauth.errors import CosAuthError, InvalidConfigurationError
from cosauth.federation import FederationClient
from cosauth.logging import SecretFilter
from cosauth.policy import build_policy
from cosauth.request_signing import sign_request
from cosauth.types import (
    AccessPolicy,
    AuthorizationBundle,
    SigningContext,
    TemporaryCredential,
)


logger = logging.getLogger(__name__)


class CredentialBroker:
    """Issues authorization bundles for direct-to-storage requests.

    Thread-safe: concurrent ``authorize()`` calls share one cached
    credential and trigger at most one federation fetch at a time.

    Attributes:
        config: Broker configuration.
    """

    def __init__(
        self,
        config: BrokerConfig,
        *,
        cache: CredentialCache | None = None,
        federation: FederationClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the broker.

        Args:
            config: Broker configuration.
            cache: Credential cache; a fresh in-memory one by default.
            federation: Federation client; built from *config* by default.
            clock: Time source for signing and cache validity.

        Raises:
            InvalidConfigurationError: If *config* is not a BrokerConfig.
        """
        if not isinstance(config, BrokerConfig):
            raise InvalidConfigurationError(
                f"Expected BrokerConfig, got {type(config).__name__}"
            )
        # Fail fast on a malformed bucket before any request arrives
        build_policy(config.bucket, config.region, config.allow_prefix)
        SecretFilter.register_secret(config.secret_key)

        self.config = config
        self._clock = clock
        if cache is None:
            cache = CredentialCache(
                safety_margin=config.safety_margin,
                clock=clock,
                wait_timeout=config.wait_timeout,
            )
        if federation is None:
            federation = FederationClient(
                config.secret_id,
                config.secret_key,
                proxy=config.proxy,
                timeout=config.timeout,
                verify=config.verify_ssl,
                clock=clock,
            )
        self._cache = cache
        self._federation = federation
        logger.debug(
            "Initialized credential broker: bucket=%s, region=%s",
            config.bucket,
            config.region,
        )

    def policy(self) -> AccessPolicy:
        """Build the access policy requested for each new credential."""
        return build_policy(
            self.config.bucket, self.config.region, self.config.allow_prefix
        )

    def _fetch_credential(self) -> TemporaryCredential:
        return self._federation.exchange(self.policy())

    def credential(self) -> TemporaryCredential:
        """Return a valid temporary credential, fetching it if needed.

        Raises:
            CosAuthError: Whatever the fetch raised, unchanged.
        """
        return self._cache.get_or_fetch(self._fetch_credential)

    def authorize(
        self, context: SigningContext | None = None
    ) -> AuthorizationBundle:
        """Authorize one storage operation.

        Args:
            context: Operation to sign.  Defaults to ``post /``, the
                browser POST-object upload.

        Returns:
            AuthorizationBundle for the caller.

        Raises:
            NetworkError: If the federation endpoint is unreachable.
            FederationProtocolError: If its response is malformed.
            CredentialExpiredOnIssue: If it issued an expired credential.
            CredentialFetchTimeout: If waiting on another fetch timed out.
            InvalidCredentialError: If the credential cannot sign.
        """
        if context is None:
            context = SigningContext()

        try:
            credential = self.credential()
            authorization = sign_request(
                credential,
                context,
                now=self._clock(),
                expires_in=self.config.signature_expires_in,
            )
        except CosAuthError as e:
            logger.warning(
                "Authorization failed at stage %s: %s: %s",
                e.stage,
                type(e).__name__,
                e,
            )
            raise

        logger.debug(
            "Authorized %s %s with credential %s",
            context.method.upper(),
            context.path,
            credential.tmp_secret_id,
        )
        return AuthorizationBundle(
            authorization=authorization,
            security_token=credential.session_token,
            bucket=self.config.bucket,
            region=self.config.region,
        )

    def invalidate(self) -> None:
        """Discard the cached credential so the next call refetches."""
        self._cache.invalidate()
