# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Temporary-credential broker for COS object storage.

Exchanges a long-lived key pair for short-lived, prefix-scoped credentials
and signs individual storage requests with them:
- Access policy construction (policy)
- Federation-token exchange (federation)
- Single-flight credential cache (cache)
- Per-request authorization signing (request_signing)
- Orchestration (CredentialBroker)
"""

from cosauth.broker import CredentialBroker
from cosauth.cache import CredentialCache, MemoryTTLStore, TTLStore
from cosauth.config import BrokerConfig
from cosauth.errors import (
    CosAuthError,
    CredentialExpiredOnIssue,
    CredentialFetchTimeout,
    FederationProtocolError,
    InvalidConfigurationError,
    InvalidCredentialError,
    NetworkError,
)
from cosauth.federation import FederationClient
from cosauth.policy import build_policy
from cosauth.request_signing import sign_request
from cosauth.types import (
    AccessPolicy,
    AuthorizationBundle,
    SigningContext,
    Statement,
    TemporaryCredential,
)


__all__ = [
    # broker
    "CredentialBroker",
    "BrokerConfig",
    # components
    "CredentialCache",
    "FederationClient",
    "MemoryTTLStore",
    "TTLStore",
    "build_policy",
    "sign_request",
    # types
    "AccessPolicy",
    "AuthorizationBundle",
    "SigningContext",
    "Statement",
    "TemporaryCredential",
    # errors
    "CosAuthError",
    "CredentialExpiredOnIssue",
    "CredentialFetchTimeout",
    "FederationProtocolError",
    "InvalidConfigurationError",
    "InvalidCredentialError",
    "NetworkError",
]
