# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy for credential issuance and request signing.

Every exception carries a ``stage`` attribute naming where the failure
happened, so callers can log it without inspecting the message.  Messages
never include the long-lived secret key.
"""


class CosAuthError(Exception):
    """Base exception for all cosauth failures.

    Attributes:
        stage: Pipeline stage that failed (``config``, ``federation``,
            ``cache`` or ``signing``).
    """

    stage = "unknown"


class InvalidConfigurationError(CosAuthError):
    """Raised when secret, bucket or region configuration is missing or bad."""

    stage = "config"


class NetworkError(CosAuthError):
    """Raised when the federation endpoint cannot be reached.

    Retryable by the caller with backoff.
    """

    stage = "federation"


class FederationProtocolError(CosAuthError):
    """Raised on a non-2xx status or an unexpected response shape."""

    stage = "federation"


class CredentialExpiredOnIssue(CosAuthError):
    """Raised when the federation endpoint returns an expired credential."""

    stage = "federation"


class InvalidCredentialError(CosAuthError):
    """Raised when signing is attempted with an incomplete credential."""

    stage = "signing"


class CredentialFetchTimeout(CosAuthError):
    """Raised when a caller gives up waiting on an in-flight fetch."""

    stage = "cache"
