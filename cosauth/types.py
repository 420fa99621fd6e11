# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Type definitions shared across the broker.

Provides the core value types: AccessPolicy, Statement, TemporaryCredential,
SigningContext, and AuthorizationBundle.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class Effect(Enum):
    """Policy statement effect."""

    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Statement:
    """A single access policy statement.

    Attributes:
        actions: Ordered action names (``name/cos:PutObject`` etc.).
        effect: Whether the statement allows or denies the actions.
        resources: Resource URNs the statement applies to.
        principal: Principal mapping; the wildcard ``{"qcs": ["*"]}``.
    """

    actions: tuple[str, ...]
    effect: Effect
    resources: tuple[str, ...]
    principal: dict[str, list[str]] = field(
        default_factory=lambda: {"qcs": ["*"]}
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape used in policy JSON."""
        return {
            "action": list(self.actions),
            "effect": self.effect.value,
            "principal": {k: list(v) for k, v in self.principal.items()},
            "resource": list(self.resources),
        }


@dataclass(frozen=True)
class AccessPolicy:
    """Policy document handed to the federation endpoint.

    Attributes:
        statements: Policy statements.
        version: Policy language version.
    """

    statements: tuple[Statement, ...]
    version: str = "2.0"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape used in policy JSON."""
        return {
            "version": self.version,
            "statement": [s.to_dict() for s in self.statements],
        }


@dataclass(frozen=True)
class TemporaryCredential:
    """Short-lived credential issued by the federation endpoint.

    Attributes:
        tmp_secret_id: Temporary key ID (``q-ak`` in signatures).
        tmp_secret_key: Temporary secret key used to derive sign keys.
        session_token: Token the client sends as ``x-cos-security-token``.
        issued_at: Unix timestamp when the credential was received.
        expires_at: Unix timestamp when the credential expires.
    """

    tmp_secret_id: str
    tmp_secret_key: str
    session_token: str
    issued_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """True if the credential has already expired at *now*."""
        return self.expires_at <= now

    def is_valid(self, now: float, safety_margin: float) -> bool:
        """True if the credential is usable at *now* with the given margin."""
        return now < self.expires_at - safety_margin

    def __repr__(self) -> str:
        return (
            f"TemporaryCredential(tmp_secret_id={self.tmp_secret_id!r}, "
            f"issued_at={self.issued_at}, expires_at={self.expires_at})"
        )


@dataclass(frozen=True)
class SigningContext:
    """One storage operation to be authorized.

    The defaults describe a browser POST-object upload to the bucket root.
    ``query`` and ``headers`` are copied into read-only mappings, so a
    context is hashable and later changes to the caller's dicts do not
    leak into it.

    Attributes:
        method: HTTP method (case-insensitive).
        path: Object path; a leading ``/`` is added when missing.
        query: Query parameters included in the signature.
        headers: Headers included in the signature.
    """

    method: str = "post"
    path: str = "/"
    query: Mapping[str, str | None] = field(default_factory=dict)
    headers: Mapping[str, str | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", MappingProxyType(dict(self.query)))
        object.__setattr__(
            self, "headers", MappingProxyType(dict(self.headers))
        )

    def __hash__(self) -> int:
        return hash(
            (
                self.method,
                self.path,
                frozenset(self.query.items()),
                frozenset(self.headers.items()),
            )
        )


@dataclass(frozen=True)
class AuthorizationBundle:
    """Everything a remote uploader needs to sign its own request.

    Attributes:
        authorization: Value for the ``Authorization`` header.
        security_token: Session token of the temporary credential.
        bucket: Bucket the credential is scoped to.
        region: Bucket region.
    """

    authorization: str
    security_token: str
    bucket: str
    region: str

    def to_dict(self) -> dict[str, str]:
        """Serialize to the JSON shape consumed by client SDKs."""
        return {
            "Authorization": self.authorization,
            "XCosSecurityToken": self.security_token,
            "bucket": self.bucket,
            "region": self.region,
        }
