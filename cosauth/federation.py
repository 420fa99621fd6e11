# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Federation-token exchange against the STS endpoint.

Exchanges the long-lived key pair plus an access policy for a temporary
credential.  The request is a signed GET:

1. Parameters (``Action``, ``Nonce``, ``Region``, ``SecretId``,
   ``Timestamp``, ``durationSeconds``, ``name``, ``policy``) are sorted by
   key and joined as ``key=value`` pairs.
2. The signature input is ``GET`` + domain + path + ``?`` + that string,
   URL-decoded once.
3. The signature is the base64 of the raw HMAC-SHA1 digest keyed with the
   long-lived secret key, appended as the ``Signature`` parameter.

This is a different algorithm from the per-request signature computed in
``cosauth.request_signing``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import math
import random
import time
import urllib.parse
from collections.abc import Callable
from typing import Any

import httpx

from cosauth.canonical import canonical_query_string
from cosauth.errors import (
    CredentialExpiredOnIssue,
    FederationProtocolError,
    NetworkError,
)
from cosauth.logging import SecretFilter
from cosauth.policy import policy_to_json
from cosauth.types import AccessPolicy, TemporaryCredential


logger = logging.getLogger(__name__)

FEDERATION_DOMAIN = "sts.api.qcloud.com"
FEDERATION_PATH = "/v2/index.php"
FEDERATION_URL = f"https://{FEDERATION_DOMAIN}{FEDERATION_PATH}"

FEDERATION_ACTION = "GetFederationToken"

#: Lifetime requested for temporary credentials, in seconds.
DURATION_SECONDS = 7200

#: Federated user name sent with every request.
FEDERATION_NAME = "cos"

#: Inclusive nonce range.  The nonce only disambiguates replays within the
#: timestamp window, so a non-cryptographic generator is sufficient.
NONCE_RANGE = (10000, 20000)

_DEFAULT_TIMEOUT_SECONDS = 10.0


def _form_encode(value: str) -> str:
    """Form-urlencode a value (space becomes ``+``)."""
    return urllib.parse.quote_plus(value, safe="")


def build_federation_params(
    secret_id: str, policy: AccessPolicy, *, now: float, nonce: int
) -> dict[str, str | int]:
    """Assemble the unsigned federation request parameters.

    Args:
        secret_id: Long-lived key ID.
        policy: Access policy to scope the credential with.
        now: Current unix time.
        nonce: Random integer in ``NONCE_RANGE``.

    Returns:
        Parameter mapping (without ``Signature``).
    """
    return {
        "Action": FEDERATION_ACTION,
        "Nonce": nonce,
        "Region": "",
        "SecretId": secret_id,
        "Timestamp": int(now) - 1,
        "durationSeconds": DURATION_SECONDS,
        "name": FEDERATION_NAME,
        "policy": _form_encode(policy_to_json(policy)),
    }


def federation_signature(
    params: dict[str, str | int], secret_key: str, method: str = "GET"
) -> str:
    """Compute the federation request signature.

    Args:
        params: Request parameters, excluding ``Signature``.
        secret_key: Long-lived secret key.
        method: HTTP method of the request.

    Returns:
        Base64-encoded HMAC-SHA1 signature (not URL-encoded).
    """
    source = (
        f"{method}{FEDERATION_DOMAIN}{FEDERATION_PATH}?"
        f"{canonical_query_string(params)}"
    )
    # The server hashes the decoded form of the request line
    source = urllib.parse.unquote_plus(source)
    digest = hmac.new(
        secret_key.encode("utf-8"), source.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def build_federation_url(
    secret_id: str,
    secret_key: str,
    policy: AccessPolicy,
    *,
    now: float,
    nonce: int,
) -> str:
    """Build the fully signed federation request URL."""
    params = build_federation_params(secret_id, policy, now=now, nonce=nonce)
    params["Signature"] = _form_encode(federation_signature(params, secret_key))
    return f"{FEDERATION_URL}?{canonical_query_string(params)}"


def _describe_failure(payload: dict[str, Any]) -> str:
    """Summarize server-provided ``code``/``message`` for error messages."""
    parts = []
    if "code" in payload:
        parts.append(f"code={payload['code']}")
    if payload.get("message"):
        parts.append(f"message={payload['message']}")
    return ", ".join(parts) if parts else "no error details"


def parse_federation_response(
    payload: object, now: float
) -> TemporaryCredential:
    """Convert a decoded federation response into a credential.

    Expected shape::

        {"code": 0, "message": "",
         "data": {"credentials": {"tmpSecretId": ..., "tmpSecretKey": ...,
                                  "sessionToken": ...},
                  "expiredTime": 1700000000}}

    Args:
        payload: Decoded JSON body.
        now: Current unix time, recorded as ``issued_at``.

    Returns:
        The issued TemporaryCredential.

    Raises:
        FederationProtocolError: If the payload does not match the shape
            or ``expiredTime`` is not a finite number.
        CredentialExpiredOnIssue: If ``expiredTime`` is not in the future.
    """
    if not isinstance(payload, dict):
        raise FederationProtocolError(
            f"Federation response is not a JSON object: "
            f"{type(payload).__name__}"
        )

    data = payload.get("data")
    if not isinstance(data, dict) or not data:
        raise FederationProtocolError(
            f"Federation response has no credential data "
            f"({_describe_failure(payload)})"
        )

    credentials = data.get("credentials")
    if not isinstance(credentials, dict):
        raise FederationProtocolError(
            "Federation response data has no 'credentials' object"
        )

    fields: dict[str, str] = {}
    for name in ("tmpSecretId", "tmpSecretKey", "sessionToken"):
        value = credentials.get(name)
        if not isinstance(value, str) or not value:
            raise FederationProtocolError(
                f"Federation response credentials missing '{name}'"
            )
        fields[name] = value

    try:
        expires_at = float(data["expiredTime"])
    except KeyError:
        raise FederationProtocolError(
            "Federation response data missing 'expiredTime'"
        ) from None
    except (TypeError, ValueError) as e:
        raise FederationProtocolError(
            f"Federation response 'expiredTime' is not numeric: "
            f"{data['expiredTime']!r}"
        ) from e

    if not math.isfinite(expires_at):
        raise FederationProtocolError(
            f"Federation response 'expiredTime' is not finite: "
            f"{data['expiredTime']!r}"
        )

    if expires_at <= now:
        raise CredentialExpiredOnIssue(
            f"Federation endpoint returned a credential that expired at "
            f"{int(expires_at)} (now {int(now)})"
        )

    # Only the current credential's secrets are tracked for redaction
    SecretFilter.replace_secrets(
        SecretFilter.TEMPORARY,
        (fields["tmpSecretKey"], fields["sessionToken"]),
    )

    return TemporaryCredential(
        tmp_secret_id=fields["tmpSecretId"],
        tmp_secret_key=fields["tmpSecretKey"],
        session_token=fields["sessionToken"],
        issued_at=now,
        expires_at=expires_at,
    )


class FederationClient:
    """Issues signed federation-token requests over HTTPS.

    Certificate verification is always on unless explicitly disabled by
    the caller.

    Attributes:
        secret_id: Long-lived key ID.
        proxy: Outbound proxy URL, or None for a direct connection.
        timeout: Request timeout in seconds.
        verify: Whether TLS certificates are verified.

    A custom ``transport`` (for example ``httpx.MockTransport``) replaces
    the network layer; proxy and verification settings then have no
    effect.
    """

    def __init__(
        self,
        secret_id: str,
        secret_key: str,
        *,
        proxy: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        verify: bool = True,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.secret_id = secret_id
        self._secret_key = secret_key
        self.proxy = proxy
        self.timeout = timeout
        self.verify = verify
        self._clock = clock
        self._rng = rng or random.Random()
        self._transport = transport
        SecretFilter.register_secret(secret_key)

    def exchange(self, policy: AccessPolicy) -> TemporaryCredential:
        """Exchange the long-lived key and *policy* for a credential.

        Args:
            policy: Access policy the credential is restricted to.

        Returns:
            A freshly issued TemporaryCredential.

        Raises:
            NetworkError: If the endpoint cannot be reached.
            FederationProtocolError: On a non-2xx status or a malformed body.
            CredentialExpiredOnIssue: If the credential is already expired.
        """
        now = self._clock()
        nonce = self._rng.randint(*NONCE_RANGE)
        url = build_federation_url(
            self.secret_id, self._secret_key, policy, now=now, nonce=nonce
        )

        logger.debug(
            "Requesting federation token: secret_id=%s, nonce=%d, proxy=%s",
            self.secret_id,
            nonce,
            self.proxy or "none",
        )
        try:
            with httpx.Client(
                timeout=self.timeout,
                proxy=self.proxy,
                verify=self.verify,
                transport=self._transport,
            ) as client:
                response = client.get(url)
        except httpx.TransportError as e:
            raise NetworkError(
                f"Federation endpoint unreachable: {type(e).__name__}: {e}"
            ) from e

        if not response.is_success:
            raise FederationProtocolError(
                f"Federation endpoint returned HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise FederationProtocolError(
                "Federation endpoint returned a non-JSON body"
            ) from e

        credential = parse_federation_response(payload, now)
        logger.info(
            "Issued temporary credential %s, expires at %d",
            credential.tmp_secret_id,
            int(credential.expires_at),
        )
        return credential
