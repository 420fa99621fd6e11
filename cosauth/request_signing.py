# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Per-request COS authorization signing with a temporary credential.

Produces the ``Authorization`` header value a client sends to storage:

1. ``SignKey = HMAC-SHA1(tmpSecretKey, q-key-time)`` (hex)
2. ``FormatString = method\\npath\\nquery\\nheaders\\n``
3. ``StringToSign = sha1\\nq-sign-time\\nSHA1(FormatString)\\n``
4. ``Signature = HMAC-SHA1(SignKey, StringToSign)`` (hex)

Pure computation; no network I/O.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Mapping

from cosauth.canonical import canonical_key_list, canonical_param_string
from cosauth.errors import InvalidCredentialError
from cosauth.types import SigningContext, TemporaryCredential


SIGN_ALGORITHM = "sha1"

#: Default signature validity window, in seconds.
DEFAULT_EXPIRES_IN = 600

# Order of fields in the Authorization value
AUTHORIZATION_FIELDS = (
    "q-sign-algorithm",
    "q-ak",
    "q-sign-time",
    "q-key-time",
    "q-header-list",
    "q-url-param-list",
    "q-signature",
)


def _hmac_sha1_hex(key: str, msg: str) -> str:
    """HMAC-SHA1 helper returning a hex digest."""
    return hmac.new(
        key.encode("utf-8"), msg.encode("utf-8"), hashlib.sha1
    ).hexdigest()


def normalize_path(path: str) -> str:
    """Ensure the path starts with ``/`` (empty becomes ``/``)."""
    if not path.startswith("/"):
        return "/" + path
    return path


def sign_key(secret_key: str, key_time: str) -> str:
    """Derive the hex sign key from the temporary secret key."""
    return _hmac_sha1_hex(secret_key, key_time)


def build_format_string(
    method: str,
    path: str,
    query: Mapping[str, object],
    headers: Mapping[str, object],
) -> str:
    """Build the format string over the normalized request description."""
    return "\n".join(
        [
            method.lower(),
            normalize_path(path),
            canonical_param_string(query),
            canonical_param_string(headers),
            "",
        ]
    )


def build_string_to_sign(sign_time: str, format_string: str) -> str:
    """Build the string to sign from the sign time and format string."""
    return "\n".join(
        [
            SIGN_ALGORITHM,
            sign_time,
            hashlib.sha1(format_string.encode("utf-8")).hexdigest(),
            "",
        ]
    )


def _check_credential(credential: TemporaryCredential) -> None:
    missing = [
        name
        for name in ("tmp_secret_id", "tmp_secret_key", "session_token")
        if not getattr(credential, name, None)
    ]
    if missing:
        raise InvalidCredentialError(
            f"Cannot sign with incomplete credential: missing "
            f"{', '.join(missing)}"
        )


def sign_request(
    credential: TemporaryCredential,
    context: SigningContext,
    *,
    now: float | None = None,
    expires_in: int = DEFAULT_EXPIRES_IN,
) -> str:
    """Compute the ``Authorization`` value for one storage operation.

    Args:
        credential: Temporary credential to sign with.
        context: Operation to authorize.
        now: Current unix time; defaults to ``time.time()``.  Fixing it
            makes the output reproducible.
        expires_in: Signature validity window in seconds.

    Returns:
        ``&``-joined ``key=value`` authorization string.

    Raises:
        InvalidCredentialError: If the credential lacks id, key or token.
        ValueError: If *expires_in* is not positive.
    """
    _check_credential(credential)
    if expires_in < 1:
        raise ValueError(f"Signature validity must be >= 1s: {expires_in}")

    if now is None:
        now = time.time()
    start = int(now) - 1
    sign_time = f"{start};{start + expires_in}"
    key_time = sign_time

    format_string = build_format_string(
        context.method, context.path, context.query, context.headers
    )
    string_to_sign = build_string_to_sign(sign_time, format_string)
    signature = _hmac_sha1_hex(
        sign_key(credential.tmp_secret_key, key_time), string_to_sign
    )

    values = {
        "q-sign-algorithm": SIGN_ALGORITHM,
        "q-ak": credential.tmp_secret_id,
        "q-sign-time": sign_time,
        "q-key-time": key_time,
        "q-header-list": canonical_key_list(context.headers),
        "q-url-param-list": canonical_key_list(context.query),
        "q-signature": signature,
    }
    return "&".join(f"{name}={values[name]}" for name in AUTHORIZATION_FIELDS)


def parse_authorization(value: str) -> dict[str, str]:
    """Split an authorization string back into its fields.

    Args:
        value: Authorization string produced by ``sign_request``.

    Returns:
        Mapping of field name to value.  Unknown fields are kept.
    """
    fields: dict[str, str] = {}
    for part in value.split("&"):
        name, _, field_value = part.partition("=")
        fields[name] = field_value
    return fields
