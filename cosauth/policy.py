# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Least-privilege access policy for temporary credentials.

The policy grants object-level and multipart-upload actions on exactly two
resources: the bucket root and the configured allow-prefix.  There are no
deny rules and no bucket-admin actions.
"""

from __future__ import annotations

import json
import urllib.parse

from cosauth.errors import InvalidConfigurationError
from cosauth.types import AccessPolicy, Effect, Statement


#: Actions granted to the temporary credential, in policy order.
ALLOWED_ACTIONS: tuple[str, ...] = (
    # Simple object operations
    "name/cos:PutObject",
    "name/cos:PostObject",
    "name/cos:AppendObject",
    "name/cos:GetObject",
    "name/cos:HeadObject",
    "name/cos:OptionsObject",
    "name/cos:PutObjectCopy",
    "name/cos:PostObjectRestore",
    # Multipart upload
    "name/cos:InitiateMultipartUpload",
    "name/cos:ListMultipartUploads",
    "name/cos:ListParts",
    "name/cos:UploadPart",
    "name/cos:CompleteMultipartUpload",
    "name/cos:AbortMultipartUpload",
)

# Characters the resource URN syntax requires unescaped
_URN_LITERALS = "/*!()~"


def resource_url_encode(prefix: str) -> str:
    """Percent-encode an allow-prefix for use inside a resource URN.

    ``/ * ! ( ) ~`` stay literal; everything else outside the RFC 3986
    unreserved set is percent-encoded.

    Args:
        prefix: Allow-prefix glob (``*``, ``dir/*`` or an exact key).

    Returns:
        Encoded prefix.
    """
    return urllib.parse.quote(prefix, safe=_URN_LITERALS)


def split_bucket(bucket: str) -> tuple[str, str]:
    """Split ``<name>-<appId>`` into ``(name, app_id)``.

    The split happens at the last ``-`` so bucket names may contain dashes.

    Raises:
        InvalidConfigurationError: If either part is missing.
    """
    name, sep, app_id = bucket.rpartition("-")
    if not sep or not name or not app_id:
        raise InvalidConfigurationError(
            f"Bucket must have the form '<name>-<appId>': {bucket!r}"
        )
    return name, app_id


def base_resource(bucket: str, region: str) -> str:
    """Return the resource URN of the bucket root."""
    name, app_id = split_bucket(bucket)
    return f"qcs::cos:{region}:uid/{app_id}:prefix//{app_id}/{name}/"


def build_policy(bucket: str, region: str, allow_prefix: str) -> AccessPolicy:
    """Build the access policy for one federation request.

    Args:
        bucket: Bucket identifier in ``<name>-<appId>`` form.
        region: Bucket region (e.g. ``ap-guangzhou``).
        allow_prefix: Object key glob the credential may touch.

    Returns:
        AccessPolicy with a single allow statement over two resources.

    Raises:
        InvalidConfigurationError: If the bucket identifier is malformed.
    """
    root = base_resource(bucket, region)
    statement = Statement(
        actions=ALLOWED_ACTIONS,
        effect=Effect.ALLOW,
        resources=(root, root + resource_url_encode(allow_prefix)),
    )
    return AccessPolicy(statements=(statement,))


def policy_to_json(policy: AccessPolicy) -> str:
    """Serialize a policy to compact JSON with unescaped forward slashes."""
    return json.dumps(policy.to_dict(), separators=(",", ":"))
