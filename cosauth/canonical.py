# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Deterministic canonicalization shared by both signing algorithms.

The server recomputes every signature independently, so identical input
mappings must canonicalize identically regardless of insertion order.
"""

from __future__ import annotations

import urllib.parse
from collections.abc import Mapping


def strict_encode(value: str) -> str:
    """Percent-encode a value per RFC 3986.

    - Unreserved characters are not encoded: A-Z, a-z, 0-9, -, _, ., ~
    - Everything else, including ``/`` and space, becomes %XX (uppercase
      hex, UTF-8 bytes)

    Args:
        value: String to encode.

    Returns:
        Encoded string.
    """
    return urllib.parse.quote(value, safe="")


def canonical_query_string(params: Mapping[str, object]) -> str:
    """Join parameters as ``key=value`` pairs sorted by key.

    Keys are sorted in byte order; values are used as-is with no extra
    encoding at this layer.

    Args:
        params: Parameter mapping.

    Returns:
        ``&``-joined canonical string.
    """
    return "&".join(
        f"{key}={params[key]}"
        for key in sorted(params, key=lambda k: k.encode("utf-8"))
    )


def _sorted_keys(mapping: Mapping[str, object]) -> list[str]:
    """Keys sorted case-insensitively, ties broken by original spelling."""
    return sorted(mapping, key=lambda k: (k.lower(), k))


def canonical_param_string(mapping: Mapping[str, object]) -> str:
    """Canonicalize headers or query params for request signing.

    Keys are sorted case-insensitively and lowercased; keys and values are
    strictly percent-encoded.  ``None`` values sign as empty strings.

    Args:
        mapping: Header or query parameter mapping.

    Returns:
        ``&``-joined ``key=value`` string (empty for an empty mapping).
    """
    pairs: list[str] = []
    for key in _sorted_keys(mapping):
        value = mapping[key]
        value_str = "" if value is None else str(value)
        pairs.append(f"{strict_encode(key.lower())}={strict_encode(value_str)}")
    return "&".join(pairs)


def canonical_key_list(mapping: Mapping[str, object]) -> str:
    """Sorted lowercase key names joined with ``;``."""
    return ";".join(key.lower() for key in _sorted_keys(mapping))
