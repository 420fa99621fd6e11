# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Broker configuration.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/cosauth/cosauth.yaml``
    (typically ``~/.config/cosauth/cosauth.yaml``)

``!env`` tags resolve values from environment variables, so the secret key
never has to be written to the file itself::

    secret_id: !env COS_SECRET_ID
    secret_key: !env COS_SECRET_KEY
    bucket: mybucket-1250000000
    region: ap-guangzhou
    allow_prefix: "uploads/*"
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path

from cosauth.cache import DEFAULT_SAFETY_MARGIN
from cosauth.dotenv_loader import load_dotenv_once
from cosauth.errors import InvalidConfigurationError
from cosauth.federation import DURATION_SECONDS
from cosauth.logging import SecretFilter
from cosauth.policy import split_bucket
from cosauth.request_signing import DEFAULT_EXPIRES_IN


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "cosauth"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

STUB_CONFIG = """\
# cosauth configuration
#
# Long-lived key pair used to request temporary credentials.  Prefer !env
# so the secret stays out of this file.
secret_id: !env COS_SECRET_ID
secret_key: !env COS_SECRET_KEY

# Bucket in <name>-<appId> form, and its region
bucket: mybucket-1250000000
region: ap-guangzhou

# Object keys the temporary credential may touch: *, dir/* or an exact key
allow_prefix: "*"

# Optional outbound proxy for the federation endpoint
# proxy: http://proxy.example.com:3128

federation:
  timeout: 10
  verify_ssl: true

cache:
  # Refresh credentials this many seconds before they expire
  safety_margin: 300

signing:
  # Validity window of each request signature, in seconds
  expires_in: 600
"""


def get_config_path() -> Path:
    """Return the default config file path (XDG)."""
    return user_config_path(_APP_NAME) / "cosauth.yaml"


def get_dotenv_path() -> Path:
    """Return the default ``.env`` file path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise InvalidConfigurationError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset or empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    required: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``).
        default: Default when value is absent.
        required: Human-readable field name.  When set, raises
            ``InvalidConfigurationError`` if the value is absent.

    Returns:
        The resolved, coerced value, or None when optional and absent.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if required:
            if isinstance(value, _EnvVar):
                raise InvalidConfigurationError(
                    f"Required config '{required}': environment variable "
                    f"'{value.var_name}' is not set"
                )
            raise InvalidConfigurationError(
                f"Required config '{required}' is missing"
            )
        if default is not _MISSING:
            return default
        return None

    if coerce is bool:
        return _coerce_bool(resolved)
    try:
        return coerce(resolved)
    except ValueError as e:
        raise InvalidConfigurationError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise InvalidConfigurationError(f"'{name}' must be a YAML mapping")
    return section


# ---------------------------------------------------------------------------
# Broker configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BrokerConfig:
    """Complete broker configuration.

    Attributes:
        secret_id: Long-lived key ID.
        secret_key: Long-lived secret key (never logged).
        bucket: Bucket identifier in ``<name>-<appId>`` form.
        region: Bucket region.
        allow_prefix: Object key glob the temporary credential may touch.
        proxy: Outbound proxy URL for the federation endpoint.
        timeout: Federation request timeout in seconds.
        verify_ssl: Verify the federation endpoint's TLS certificate.
        safety_margin: Seconds before expiry at which credentials refresh.
        wait_timeout: Max seconds to wait on another caller's fetch, or
            None to wait indefinitely.
        signature_expires_in: Validity window of request signatures.
    """

    secret_id: str
    secret_key: str = field(repr=False)
    bucket: str
    region: str
    allow_prefix: str = "*"
    proxy: str | None = None
    timeout: float = 10.0
    verify_ssl: bool = True
    safety_margin: float = DEFAULT_SAFETY_MARGIN
    wait_timeout: float | None = None
    signature_expires_in: int = DEFAULT_EXPIRES_IN

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            InvalidConfigurationError: If configuration is invalid.
        """
        for name in ("secret_id", "secret_key", "bucket", "region"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidConfigurationError(
                    f"Required config '{name}' is missing"
                )
        SecretFilter.register_secret(self.secret_key)

        split_bucket(self.bucket)
        if not self.allow_prefix:
            raise InvalidConfigurationError("allow_prefix must not be empty")
        if self.timeout <= 0:
            raise InvalidConfigurationError(
                f"Federation timeout must be > 0: {self.timeout}"
            )
        if not 0 <= self.safety_margin < DURATION_SECONDS:
            raise InvalidConfigurationError(
                f"Safety margin must be in [0, {DURATION_SECONDS}): "
                f"{self.safety_margin}"
            )
        if self.wait_timeout is not None and self.wait_timeout <= 0:
            raise InvalidConfigurationError(
                f"Wait timeout must be > 0: {self.wait_timeout}"
            )
        if self.signature_expires_in < 1:
            raise InvalidConfigurationError(
                f"Signature validity must be >= 1s: "
                f"{self.signature_expires_in}"
            )
        if not self.verify_ssl:
            logger.warning(
                "TLS certificate verification is disabled for the "
                "federation endpoint"
            )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "BrokerConfig":
        """Load configuration from a YAML file.

        Values tagged with ``!env VAR_NAME`` are resolved from the
        environment at load time.  A ``.env`` file is loaded first if
        present.

        Args:
            config_path: Path to YAML config file.  Defaults to
                ``~/.config/cosauth/cosauth.yaml`` (XDG).

        Returns:
            BrokerConfig instance.

        Raises:
            InvalidConfigurationError: If the file is missing or required
                values are absent.
        """
        load_dotenv_once(get_dotenv_path())

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            raise InvalidConfigurationError(
                f"Config file not found: {config_path}"
            )

        try:
            with open(config_path) as f:
                raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(
                f"Invalid YAML in {config_path}: {e}"
            ) from e

        if not isinstance(raw, dict):
            raise InvalidConfigurationError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        config = cls.from_dict(raw)
        logger.info(
            "Config loaded from %s: bucket=%s, region=%s, allow_prefix=%s",
            config_path,
            config.bucket,
            config.region,
            config.allow_prefix,
        )
        return config

    @classmethod
    def from_dict(cls, raw: dict) -> "BrokerConfig":
        """Build config from a parsed (possibly unresolved) YAML mapping."""
        federation = _section(raw, "federation")
        cache = _section(raw, "cache")
        signing = _section(raw, "signing")

        return cls(
            secret_id=_resolve(raw.get("secret_id"), str, required="secret_id"),
            secret_key=_resolve(
                raw.get("secret_key"), str, required="secret_key"
            ),
            bucket=_resolve(raw.get("bucket"), str, required="bucket"),
            region=_resolve(raw.get("region"), str, required="region"),
            allow_prefix=_resolve(raw.get("allow_prefix"), str, default="*"),
            proxy=_resolve(raw.get("proxy"), str),
            timeout=_resolve(federation.get("timeout"), float, default=10.0),
            verify_ssl=_resolve(
                federation.get("verify_ssl"), bool, default=True
            ),
            safety_margin=_resolve(
                cache.get("safety_margin"),
                float,
                default=float(DEFAULT_SAFETY_MARGIN),
            ),
            wait_timeout=_resolve(cache.get("wait_timeout"), float),
            signature_expires_in=_resolve(
                signing.get("expires_in"), int, default=DEFAULT_EXPIRES_IN
            ),
        )
