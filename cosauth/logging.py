# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Log redaction for credential material.

Library modules log through ``logging.getLogger(__name__)`` and never
format secrets on purpose.  ``SecretFilter`` is the backstop for the cases
where one slips into a message anyway, for example inside an exception
string.

Secrets are tracked in two slots:

* ``long_lived``: the account secret key.  Registered once by the config
  and broker and kept for the life of the process.
* ``temporary``: the secret key and session token of the most recently
  issued temporary credential.  Each issue replaces the previous pair, so
  the registry stays bounded however long the broker runs.
"""

import logging
import re
import threading
from collections.abc import Iterable
from typing import ClassVar


_REDACTED = "[REDACTED]"
_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SecretFilter(logging.Filter):
    """Replaces registered credential material with ``[REDACTED]``.

    Registration is process-wide and thread-safe.  Records are never
    dropped; only their message and string arguments are rewritten.
    """

    LONG_LIVED = "long_lived"
    TEMPORARY = "temporary"

    _slots: ClassVar[dict[str, frozenset[str]]] = {}
    _pattern: ClassVar[re.Pattern[str] | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = self._pattern
        if pattern is None:
            return True
        record.msg = pattern.sub(_REDACTED, str(record.msg))
        if record.args:
            record.args = tuple(
                pattern.sub(_REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Add a long-lived secret.  Empty strings are ignored."""
        if not secret:
            return
        with cls._lock:
            current = cls._slots.get(cls.LONG_LIVED, frozenset())
            if secret in current:
                return
            cls._slots[cls.LONG_LIVED] = current | {secret}
            cls._rebuild_pattern()

    @classmethod
    def replace_secrets(cls, slot: str, secrets: Iterable[str]) -> None:
        """Set the contents of *slot*, dropping whatever it held before.

        Args:
            slot: Slot name, normally ``SecretFilter.TEMPORARY``.
            secrets: New secrets for the slot.  Empty strings are ignored.
        """
        new = frozenset(s for s in secrets if s)
        with cls._lock:
            if cls._slots.get(slot, frozenset()) == new:
                return
            cls._slots[slot] = new
            cls._rebuild_pattern()

    @classmethod
    def secrets(cls) -> frozenset[str]:
        """Return every secret currently redacted, across all slots."""
        with cls._lock:
            return frozenset().union(*cls._slots.values())

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget every slot.  Used by tests."""
        with cls._lock:
            cls._slots.clear()
            cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        secrets = frozenset().union(*cls._slots.values())
        if not secrets:
            cls._pattern = None
            return
        # Longest first so a secret containing another is fully masked
        ordered = sorted(secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))


def configure_logging(level: int = logging.INFO) -> None:
    """Send log output to stderr with credential redaction.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.

    Args:
        level: Root logger level.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)
