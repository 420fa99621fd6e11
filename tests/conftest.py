# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test modules."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from cosauth.config import BrokerConfig
from cosauth.dotenv_loader import reset_dotenv_state
from cosauth.logging import SecretFilter
from tests.vectors import BUCKET, NOW, REGION, SECRET_ID, SECRET_KEY


class FakeClock:
    """Manually advanced clock usable wherever a time source is injected."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _clear_secrets() -> Iterator[None]:
    """Reset the process-wide redaction registry around each test."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at the shared vector time."""
    return FakeClock()


@pytest.fixture
def config() -> BrokerConfig:
    """A valid broker configuration."""
    return BrokerConfig(
        secret_id=SECRET_ID,
        secret_key=SECRET_KEY,
        bucket=BUCKET,
        region=REGION,
        allow_prefix="uploads/*",
    )


@pytest.fixture
def no_dotenv() -> Iterator[None]:
    """Keep real ``.env`` files out of config loading."""
    reset_dotenv_state()
    with patch("cosauth.config.load_dotenv_once"):
        yield
    reset_dotenv_state()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a config file that reads the secret key from the environment."""
    path = tmp_path / "cosauth.yaml"
    path.write_text(
        f"secret_id: {SECRET_ID}\n"
        "secret_key: !env TEST_COS_SECRET_KEY\n"
        f"bucket: {BUCKET}\n"
        f"region: {REGION}\n"
        'allow_prefix: "uploads/*"\n'
        "federation:\n"
        "  timeout: 5\n"
        "cache:\n"
        "  safety_margin: 120\n"
    )
    return path
