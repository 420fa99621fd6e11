# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for cosauth/config.py."""

import dataclasses
import logging
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import yaml

from cosauth.config import (
    STUB_CONFIG,
    BrokerConfig,
    _coerce_bool,
    _EnvVar,
    _make_loader,
    _raw_resolve,
    _resolve,
    get_config_path,
    get_dotenv_path,
)
from cosauth.errors import InvalidConfigurationError
from cosauth.logging import SecretFilter
from tests.vectors import BUCKET, REGION, SECRET_ID, SECRET_KEY


def _raw(**overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "secret_id": SECRET_ID,
        "secret_key": SECRET_KEY,
        "bucket": BUCKET,
        "region": REGION,
    }
    raw.update(overrides)
    return raw


class TestCoerceBool:
    """Tests for _coerce_bool."""

    @pytest.mark.parametrize("value", [True, "true", "1", "yes", "ON"])
    def test_truthy(self, value: object) -> None:
        """Common truthy spellings coerce to True."""
        assert _coerce_bool(value) is True

    @pytest.mark.parametrize("value", [False, "false", "0", "no", " Off "])
    def test_falsy(self, value: object) -> None:
        """Common falsy spellings coerce to False."""
        assert _coerce_bool(value) is False

    def test_invalid(self) -> None:
        """Unknown spellings are rejected."""
        with pytest.raises(InvalidConfigurationError, match="bool"):
            _coerce_bool("maybe")


class TestResolve:
    """Tests for _raw_resolve and _resolve."""

    def test_env_var_resolved(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """!env placeholders read from the environment."""
        monkeypatch.setenv("COSAUTH_TEST_VAR", "value")
        assert _raw_resolve(_EnvVar("COSAUTH_TEST_VAR")) == "value"

    def test_empty_env_var_is_none(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An empty environment variable counts as unset."""
        monkeypatch.setenv("COSAUTH_TEST_VAR", "")
        assert _raw_resolve(_EnvVar("COSAUTH_TEST_VAR")) is None

    def test_literal_passthrough(self) -> None:
        """Literals of the target type are returned unchanged."""
        assert _resolve(5, int) == 5
        assert _resolve("x", str) == "x"

    def test_coerces_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment strings are coerced to the target type."""
        monkeypatch.setenv("COSAUTH_TEST_VAR", "2.5")
        assert _resolve(_EnvVar("COSAUTH_TEST_VAR"), float) == 2.5

    def test_default_when_absent(self) -> None:
        """Absent optional values fall back to the default."""
        assert _resolve(None, int, default=7) == 7
        assert _resolve(None, str) is None

    def test_required_missing(self) -> None:
        """Absent required values are an error naming the field."""
        with pytest.raises(InvalidConfigurationError, match="'bucket'"):
            _resolve(None, str, required="bucket")

    def test_required_env_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The error names the unset environment variable."""
        monkeypatch.delenv("COSAUTH_UNSET_VAR", raising=False)
        with pytest.raises(
            InvalidConfigurationError, match="COSAUTH_UNSET_VAR"
        ):
            _resolve(_EnvVar("COSAUTH_UNSET_VAR"), str, required="secret_key")

    def test_uncoercible(self) -> None:
        """Values that cannot be coerced are a configuration error."""
        with pytest.raises(InvalidConfigurationError, match="int"):
            _resolve("ten", int)

    def test_env_tag_loader(self) -> None:
        """The YAML loader turns !env into a placeholder."""
        raw = yaml.load("key: !env SOME_VAR", Loader=_make_loader())
        assert isinstance(raw["key"], _EnvVar)
        assert raw["key"].var_name == "SOME_VAR"


class TestBrokerConfigValidation:
    """Tests for BrokerConfig.__post_init__."""

    def test_defaults(self, config: BrokerConfig) -> None:
        """Optional settings have safe defaults."""
        assert config.proxy is None
        assert config.verify_ssl is True
        assert config.timeout == 10.0
        assert config.safety_margin == 300
        assert config.wait_timeout is None
        assert config.signature_expires_in == 600

    @pytest.mark.parametrize(
        "name", ["secret_id", "secret_key", "bucket", "region"]
    )
    def test_required_fields(self, config: BrokerConfig, name: str) -> None:
        """Blank required fields are rejected."""
        with pytest.raises(InvalidConfigurationError, match=name):
            dataclasses.replace(config, **{name: "  "})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"bucket": "nobucketappid"},
            {"allow_prefix": ""},
            {"timeout": 0},
            {"safety_margin": -1},
            {"safety_margin": 7200},
            {"wait_timeout": 0},
            {"signature_expires_in": 0},
        ],
    )
    def test_invalid_values(
        self, config: BrokerConfig, overrides: dict[str, Any]
    ) -> None:
        """Out-of-range settings are rejected."""
        with pytest.raises(InvalidConfigurationError):
            dataclasses.replace(config, **overrides)

    def test_repr_hides_secret(self, config: BrokerConfig) -> None:
        """The secret key never appears in the repr."""
        assert SECRET_KEY not in repr(config)
        assert SECRET_ID in repr(config)

    def test_registers_secret(self, config: BrokerConfig) -> None:
        """The secret key is registered for log redaction."""
        assert SECRET_KEY in SecretFilter.secrets()

    def test_disabled_verification_warns(
        self, config: BrokerConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Turning off TLS verification is logged as a warning."""
        with caplog.at_level(logging.WARNING, logger="cosauth.config"):
            dataclasses.replace(config, verify_ssl=False)
        assert "verification is disabled" in caplog.text


class TestBrokerConfigFromDict:
    """Tests for BrokerConfig.from_dict."""

    def test_minimal(self) -> None:
        """Only the four required keys are needed."""
        config = BrokerConfig.from_dict(_raw())
        assert config.bucket == BUCKET
        assert config.allow_prefix == "*"

    def test_sections(self) -> None:
        """Nested sections map to their settings."""
        config = BrokerConfig.from_dict(
            _raw(
                allow_prefix="a/*",
                proxy="http://proxy:3128",
                federation={"timeout": 3, "verify_ssl": "false"},
                cache={"safety_margin": 60, "wait_timeout": 1.5},
                signing={"expires_in": 120},
            )
        )
        assert config.allow_prefix == "a/*"
        assert config.proxy == "http://proxy:3128"
        assert config.timeout == 3.0
        assert config.verify_ssl is False
        assert config.safety_margin == 60.0
        assert config.wait_timeout == 1.5
        assert config.signature_expires_in == 120

    def test_missing_required(self) -> None:
        """A missing required key is reported by name."""
        raw = _raw()
        del raw["region"]
        with pytest.raises(InvalidConfigurationError, match="region"):
            BrokerConfig.from_dict(raw)

    def test_section_must_be_mapping(self) -> None:
        """A scalar where a section is expected is rejected."""
        with pytest.raises(InvalidConfigurationError, match="federation"):
            BrokerConfig.from_dict(_raw(federation=5))


class TestBrokerConfigFromYaml:
    """Tests for BrokerConfig.from_yaml."""

    def test_loads_with_env_tag(
        self,
        no_dotenv: None,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """!env values resolve and sections are applied."""
        monkeypatch.setenv("TEST_COS_SECRET_KEY", SECRET_KEY)
        config = BrokerConfig.from_yaml(config_file)
        assert config.secret_key == SECRET_KEY
        assert config.allow_prefix == "uploads/*"
        assert config.timeout == 5.0
        assert config.safety_margin == 120.0

    def test_unset_env_tag(
        self,
        no_dotenv: None,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An unset !env variable for a required key is an error."""
        monkeypatch.delenv("TEST_COS_SECRET_KEY", raising=False)
        with pytest.raises(
            InvalidConfigurationError, match="TEST_COS_SECRET_KEY"
        ):
            BrokerConfig.from_yaml(config_file)

    def test_missing_file(self, no_dotenv: None, tmp_path: Path) -> None:
        """A missing file is a configuration error."""
        with pytest.raises(InvalidConfigurationError, match="not found"):
            BrokerConfig.from_yaml(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, no_dotenv: None, tmp_path: Path) -> None:
        """Unparsable YAML is a configuration error."""
        path = tmp_path / "bad.yaml"
        path.write_text("bucket: [unclosed\n")
        with pytest.raises(InvalidConfigurationError, match="Invalid YAML"):
            BrokerConfig.from_yaml(path)

    def test_not_a_mapping(self, no_dotenv: None, tmp_path: Path) -> None:
        """A top-level list is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(InvalidConfigurationError, match="mapping"):
            BrokerConfig.from_yaml(path)

    def test_default_path(self, no_dotenv: None, tmp_path: Path) -> None:
        """Without an argument the XDG path is used."""
        with patch(
            "cosauth.config.get_config_path",
            return_value=tmp_path / "cosauth.yaml",
        ):
            with pytest.raises(InvalidConfigurationError) as exc_info:
                BrokerConfig.from_yaml()
        assert str(tmp_path / "cosauth.yaml") in str(exc_info.value)

    def test_loads_dotenv_first(self, tmp_path: Path) -> None:
        """The .env loader runs before the file is read."""
        with patch("cosauth.config.load_dotenv_once") as mock_load:
            with pytest.raises(InvalidConfigurationError):
                BrokerConfig.from_yaml(tmp_path / "absent.yaml")
        mock_load.assert_called_once_with(get_dotenv_path())

    def test_stub_config_parses(
        self, no_dotenv: None, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The stub written by ``cosauth init`` loads once env is set."""
        monkeypatch.setenv("COS_SECRET_ID", SECRET_ID)
        monkeypatch.setenv("COS_SECRET_KEY", SECRET_KEY)
        path = tmp_path / "cosauth.yaml"
        path.write_text(STUB_CONFIG)
        config = BrokerConfig.from_yaml(path)
        assert config.bucket == "mybucket-1250000000"
        assert config.verify_ssl is True


class TestPaths:
    """Tests for XDG path helpers."""

    def test_config_path(self) -> None:
        """Config lives under the cosauth config directory."""
        path = get_config_path()
        assert path.name == "cosauth.yaml"
        assert path.parent.name == "cosauth"

    def test_dotenv_path(self) -> None:
        """.env sits next to the config file."""
        assert get_dotenv_path().parent == get_config_path().parent
