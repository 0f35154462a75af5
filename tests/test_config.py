"""Tests for configuration loading and merging."""

from __future__ import annotations

from pathlib import Path

import pytest

from pytest_gql.config import SubscriptionConfig, load_config_from_pyproject, merge_configs


def test_subscription_config_defaults() -> None:
    """Test that SubscriptionConfig has sensible defaults."""
    config = SubscriptionConfig()

    assert config.app is None
    assert config.url == "/graphql"
    assert config.base_url == "http://test"
    assert config.subprotocol == "graphql-ws"
    assert config.connect_timeout == 30.0
    assert config.headers == {}
    assert config.debug is False


def test_from_dict_with_all_fields() -> None:
    """Test creating config from dictionary with all fields."""
    data = {
        "app": "myapp.main:app",
        "url": "/api/graphql",
        "base_url": "http://testserver",
        "subprotocol": "graphql-ws",
        "timeout": 5,
        "headers": {"Authorization": "Bearer token"},
        "debug": True,
    }

    config = SubscriptionConfig.from_dict(data)

    assert config.app == "myapp.main:app"
    assert config.url == "/api/graphql"
    assert config.base_url == "http://testserver"
    assert config.connect_timeout == 5.0
    assert isinstance(config.connect_timeout, float)
    assert config.headers == {"Authorization": "Bearer token"}
    assert config.debug is True


def test_from_dict_with_partial_fields() -> None:
    """Test creating config from dictionary with only some fields (uses defaults for rest)."""
    config = SubscriptionConfig.from_dict({"url": "/subscriptions"})

    assert config.url == "/subscriptions"
    # Defaults for unspecified fields
    assert config.connect_timeout == 30.0
    assert config.subprotocol == "graphql-ws"


def test_from_dict_rejects_bad_headers() -> None:
    """Test that headers must be a table."""
    with pytest.raises(ValueError, match="'headers' must be a table"):
        SubscriptionConfig.from_dict({"headers": ["Authorization"]})


def test_from_dict_rejects_bad_timeout() -> None:
    """Test that the timeout must be numeric."""
    with pytest.raises(ValueError, match="'timeout' must be a number"):
        SubscriptionConfig.from_dict({"timeout": "soon"})


def test_load_config_from_pyproject(tmp_path: Path) -> None:
    """Test loading the [tool.pytest-gql] section."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(
        """
[tool.pytest-gql]
app = "myapp:app"
url = "/graphql/ws"
timeout = 2.5

[tool.pytest-gql.headers]
X-Tenant = "acme"
"""
    )

    config = load_config_from_pyproject(pyproject)

    assert config.app == "myapp:app"
    assert config.url == "/graphql/ws"
    assert config.connect_timeout == 2.5
    assert config.headers == {"X-Tenant": "acme"}


def test_load_config_missing_file(tmp_path: Path) -> None:
    """Test that a missing pyproject.toml yields defaults."""
    assert load_config_from_pyproject(tmp_path / "pyproject.toml") == SubscriptionConfig()


def test_load_config_without_section(tmp_path: Path) -> None:
    """Test that a pyproject.toml without our section yields defaults."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text('[project]\nname = "demo"\n')

    assert load_config_from_pyproject(pyproject) == SubscriptionConfig()


def test_load_config_invalid_toml(tmp_path: Path) -> None:
    """Test that unparsable TOML raises ValueError."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text("[tool.pytest-gql\nurl = ")

    with pytest.raises(ValueError, match="Failed to parse pyproject.toml"):
        load_config_from_pyproject(pyproject)


def test_merge_configs_cli_overrides_file() -> None:
    """Test that non-default CLI values win over file values."""
    cli = SubscriptionConfig(url="/cli", connect_timeout=1.0)
    file = SubscriptionConfig(app="myapp:app", url="/file", connect_timeout=9.0, debug=True)

    merged = merge_configs(cli, file)

    assert merged.url == "/cli"
    assert merged.connect_timeout == 1.0
    assert merged.app == "myapp:app"
    assert merged.debug is True


def test_merge_configs_defaults_do_not_override_file() -> None:
    """Test that CLI defaults leave file values in place."""
    merged = merge_configs(SubscriptionConfig(), SubscriptionConfig(url="/file", base_url="http://file"))

    assert merged.url == "/file"
    assert merged.base_url == "http://file"


def test_merge_configs_headers_are_combined() -> None:
    """Test that headers from both sources are merged, CLI last."""
    cli = SubscriptionConfig(headers={"A": "cli"})
    file = SubscriptionConfig(headers={"A": "file", "B": "file"})

    assert merge_configs(cli, file).headers == {"A": "cli", "B": "file"}


def test_merge_configs_with_none() -> None:
    """Test merging when one side is missing."""
    cli = SubscriptionConfig(url="/cli")
    file = SubscriptionConfig(url="/file")

    assert merge_configs(None, None) == SubscriptionConfig()
    assert merge_configs(cli, None) is cli
    assert merge_configs(None, file) is file
