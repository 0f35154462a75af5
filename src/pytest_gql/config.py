"""Configuration for pytest-gql.

Configuration Priority:
    1. CLI options (--gql-*)
    2. pyproject.toml [tool.pytest-gql]
    3. Built-in defaults
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pytest_gql.protocol.messages import GRAPHQL_WS


@dataclass
class SubscriptionConfig:
    """Configuration for GraphQL subscription clients.

    Attributes:
        app: Import path of the ASGI app under test (e.g. "myapp:app").
        url: GraphQL endpoint, as a path or an absolute ws:// URL.
        base_url: Base URL used to resolve a relative ``url``.
        subprotocol: WebSocket subprotocol requested during the upgrade.
        connect_timeout: Seconds to wait for the handshake to settle.
        headers: Headers sent with the WebSocket upgrade request.
        debug: Log malformed frames at WARNING instead of DEBUG.
    """

    app: str | None = None
    url: str = "/graphql"
    base_url: str = "http://test"
    subprotocol: str = GRAPHQL_WS
    connect_timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)
    debug: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubscriptionConfig:
        """Create config from dictionary (e.g., from pyproject.toml).

        Args:
            data: Dictionary containing configuration values.

        Returns:
            SubscriptionConfig instance with values from dictionary.

        Raises:
            ValueError: If a value has the wrong type.

        Examples:
            >>> config = SubscriptionConfig.from_dict({"url": "/api/graphql", "timeout": 5})
            >>> config.connect_timeout
            5.0
        """
        defaults = cls()

        headers = data.get("headers", defaults.headers)
        if not isinstance(headers, dict):
            msg = f"'headers' must be a table, got {type(headers).__name__}"
            raise ValueError(msg)

        try:
            connect_timeout = float(data.get("timeout", defaults.connect_timeout))
        except (TypeError, ValueError) as e:
            msg = f"'timeout' must be a number: {e}"
            raise ValueError(msg) from e

        return cls(
            app=data.get("app", defaults.app),
            url=data.get("url", defaults.url),
            base_url=data.get("base_url", defaults.base_url),
            subprotocol=data.get("subprotocol", defaults.subprotocol),
            connect_timeout=connect_timeout,
            headers={str(k): str(v) for k, v in headers.items()},
            debug=bool(data.get("debug", defaults.debug)),
        )


def load_config_from_pyproject(path: Path | None = None) -> SubscriptionConfig:
    """Load configuration from pyproject.toml [tool.pytest-gql] section.

    Args:
        path: Path to pyproject.toml file. If None, looks in current working directory.

    Returns:
        SubscriptionConfig loaded from file, or defaults if file not found.

    Raises:
        ValueError: If pyproject.toml cannot be parsed or holds invalid configuration.
    """
    if path is None:
        path = Path.cwd() / "pyproject.toml"

    if not path.exists():
        return SubscriptionConfig()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        msg = f"Failed to parse pyproject.toml: {e}"
        raise ValueError(msg) from e

    config_data = data.get("tool", {}).get("pytest-gql", {})
    if not config_data:
        return SubscriptionConfig()

    return SubscriptionConfig.from_dict(config_data)


def merge_configs(
    cli_config: SubscriptionConfig | None,
    file_config: SubscriptionConfig | None,
) -> SubscriptionConfig:
    """Merge CLI and file configurations with CLI taking precedence.

    A CLI value only wins when it differs from the built-in default.

    Args:
        cli_config: Configuration from CLI options.
        file_config: Configuration from pyproject.toml.

    Returns:
        Merged configuration.
    """
    if cli_config is None and file_config is None:
        return SubscriptionConfig()

    if cli_config is None:
        return file_config or SubscriptionConfig()

    if file_config is None:
        return cli_config

    defaults = SubscriptionConfig()

    return SubscriptionConfig(
        app=cli_config.app if cli_config.app != defaults.app else file_config.app,
        url=cli_config.url if cli_config.url != defaults.url else file_config.url,
        base_url=cli_config.base_url if cli_config.base_url != defaults.base_url else file_config.base_url,
        subprotocol=(
            cli_config.subprotocol if cli_config.subprotocol != defaults.subprotocol else file_config.subprotocol
        ),
        connect_timeout=(
            cli_config.connect_timeout
            if cli_config.connect_timeout != defaults.connect_timeout
            else file_config.connect_timeout
        ),
        headers={**file_config.headers, **cli_config.headers},
        debug=cli_config.debug or file_config.debug,
    )
