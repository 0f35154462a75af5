"""Pytest plugin providing GraphQL subscription clients as fixtures."""

from __future__ import annotations

import importlib
import warnings
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from pytest_gql.client import SubscriptionClient
from pytest_gql.config import SubscriptionConfig, load_config_from_pyproject, merge_configs
from pytest_gql.transport.connection import ConnectionState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_CONFIG_KEY = pytest.StashKey[SubscriptionConfig]()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add pytest command line options."""
    group = parser.getgroup("gql", "GraphQL subscription testing options")
    group.addoption(
        "--gql-app",
        action="store",
        default=None,
        help="Import path to the ASGI app under test (e.g., 'myapp:app')",
    )
    group.addoption(
        "--gql-url",
        action="store",
        default="/graphql",
        help="GraphQL endpoint path or ws:// URL (default: /graphql)",
    )
    group.addoption(
        "--gql-base-url",
        action="store",
        default="http://test",
        help="Base URL used to resolve a relative endpoint (default: http://test)",
    )
    group.addoption(
        "--gql-timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for the subscription handshake (default: 30)",
    )
    group.addoption(
        "--gql-debug",
        action="store_true",
        default=False,
        help="Log malformed subscription frames as warnings",
    )


def build_config_from_cli(config: Any) -> SubscriptionConfig:
    """Build subscription configuration from pytest CLI options.

    Args:
        config: The pytest Config object.

    Returns:
        SubscriptionConfig populated from CLI options.
    """
    return SubscriptionConfig(
        app=config.getoption("--gql-app", default=None),
        url=config.getoption("--gql-url", default="/graphql"),
        base_url=config.getoption("--gql-base-url", default="http://test"),
        connect_timeout=config.getoption("--gql-timeout", default=30.0),
        debug=config.getoption("--gql-debug", default=False),
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register markers and resolve the effective configuration."""
    config.addinivalue_line("markers", "gql: mark test as a GraphQL subscription test")

    try:
        rootdir = Path(config.rootpath) if hasattr(config, "rootpath") else Path.cwd()
        file_config = load_config_from_pyproject(rootdir / "pyproject.toml")
    except ValueError as e:
        warnings.warn(f"pytest-gql: could not load pyproject.toml config: {e}", stacklevel=1)
        file_config = SubscriptionConfig()

    config.stash[_CONFIG_KEY] = merge_configs(build_config_from_cli(config), file_config)


def load_app(app_path: str) -> Any:
    """Import an ASGI app from a "module:attr" path.

    Raises:
        ValueError: If the path is malformed or the attribute does not exist.
        ImportError: If the module cannot be imported.
    """
    module_path, sep, attr = app_path.partition(":")
    if not sep or not module_path or not attr:
        msg = f"App path must look like 'module:attr', got '{app_path}'"
        raise ValueError(msg)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attr)
    except AttributeError as e:
        msg = f"Module '{module_path}' has no attribute '{attr}'"
        raise ValueError(msg) from e


@pytest.fixture(scope="session")
def gql_config(pytestconfig: pytest.Config) -> SubscriptionConfig:
    """The merged pytest-gql configuration (CLI > pyproject.toml > defaults)."""
    return pytestconfig.stash.get(_CONFIG_KEY, SubscriptionConfig())


@pytest.fixture(scope="session")
def gql_app(gql_config: SubscriptionConfig) -> Any:
    """The ASGI app named by ``--gql-app`` / ``app``, or None to connect over the network.

    Override this fixture to supply your own app.
    """
    if not gql_config.app:
        return None
    return load_app(gql_config.app)


class SubscriptionClientFactory:
    """Builds subscription clients bound to the configured app and endpoint.

    Example:
        >>> async def test_on_x(gql_client_factory):
        ...     async with gql_client_factory(init_payload={"token": "abc"}) as client:
        ...         await client.create_subscription("subscription { onX }", {}, print)
    """

    def __init__(self, config: SubscriptionConfig, app: Any = None) -> None:
        self.config = config
        self.app = app
        self.clients: list[SubscriptionClient] = []

    def __call__(self, url: str | None = None, **kwargs: Any) -> SubscriptionClient:
        kwargs.setdefault("app", self.app)
        kwargs.setdefault("config", self.config)
        client = SubscriptionClient(url, **kwargs)
        self.clients.append(client)
        return client

    def open_clients(self) -> list[SubscriptionClient]:
        """Clients that were connected and never closed."""
        return [
            client
            for client in self.clients
            if client.state in (ConnectionState.HANDSHAKING, ConnectionState.READY)
        ]

    async def aclose(self) -> list[SubscriptionClient]:
        """Close every client still open.

        Returns:
            The clients that had been left open.
        """
        leaked = self.open_clients()
        for client in leaked:
            await client.close()
        return leaked


@pytest_asyncio.fixture
async def gql_client_factory(
    request: pytest.FixtureRequest,
    gql_config: SubscriptionConfig,
    gql_app: Any,
) -> AsyncIterator[SubscriptionClientFactory]:
    """Factory for ``SubscriptionClient`` instances.

    Clients drive ``gql_app`` in-process when it is set; otherwise they
    connect to ``gql_config.url`` over the network. Clients left open are
    closed at teardown, with a warning.
    """
    factory = SubscriptionClientFactory(gql_config, app=gql_app)
    yield factory

    if leaked := await factory.aclose():
        warnings.warn(
            f"pytest-gql: {len(leaked)} subscription client(s) left open by {request.node.nodeid} "
            "were closed at teardown; close them in the test (or use 'async with')",
            ResourceWarning,
            stacklevel=1,
        )
