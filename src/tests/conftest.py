"""Shared fixtures: settings, a fake Azure gateway and a file-backed store."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, create_autospec

import pytest

from azurefilebroker.adapters.store import FileStore
from azurefilebroker.app.config import (
    AzureConfig,
    ControlConfig,
    MountConfig,
    Settings,
)
from azurefilebroker.core.interfaces import StorageAccountGateway
from azurefilebroker.services import Broker

BASE_DOMAIN = "core.windows.net"
ACCESS_KEY = "c2VjcmV0LWtleQ=="


def make_settings(
    control: dict | None = None,
    mount: dict | None = None,
    azure: dict | None = None,
) -> Settings:
    azure_fields = {
        "tenant_id": "tenant",
        "client_id": "client",
        "client_secret": "client-secret",
        "default_subscription_id": "sub-default",
        "default_resource_group_name": "rg-default",
    }
    azure_fields.update(azure or {})
    return Settings(
        azure=AzureConfig(**azure_fields),
        control=ControlConfig(**(control or {})),
        mount=MountConfig(**(mount or {})),
    )


@pytest.fixture
def gateway() -> MagicMock:
    """Gateway for an existing account without shares."""
    mock = create_autospec(StorageAccountGateway, instance=True)
    mock.exists.return_value = True
    mock.has_share.return_value = False
    mock.get_share_url.side_effect = lambda name: f"//acct.file.{BASE_DOMAIN}/{name}"
    mock.get_access_key.return_value = ACCESS_KEY
    return mock


@pytest.fixture
def gateway_factory(gateway: MagicMock) -> MagicMock:
    return MagicMock(return_value=gateway)


@pytest.fixture
def file_store(tmp_path: Path) -> FileStore:
    store = FileStore(tmp_path / "state" / "broker.json")
    store.restore()
    return store


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def make_broker(
    file_store: FileStore, gateway_factory: MagicMock
) -> Callable[..., Broker]:
    """Build a Broker over the file store with policy overrides."""

    def _make(
        control: dict | None = None,
        mount: dict | None = None,
        azure: dict | None = None,
        store=None,
    ) -> Broker:
        return Broker(
            store if store is not None else file_store,
            gateway_factory,
            settings=make_settings(control=control, mount=mount, azure=azure),
        )

    return _make


@pytest.fixture
def broker(make_broker: Callable[..., Broker]) -> Broker:
    return make_broker()
