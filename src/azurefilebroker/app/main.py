"""Broker assembly: store and gateway selection from settings.

The HTTP transport of the Open Service Broker API lives outside this
package; it calls create_broker() once at startup and hands the Broker
methods the decoded requests.
"""

import logging

from azurefilebroker.adapters.azure import azure_gateway_factory
from azurefilebroker.adapters.store import FileStore, SqlStore
from azurefilebroker.app.config import Settings, get_settings
from azurefilebroker.app.logging import setup_logging
from azurefilebroker.core.interfaces import GatewayFactory, Store
from azurefilebroker.core.logging_schema import Component, LogEvent
from azurefilebroker.services import Broker

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> Store:
    """Build the configured store and load its state."""
    database = settings.database
    if database.driver == "file":
        store: Store = FileStore(database.file_name)
    else:
        store = SqlStore.from_config(database)
    store.restore()
    return store


def create_broker(
    settings: Settings | None = None,
    store: Store | None = None,
    gateway_factory: GatewayFactory | None = None,
) -> Broker:
    """Install JSON logging and create a Broker from settings.

    Args:
        settings: Defaults to get_settings()
        store: Overrides the configured store
        gateway_factory: Overrides the Azure gateway

    Raises:
        ValueError: Azure credentials are incomplete.
        StoreError: The store cannot be opened.
    """
    settings = settings or get_settings()
    setup_logging(logging_config=settings.logging)

    if gateway_factory is None:
        settings.azure.require_credentials()
        gateway_factory = azure_gateway_factory(settings.azure)

    if store is None:
        store = create_store(settings)

    logger.info(
        "Broker configured",
        extra={
            "event": LogEvent.BROKER_CONFIGURED,
            "component": Component.BROKER,
            "driver": settings.database.driver,
            "environment": settings.azure.environment,
            "service_id": settings.service.id,
        },
    )
    return Broker(store, gateway_factory, settings=settings)
