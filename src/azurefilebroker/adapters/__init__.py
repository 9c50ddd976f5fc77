"""Adapters module - infrastructure implementations."""

from azurefilebroker.adapters.azure import AzureStorageAccountGateway, azure_gateway_factory
from azurefilebroker.adapters.store import FileStore, SqlStore

__all__ = [
    "AzureStorageAccountGateway",
    "FileStore",
    "SqlStore",
    "azure_gateway_factory",
]
