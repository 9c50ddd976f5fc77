"""Core interfaces for the broker."""

from azurefilebroker.core.interfaces.storage_account import (
    GatewayFactory,
    StorageAccountGateway,
)
from azurefilebroker.core.interfaces.store import Store

__all__ = [
    "GatewayFactory",
    "StorageAccountGateway",
    "Store",
]
