"""Azure storage account gateway."""

from azurefilebroker.adapters.azure.gateway import (
    AzureStorageAccountGateway,
    azure_gateway_factory,
)

__all__ = ["AzureStorageAccountGateway", "azure_gateway_factory"]
