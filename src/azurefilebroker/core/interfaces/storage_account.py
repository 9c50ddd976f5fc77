"""Storage account gateway interface for Azure account and file share calls."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from azurefilebroker.core.models import StorageAccount


class StorageAccountGateway(ABC):
    """Interface for one storage account and the file shares inside it.

    Implementations:
    - AzureStorageAccountGateway: Azure Storage Management + File Service

    All methods raise UpstreamError when the Azure call fails.
    """

    @abstractmethod
    def exists(self) -> bool:
        """Check if the storage account exists."""
        ...

    @abstractmethod
    def create(self) -> None:
        """Create the storage account."""
        ...

    @abstractmethod
    def delete(self) -> None:
        """Delete the storage account."""
        ...

    @abstractmethod
    def has_share(self, name: str) -> bool:
        """Check if the file share exists in the account.

        Args:
            name: File share name
        """
        ...

    @abstractmethod
    def create_share(self, name: str) -> None:
        ...

    @abstractmethod
    def delete_share(self, name: str) -> None:
        ...

    @abstractmethod
    def get_share_url(self, name: str) -> str:
        """Return the SMB source of the share (//account.file.domain/share)."""
        ...

    @abstractmethod
    def get_access_key(self) -> str:
        """Return the primary account key, used as the mount password."""
        ...


GatewayFactory = Callable[[StorageAccount], StorageAccountGateway]
