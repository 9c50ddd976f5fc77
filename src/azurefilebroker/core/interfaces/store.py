"""Store interface for broker state persistence."""

from abc import ABC, abstractmethod

from azurefilebroker.core.errors import BindingNotFoundError, InstanceNotFoundError
from azurefilebroker.core.models import BindDetails, FileShare, ServiceInstance


class Store(ABC):
    """Persistence for service instances, file shares and bindings.

    Implementations:
    - FileStore: single JSON document, no-op locks (single process only)
    - SqlStore: one row per entity, database advisory locks

    Every mutating call must be durable when it returns: the next operation
    sees a complete, consistent snapshot.
    """

    @abstractmethod
    def retrieve_instance(self, instance_id: str) -> ServiceInstance:
        """Return the instance with its file shares.

        Raises:
            InstanceNotFoundError: No such instance.
        """
        ...

    @abstractmethod
    def create_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        ...

    @abstractmethod
    def update_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        """Replace the instance attributes.

        Raises:
            InstanceNotFoundError: No such instance.
        """
        ...

    @abstractmethod
    def delete_instance(self, instance_id: str) -> None:
        """Delete the instance and its file share records.

        Raises:
            InstanceNotFoundError: No such instance.
        """
        ...

    @abstractmethod
    def retrieve_binding(self, binding_id: str) -> BindDetails:
        """Raises BindingNotFoundError if the binding is unknown."""
        ...

    @abstractmethod
    def create_binding(self, binding_id: str, details: BindDetails) -> None:
        ...

    @abstractmethod
    def delete_binding(self, binding_id: str) -> None:
        """Raises BindingNotFoundError if the binding is unknown."""
        ...

    @abstractmethod
    def retrieve_file_share(self, instance_id: str, file_share_name: str) -> FileShare | None:
        """Return the share record, or None if the share is not referenced."""
        ...

    @abstractmethod
    def save_file_share(self, share: FileShare) -> None:
        """Insert or replace a single share record of an existing instance."""
        ...

    @abstractmethod
    def delete_file_share(self, instance_id: str, file_share_name: str) -> None:
        ...

    def is_instance_conflict(self, instance_id: str) -> bool:
        """True if an instance with this id is already stored."""
        try:
            self.retrieve_instance(instance_id)
        except InstanceNotFoundError:
            return False
        return True

    def is_binding_conflict(self, binding_id: str) -> bool:
        """True if a binding with this id is already stored."""
        try:
            self.retrieve_binding(binding_id)
        except BindingNotFoundError:
            return False
        return True

    @abstractmethod
    def acquire_lock(self, name: str, timeout_seconds: int) -> None:
        """Block until the named lock is held.

        Raises:
            LockTimeoutError: Not acquired within timeout_seconds.
        """
        ...

    @abstractmethod
    def release_lock(self, name: str) -> None:
        ...

    @abstractmethod
    def save(self) -> None:
        """Flush the whole state, where the backend keeps one."""
        ...

    @abstractmethod
    def restore(self) -> None:
        """Load the state at startup, where the backend keeps one."""
        ...

    def close(self) -> None:
        """Release connections and files held by the store."""
