"""JSON file store.

The whole broker state is one document, rewritten after every mutation and
read once at startup. Locks are no-ops: the broker mutex is the only
exclusion, so this store is safe for a single broker process only.
"""

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from azurefilebroker.core.errors import (
    BindingNotFoundError,
    InstanceNotFoundError,
    StoreError,
)
from azurefilebroker.core.interfaces import Store
from azurefilebroker.core.logging_schema import Component, LogEvent
from azurefilebroker.core.models import BindDetails, FileShare, ServiceInstance

logger = logging.getLogger(__name__)


class FileStoreState(BaseModel):
    """Persisted document layout."""

    instances: dict[str, ServiceInstance] = Field(default_factory=dict)
    bindings: dict[str, BindDetails] = Field(default_factory=dict)


class FileStore(Store):
    def __init__(self, file_name: str | Path) -> None:
        self._path = Path(file_name)
        self._state = FileStoreState()

    @property
    def path(self) -> Path:
        return self._path

    def restore(self) -> None:
        """Load the state document. A missing file means an empty broker."""
        if not self._path.exists():
            logger.info(
                "State file not found, starting empty",
                extra={"event": LogEvent.STATE_RESTORED, "component": Component.STORE,
                       "file_name": str(self._path)},
            )
            self._state = FileStoreState()
            return

        try:
            self._state = FileStoreState.model_validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.error(
                "Failed to restore state",
                extra={"event": LogEvent.STORE_ERROR, "component": Component.STORE,
                       "file_name": str(self._path), "error": str(e)},
            )
            raise StoreError(f"Failed to restore state from {str(self._path)!r}: {e}") from e

        logger.info(
            "State restored",
            extra={
                "event": LogEvent.STATE_RESTORED,
                "component": Component.STORE,
                "file_name": str(self._path),
                "instances": len(self._state.instances),
                "bindings": len(self._state.bindings),
            },
        )

    def save(self) -> None:
        self._write(self._state)

    @contextmanager
    def _transaction(self) -> Iterator[FileStoreState]:
        """Yield a copy of the state that replaces it only once written to disk."""
        state = self._state.model_copy(deep=True)
        yield state
        self._write(state)
        self._state = state

    def _write(self, state: FileStoreState) -> None:
        """Write the whole document (temp file + atomic replace)."""
        data = state.model_dump_json(indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(
                "Failed to write state file",
                extra={"event": LogEvent.STORE_ERROR, "component": Component.STORE,
                       "file_name": str(self._path), "error": str(e)},
            )
            raise StoreError(f"Failed to save state to {str(self._path)!r}: {e}") from e

        logger.debug(
            "State saved",
            extra={"event": LogEvent.STATE_SAVED, "component": Component.STORE,
                   "file_name": str(self._path)},
        )

    def retrieve_instance(self, instance_id: str) -> ServiceInstance:
        instance = self._state.instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(f"{instance_id} Not Found.")
        # Callers mutate the returned copy; the stored one changes only via the store
        return instance.model_copy(deep=True)

    def create_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        with self._transaction() as state:
            state.instances[instance_id] = instance.model_copy(deep=True)

    def update_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        with self._transaction() as state:
            if instance_id not in state.instances:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")
            state.instances[instance_id] = instance.model_copy(deep=True)

    def delete_instance(self, instance_id: str) -> None:
        with self._transaction() as state:
            if state.instances.pop(instance_id, None) is None:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")

    def retrieve_binding(self, binding_id: str) -> BindDetails:
        details = self._state.bindings.get(binding_id)
        if details is None:
            raise BindingNotFoundError(f"{binding_id} Not Found.")
        return details.model_copy(deep=True)

    def create_binding(self, binding_id: str, details: BindDetails) -> None:
        with self._transaction() as state:
            state.bindings[binding_id] = details.model_copy(deep=True)

    def delete_binding(self, binding_id: str) -> None:
        with self._transaction() as state:
            if state.bindings.pop(binding_id, None) is None:
                raise BindingNotFoundError(f"{binding_id} Not Found.")

    def retrieve_file_share(self, instance_id: str, file_share_name: str) -> FileShare | None:
        instance = self._state.instances.get(instance_id)
        if instance is None:
            return None
        share = instance.file_shares.get(file_share_name)
        return share.model_copy() if share is not None else None

    def save_file_share(self, share: FileShare) -> None:
        with self._transaction() as state:
            instance = state.instances.get(share.instance_id)
            if instance is None:
                raise InstanceNotFoundError(f"{share.instance_id} Not Found.")
            instance.file_shares[share.file_share_name] = share.model_copy()

    def delete_file_share(self, instance_id: str, file_share_name: str) -> None:
        with self._transaction() as state:
            instance = state.instances.get(instance_id)
            if instance is None:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")
            instance.file_shares.pop(file_share_name, None)

    def acquire_lock(self, name: str, timeout_seconds: int) -> None:
        return None

    def release_lock(self, name: str) -> None:
        return None
