"""SQL store shared by several broker processes.

Each entity is a row holding its JSON document. File shares are rows of
their own, so bind and unbind on different shares of one instance never
overwrite each other. Per-share exclusion comes from a database lock held
on a dedicated connection until release.
"""

import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from azurefilebroker.adapters.store.records import (
    BindingRecord,
    FileShareRecord,
    ServiceInstanceRecord,
)
from azurefilebroker.adapters.store.variants import SqlVariant, get_variant
from azurefilebroker.app.config import DatabaseConfig
from azurefilebroker.core.errors import (
    BindingAlreadyExistsError,
    BindingNotFoundError,
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    LockTimeoutError,
    StoreError,
)
from azurefilebroker.core.interfaces import Store
from azurefilebroker.core.logging_schema import Component, LogEvent
from azurefilebroker.core.models import (
    BindDetails,
    FileShare,
    ServiceInstance,
    file_share_id,
)

logger = logging.getLogger(__name__)

_TABLES = [
    ServiceInstanceRecord.__table__,
    BindingRecord.__table__,
    FileShareRecord.__table__,
]


class SqlStore(Store):
    def __init__(
        self, engine: Engine, variant: SqlVariant, ca_cert_path: str | None = None
    ) -> None:
        self._engine = engine
        self._variant = variant
        self._ca_cert_path = ca_cert_path
        self._lock_connections: dict[str, Connection] = {}
        self._lock_connections_guard = threading.Lock()

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            SQLModel.metadata.create_all(engine, tables=_TABLES)
        except SQLAlchemyError as e:
            logger.error(
                "Database connection failed",
                extra={
                    "event": LogEvent.STORE_ERROR,
                    "component": Component.STORE,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise StoreError(f"Failed to connect to the database: {e}") from e

        logger.info(
            "Database connected",
            extra={
                "event": LogEvent.STORE_CONNECTED,
                "component": Component.STORE,
                "driver": variant.drivername,
            },
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "SqlStore":
        variant = get_variant(config.driver)

        ca_cert_path = None
        if config.ca_cert:
            fd, ca_cert_path = tempfile.mkstemp(prefix="azurefilebroker-ca-", suffix=".pem")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config.ca_cert)

        engine = create_engine(
            variant.url(config),
            echo=config.echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args=variant.connect_args(config, ca_cert_path),
        )
        try:
            return cls(engine, variant, ca_cert_path=ca_cert_path)
        except StoreError:
            engine.dispose()
            if ca_cert_path:
                Path(ca_cert_path).unlink(missing_ok=True)
            raise

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with Session(self._engine) as session:
                yield session
        except (SQLAlchemyError, ValidationError) as e:
            logger.error(
                "Store operation failed",
                extra={
                    "event": LogEvent.STORE_ERROR,
                    "component": Component.STORE,
                    "action": action,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise StoreError(f"Failed to {action}: {e}") from e

    # Instances

    @staticmethod
    def _instance_record(instance_id: str, instance: ServiceInstance) -> ServiceInstanceRecord:
        return ServiceInstanceRecord(
            id=instance_id,
            organization_guid=instance.organization_guid,
            space_guid=instance.space_guid,
            storage_account_name=instance.storage_account_name,
            value=instance.model_dump_json(exclude={"file_shares"}),
        )

    @staticmethod
    def _share_record(share: FileShare) -> FileShareRecord:
        return FileShareRecord(
            id=share.id,
            instance_id=share.instance_id,
            file_share_name=share.file_share_name,
            value=share.model_dump_json(),
        )

    def retrieve_instance(self, instance_id: str) -> ServiceInstance:
        with self._session("retrieve instance") as session:
            record = session.get(ServiceInstanceRecord, instance_id)
            if record is None:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")
            instance = ServiceInstance.model_validate_json(record.value)
            rows = session.exec(
                select(FileShareRecord).where(FileShareRecord.instance_id == instance_id)
            ).all()
            for row in rows:
                share = FileShare.model_validate_json(row.value)
                instance.file_shares[share.file_share_name] = share
            return instance

    def create_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        with self._session("create instance") as session:
            session.add(self._instance_record(instance_id, instance))
            # Parent row first; file_shares has a foreign key on it
            try:
                session.flush()
            except IntegrityError as e:
                # Also raised for a second instance on the same account in one space
                session.rollback()
                if session.get(ServiceInstanceRecord, instance_id) is not None:
                    raise InstanceAlreadyExistsError() from e
                raise
            for share in instance.file_shares.values():
                session.add(self._share_record(share))
            session.commit()

    def update_instance(self, instance_id: str, instance: ServiceInstance) -> None:
        """Replace the instance row. Share rows are written through save_file_share."""
        with self._session("update instance") as session:
            record = session.get(ServiceInstanceRecord, instance_id)
            if record is None:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")
            updated = self._instance_record(instance_id, instance)
            record.organization_guid = updated.organization_guid
            record.space_guid = updated.space_guid
            record.storage_account_name = updated.storage_account_name
            record.value = updated.value
            session.add(record)
            session.commit()

    def delete_instance(self, instance_id: str) -> None:
        with self._session("delete instance") as session:
            record = session.get(ServiceInstanceRecord, instance_id)
            if record is None:
                raise InstanceNotFoundError(f"{instance_id} Not Found.")
            shares = session.exec(
                select(FileShareRecord).where(FileShareRecord.instance_id == instance_id)
            ).all()
            for share in shares:
                session.delete(share)
            session.flush()
            session.delete(record)
            session.commit()

    # Bindings

    def retrieve_binding(self, binding_id: str) -> BindDetails:
        with self._session("retrieve binding") as session:
            record = session.get(BindingRecord, binding_id)
            if record is None:
                raise BindingNotFoundError(f"{binding_id} Not Found.")
            return BindDetails.model_validate_json(record.value)

    def create_binding(self, binding_id: str, details: BindDetails) -> None:
        with self._session("create binding") as session:
            session.add(BindingRecord(id=binding_id, value=details.model_dump_json()))
            try:
                session.commit()
            except IntegrityError as e:
                raise BindingAlreadyExistsError() from e

    def delete_binding(self, binding_id: str) -> None:
        with self._session("delete binding") as session:
            record = session.get(BindingRecord, binding_id)
            if record is None:
                raise BindingNotFoundError(f"{binding_id} Not Found.")
            session.delete(record)
            session.commit()

    # File shares

    def retrieve_file_share(self, instance_id: str, file_share_name: str) -> FileShare | None:
        with self._session("retrieve file share") as session:
            record = session.get(FileShareRecord, file_share_id(instance_id, file_share_name))
            if record is None:
                return None
            return FileShare.model_validate_json(record.value)

    def save_file_share(self, share: FileShare) -> None:
        with self._session("save file share") as session:
            if session.get(ServiceInstanceRecord, share.instance_id) is None:
                raise InstanceNotFoundError(f"{share.instance_id} Not Found.")
            session.merge(self._share_record(share))
            session.commit()

    def delete_file_share(self, instance_id: str, file_share_name: str) -> None:
        with self._session("delete file share") as session:
            record = session.get(FileShareRecord, file_share_id(instance_id, file_share_name))
            if record is not None:
                session.delete(record)
                session.commit()

    # Locks

    def acquire_lock(self, name: str, timeout_seconds: int) -> None:
        conn = None
        try:
            conn = self._engine.connect()
            # Session-level locks must outlive any transaction on this connection
            conn.execution_options(isolation_level="AUTOCOMMIT")
            acquired = self._variant.acquire_lock(conn, name, timeout_seconds)
        except SQLAlchemyError as e:
            if conn is not None:
                conn.invalidate()
                conn.close()
            logger.error(
                "Lock acquire failed",
                extra={
                    "event": LogEvent.STORE_ERROR,
                    "component": Component.STORE,
                    "lock": name,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise StoreError(f"Failed to acquire the lock {name!r}: {e}") from e

        if not acquired:
            conn.close()
            logger.warning(
                "Lock timeout",
                extra={
                    "event": LogEvent.LOCK_TIMEOUT,
                    "component": Component.STORE,
                    "lock": name,
                    "timeout": timeout_seconds,
                },
            )
            raise LockTimeoutError(name, timeout_seconds)

        with self._lock_connections_guard:
            self._lock_connections[name] = conn
        logger.debug(
            "Lock acquired",
            extra={"event": LogEvent.LOCK_ACQUIRED, "component": Component.STORE, "lock": name},
        )

    def release_lock(self, name: str) -> None:
        with self._lock_connections_guard:
            conn = self._lock_connections.pop(name, None)
        if conn is None:
            logger.warning(
                "Lock was not held during release",
                extra={"event": LogEvent.LOCK_RELEASE_FAILED, "component": Component.STORE,
                       "lock": name},
            )
            return

        try:
            released = self._variant.release_lock(conn, name)
        except SQLAlchemyError as e:
            # Dropping the session drops its locks
            conn.invalidate()
            raise StoreError(f"Failed to release the lock {name!r}: {e}") from e
        finally:
            conn.close()

        if not released:
            logger.warning(
                "Lock was not held during release",
                extra={"event": LogEvent.LOCK_RELEASE_FAILED, "component": Component.STORE,
                       "lock": name},
            )
            return
        logger.debug(
            "Lock released",
            extra={"event": LogEvent.LOCK_RELEASED, "component": Component.STORE, "lock": name},
        )

    def save(self) -> None:
        return None

    def restore(self) -> None:
        return None

    def close(self) -> None:
        with self._lock_connections_guard:
            connections = list(self._lock_connections.values())
            self._lock_connections.clear()
        for conn in connections:
            conn.invalidate()
            conn.close()
        self._engine.dispose()
        if self._ca_cert_path:
            Path(self._ca_cert_path).unlink(missing_ok=True)
            self._ca_cert_path = None
