"""Service broker for Azure file shares.

Provision maps a service instance onto a storage account (reused or
created). Bind mounts one file share of that account into an application;
shares are reference counted per instance so that the share is created by
the first binding and, when the broker created it, removed by the last
unbinding.

All operations of one Broker are serialized by a single mutex. Several
broker processes may share a SQL store; the per-share store lock keeps
their reference counts consistent.
"""

import hashlib
import json
import logging
import posixpath
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from azurefilebroker.app.config import Settings, get_settings
from azurefilebroker.app.logging import clear_operation_context, set_operation_id
from azurefilebroker.app.metrics import (
    BROKER_OPERATION_DURATION,
    BROKER_OPERATIONS_TOTAL,
    FILE_SHARE_TRANSITIONS_TOTAL,
    LOCK_WAIT_DURATION,
)
from azurefilebroker.core.errors import (
    AppGuidNotProvidedError,
    BindingAlreadyExistsError,
    BrokerError,
    FileShareNotFoundError,
    InstanceAlreadyExistsError,
    MissingParametersError,
    PolicyViolationError,
    StoreError,
    UnrecognizedOperationError,
    UpstreamError,
)
from azurefilebroker.core.interfaces import GatewayFactory, StorageAccountGateway, Store
from azurefilebroker.core.logging_schema import Component, LogEvent
from azurefilebroker.core.models import (
    BindDetails,
    Binding,
    BindOptions,
    Configuration,
    DeprovisionServiceSpec,
    FileShare,
    MountOptions,
    ProvisionDetails,
    ProvisionedServiceSpec,
    Service,
    ServiceInstance,
    ServicePlan,
    SharedDevice,
    StorageAccount,
    VolumeMount,
    decode_parameters,
    file_share_id,
)
from azurefilebroker.core.models.results import PERMISSION_VOLUME_MOUNT

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 30
CONTAINER_ROOT = "/var/vcap/data"
OPERATION_DEPROVISION = "deprovision"


def volume_hash(mount_config: dict[str, Any]) -> str:
    """MD5 of the canonical JSON encoding (sorted keys, no whitespace)."""
    data = json.dumps(mount_config, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(data.encode()).hexdigest()


def container_path(options: BindOptions, instance_id: str) -> str:
    if options.mount:
        return options.mount
    return posixpath.join(CONTAINER_ROOT, instance_id)


def read_only_to_mode(readonly: bool) -> str:
    return "r" if readonly else "rw"


def _storage_account_of(instance: ServiceInstance) -> StorageAccount:
    return StorageAccount(
        subscription_id=instance.subscription_id,
        resource_group_name=instance.resource_group_name,
        storage_account_name=instance.storage_account_name,
        use_https=instance.use_https,
    )


class Broker:
    """Open Service Broker operations over a Store and Azure gateways.

    Args:
        store: Broker state persistence
        gateway_factory: Builds a gateway for a storage account
        settings: Broker settings (defaults to get_settings())
    """

    def __init__(
        self,
        store: Store,
        gateway_factory: GatewayFactory,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._gateway_factory = gateway_factory
        self._service = settings.service
        self._azure = settings.azure
        self._control = settings.control
        self._mount_options = MountOptions.from_strings(
            settings.mount.allowed_options, settings.mount.default_options
        )
        self._mutex = threading.Lock()

        logger.info(
            "Broker created",
            extra={
                "event": LogEvent.BROKER_CREATED,
                "component": Component.BROKER,
                "allowed_options": self._mount_options.allowed,
                "default_options": self._mount_options.options,
                "forced_options": self._mount_options.forced,
                "allow_create_storage_account": self._control.allow_create_storage_account,
                "allow_create_file_share": self._control.allow_create_file_share,
                "allow_delete_storage_account": self._control.allow_delete_storage_account,
                "allow_delete_file_share": self._control.allow_delete_file_share,
            },
        )

    @property
    def store(self) -> Store:
        return self._store

    @contextmanager
    def _operation(self, operation: str, **fields: str) -> Iterator[None]:
        """Log, time and count one broker operation under a fresh operation_id."""
        set_operation_id()
        start = time.monotonic()
        logger.info(
            "Operation started",
            extra={"event": LogEvent.OPERATION_STARTED, "component": Component.BROKER,
                   "operation": operation, **fields},
        )
        result = "success"
        try:
            yield
        except BrokerError as e:
            result = e.code.value.lower()
            logger.warning(
                "Operation failed",
                extra={
                    "event": LogEvent.OPERATION_FAILED,
                    "component": Component.BROKER,
                    "operation": operation,
                    "error_code": e.code.value,
                    "error": e.message,
                    **fields,
                },
            )
            raise
        except Exception:
            result = "internal_error"
            logger.exception(
                "Operation failed",
                extra={"event": LogEvent.OPERATION_FAILED, "component": Component.BROKER,
                       "operation": operation, **fields},
            )
            raise
        else:
            logger.info(
                "Operation succeeded",
                extra={
                    "event": LogEvent.OPERATION_SUCCESS,
                    "component": Component.BROKER,
                    "operation": operation,
                    "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    **fields,
                },
            )
        finally:
            BROKER_OPERATIONS_TOTAL.labels(operation=operation, result=result).inc()
            BROKER_OPERATION_DURATION.labels(operation=operation).observe(
                time.monotonic() - start
            )
            clear_operation_context()

    @contextmanager
    def _share_lock(self, name: str) -> Iterator[None]:
        """Hold the store lock for one share; always released on exit."""
        start = time.monotonic()
        self._store.acquire_lock(name, LOCK_TIMEOUT_SECONDS)
        LOCK_WAIT_DURATION.observe(time.monotonic() - start)
        try:
            yield
        finally:
            try:
                self._store.release_lock(name)
            except StoreError as e:
                # The lock dies with the invalidated session
                logger.error(
                    "Failed to release lock",
                    extra={"event": LogEvent.LOCK_RELEASE_FAILED, "component": Component.BROKER,
                           "lock": name, "error": e.message},
                )

    # Catalog

    def services(self) -> list[Service]:
        return [
            Service(
                id=self._service.id,
                name=self._service.name,
                description="Azure File Service",
                bindable=True,
                plan_updateable=False,
                tags=["azurefile", "smb"],
                requires=[PERMISSION_VOLUME_MOUNT],
                plans=[
                    ServicePlan(
                        id=self._service.plan_id,
                        name=self._service.plan_name,
                        description="Azure File Share",
                    )
                ],
            )
        ]

    # Provision / Deprovision

    def provision(
        self, instance_id: str, details: ProvisionDetails, async_allowed: bool = False
    ) -> ProvisionedServiceSpec:
        """Provision a service instance on a new or existing storage account.

        Raises:
            RawParamsInvalidError: Parameters are not a JSON object.
            MissingParametersError: Account coordinates missing after defaults.
            InvalidParametersError: Unsupported sku_name.
            InstanceAlreadyExistsError: instance_id already provisioned.
            PolicyViolationError: Account absent and creation disallowed.
            UpstreamError: Azure call failed.
        """
        with self._operation("provision", instance_id=instance_id):
            configuration = decode_parameters(Configuration, details.raw_parameters)
            if not configuration.subscription_id:
                configuration.subscription_id = self._azure.default_subscription_id
            if not configuration.resource_group_name:
                configuration.resource_group_name = self._azure.default_resource_group_name
            configuration.validate_required()
            account = StorageAccount.from_configuration(configuration)

            with self._mutex:
                # Checked before any account lookup so a conflict makes no Azure calls
                if self._store.is_instance_conflict(instance_id):
                    raise InstanceAlreadyExistsError()

                is_created = self._ensure_storage_account(account)

                instance = ServiceInstance(
                    service_id=details.service_id,
                    plan_id=details.plan_id,
                    organization_guid=details.organization_guid,
                    space_guid=details.space_guid,
                    subscription_id=account.subscription_id,
                    resource_group_name=account.resource_group_name,
                    storage_account_name=account.storage_account_name,
                    use_https=account.use_https,
                    is_created_storage_account=is_created,
                )
                self._store.create_instance(instance_id, instance)

        return ProvisionedServiceSpec(is_async=False)

    def _ensure_storage_account(self, account: StorageAccount) -> bool:
        """Reuse or create the account. True if the broker created it."""
        gateway = self._gateway_factory(account)
        try:
            exists = gateway.exists()
        except UpstreamError as e:
            raise UpstreamError(
                f"Failed to check whether storage account exists: {e.message}"
            ) from e

        if exists:
            logger.info(
                "Storage account exists",
                extra={"event": LogEvent.ACCOUNT_REUSED, "component": Component.BROKER,
                       "storage_account": account.storage_account_name},
            )
            return False

        if not self._control.allow_create_storage_account:
            raise PolicyViolationError(
                f"The storage account {account.storage_account_name!r} does not exist "
                f"under the resource group {account.resource_group_name!r} in the "
                f"subscription {account.subscription_id!r} and the administrator does not "
                "allow to create it automatically"
            )

        gateway.create()
        return True

    def deprovision(
        self, instance_id: str, details: Any = None, async_allowed: bool = False
    ) -> DeprovisionServiceSpec:
        """Remove the instance; delete its account only if the broker created it.

        Raises:
            InstanceNotFoundError: Unknown instance_id.
            UpstreamError: Account deletion failed; the instance is kept.
        """
        with self._operation("deprovision", instance_id=instance_id), self._mutex:
            instance = self._store.retrieve_instance(instance_id)

            if (
                instance.is_created_storage_account
                and self._control.allow_delete_storage_account
            ):
                self._delete_storage_account(_storage_account_of(instance))

            self._store.delete_instance(instance_id)

        return DeprovisionServiceSpec(is_async=False, operation_data=OPERATION_DEPROVISION)

    def _delete_storage_account(self, account: StorageAccount) -> None:
        gateway = self._gateway_factory(account)
        try:
            exists = gateway.exists()
        except UpstreamError as e:
            raise UpstreamError(f"Failed to delete {account.describe()}: {e.message}") from e
        if not exists:
            logger.info(
                "Storage account already deleted",
                extra={"event": LogEvent.ACCOUNT_DELETED, "component": Component.BROKER,
                       "storage_account": account.storage_account_name},
            )
            return
        gateway.delete()

    # Bind / Unbind

    def bind(
        self,
        instance_id: str,
        binding_id: str,
        details: BindDetails,
        async_allowed: bool = False,
    ) -> Binding:
        """Reference the requested share and return its volume mount.

        Raises:
            AppGuidNotProvidedError: No app_guid in the request.
            RawParamsInvalidError: Parameters are not a JSON object.
            MissingParametersError: No share given.
            InvalidMountOptionsError: A requested mount option is not allowed.
            InstanceNotFoundError: Unknown instance_id.
            LockTimeoutError: Share lock not acquired in time.
            PolicyViolationError: Share absent and creation disallowed.
            BindingAlreadyExistsError: binding_id already bound.
            UpstreamError: Azure call failed.
        """
        with self._operation("bind", instance_id=instance_id, binding_id=binding_id):
            if not details.app_guid:
                raise AppGuidNotProvidedError()

            options = decode_parameters(BindOptions, details.raw_parameters)
            if not options.share:
                raise MissingParametersError('Missing required parameters: "share"')

            mount_options = self._mount_options.copy()
            mount_options.set_entries(options.to_map())

            with self._mutex:
                instance = self._store.retrieve_instance(instance_id)
                gateway = self._gateway_factory(_storage_account_of(instance))

                with self._share_lock(file_share_id(instance_id, options.share)):
                    share = self._reconcile_bind_share(
                        instance_id, instance, options.share, gateway
                    )
                    self._store.save_file_share(share)

                # The share count is already incremented when this fires
                if self._store.is_binding_conflict(binding_id):
                    raise BindingAlreadyExistsError()
                self._store.create_binding(binding_id, details)

                mount_config: dict[str, Any] = mount_options.make_config()
                mount_config["source"] = share.url
                mount_config["username"] = instance.storage_account_name
                volume_id = f"{instance_id}-{volume_hash(mount_config)}"
                # Not part of the volume id
                mount_config["password"] = gateway.get_access_key()

        return Binding(
            credentials={},
            volume_mounts=[
                VolumeMount(
                    container_dir=container_path(options, instance_id),
                    mode=read_only_to_mode(options.readonly),
                    device=SharedDevice(volume_id=volume_id, mount_config=mount_config),
                )
            ],
        )

    def _reconcile_bind_share(
        self,
        instance_id: str,
        instance: ServiceInstance,
        name: str,
        gateway: StorageAccountGateway,
    ) -> FileShare:
        """Return the share record with one more reference. Caller holds the share lock."""
        share = self._store.retrieve_file_share(instance_id, name)
        if share is not None:
            share.count += 1
            logger.info(
                "File share referenced",
                extra={"event": LogEvent.SHARE_REFERENCED, "component": Component.BROKER,
                       "instance_id": instance_id, "file_share": name, "count": share.count},
            )
            return share

        try:
            exists = gateway.has_share(name)
        except UpstreamError as e:
            raise UpstreamError(
                f"Failed to check whether the file share {name!r} exists: {e.message}"
            ) from e

        share = FileShare(instance_id=instance_id, file_share_name=name)
        if exists:
            share.count = 1
            share.url = gateway.get_share_url(name)
            FILE_SHARE_TRANSITIONS_TOTAL.labels(transition="adopted").inc()
            logger.info(
                "Existing file share adopted",
                extra={"event": LogEvent.SHARE_ADOPTED, "component": Component.BROKER,
                       "instance_id": instance_id, "file_share": name},
            )
            return share

        if not self._control.allow_create_file_share:
            raise PolicyViolationError(
                f"The file share {name!r} does not exist in the storage account "
                f"{instance.storage_account_name!r} and the administrator does not allow "
                "to create it automatically"
            )
        try:
            gateway.create_share(name)
        except UpstreamError as e:
            raise UpstreamError(
                f"Failed to create file share {name!r} in the storage account "
                f"{instance.storage_account_name!r}: {e.message}"
            ) from e

        share.is_created = True
        share.count = 1
        share.url = gateway.get_share_url(name)
        FILE_SHARE_TRANSITIONS_TOTAL.labels(transition="created").inc()
        logger.info(
            "File share created",
            extra={"event": LogEvent.SHARE_CREATED, "component": Component.BROKER,
                   "instance_id": instance_id, "file_share": name},
        )
        return share

    def unbind(
        self,
        instance_id: str,
        binding_id: str,
        details: Any = None,
        async_allowed: bool = False,
    ) -> None:
        """Drop one reference to the bound share and forget the binding.

        Raises:
            InstanceNotFoundError: Unknown instance_id.
            BindingNotFoundError: Unknown binding_id.
            FileShareNotFoundError: The bound share has no record.
            LockTimeoutError: Share lock not acquired in time.
        """
        with self._operation("unbind", instance_id=instance_id, binding_id=binding_id):
            with self._mutex:
                instance = self._store.retrieve_instance(instance_id)
                bind_details = self._store.retrieve_binding(binding_id)
                options = decode_parameters(BindOptions, bind_details.raw_parameters)

                share_id = file_share_id(instance_id, options.share)
                with self._share_lock(share_id):
                    share = self._store.retrieve_file_share(instance_id, options.share)
                    if share is None:
                        raise FileShareNotFoundError(f"{share_id} Not Found.")
                    self._release_share(instance, share)

                self._store.delete_binding(binding_id)

    def _release_share(self, instance: ServiceInstance, share: FileShare) -> None:
        """Drop one reference. Caller holds the share lock."""
        share.count = max(share.count - 1, 0)
        fields = {"instance_id": share.instance_id, "file_share": share.file_share_name}

        if share.count > 0:
            self._store.save_file_share(share)
            logger.info(
                "File share released",
                extra={"event": LogEvent.SHARE_RELEASED, "component": Component.BROKER,
                       "count": share.count, **fields},
            )
            return

        if share.is_created and self._control.allow_delete_file_share:
            gateway = self._gateway_factory(_storage_account_of(instance))
            try:
                gateway.delete_share(share.file_share_name)
            except UpstreamError as e:
                # TODO: decide with product whether a failed delete should fail the unbind
                FILE_SHARE_TRANSITIONS_TOTAL.labels(transition="delete_failed").inc()
                logger.warning(
                    "Failed to delete the file share %r in the storage account %r",
                    share.file_share_name,
                    instance.storage_account_name,
                    extra={"event": LogEvent.SHARE_DELETE_FAILED, "component": Component.BROKER,
                           "error": e.message, **fields},
                )
            else:
                FILE_SHARE_TRANSITIONS_TOTAL.labels(transition="deleted").inc()
                logger.info(
                    "File share deleted",
                    extra={"event": LogEvent.SHARE_DELETED, "component": Component.BROKER,
                           **fields},
                )

        self._store.delete_file_share(share.instance_id, share.file_share_name)
        logger.info(
            "File share record removed",
            extra={"event": LogEvent.SHARE_RECORD_REMOVED, "component": Component.BROKER,
                   **fields},
        )

    # Last operation

    def last_operation(self, instance_id: str, operation_data: str = "") -> None:
        """Every operation completes synchronously; there is nothing to poll.

        Raises:
            UnrecognizedOperationError: Always.
        """
        with self._operation("last_operation", instance_id=instance_id), self._mutex:
            raise UnrecognizedOperationError()
