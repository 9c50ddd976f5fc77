"""Broker data model."""

from azurefilebroker.core.models.binding import (
    BindDetails,
    BindOptions,
    Configuration,
    ProvisionDetails,
    decode_parameters,
)
from azurefilebroker.core.models.instance import (
    FileShare,
    OperationStatus,
    ServiceInstance,
    file_share_id,
)
from azurefilebroker.core.models.mount import MountOptions
from azurefilebroker.core.models.results import (
    Binding,
    DeprovisionServiceSpec,
    ProvisionedServiceSpec,
    Service,
    ServicePlan,
    SharedDevice,
    VolumeMount,
)
from azurefilebroker.core.models.storage_account import SkuName, StorageAccount

__all__ = [
    # Requests
    "BindDetails",
    "BindOptions",
    "Configuration",
    "ProvisionDetails",
    "decode_parameters",
    # Records
    "FileShare",
    "OperationStatus",
    "ServiceInstance",
    "file_share_id",
    "MountOptions",
    "SkuName",
    "StorageAccount",
    # Results
    "Binding",
    "DeprovisionServiceSpec",
    "ProvisionedServiceSpec",
    "Service",
    "ServicePlan",
    "SharedDevice",
    "VolumeMount",
]
