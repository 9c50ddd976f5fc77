"""Results returned to the protocol adapter."""

from typing import Any

from pydantic import BaseModel, Field

DRIVER_NAME = "smbdriver"
DEVICE_TYPE_SHARED = "shared"
PERMISSION_VOLUME_MOUNT = "volume_mount"


class ServicePlan(BaseModel):
    id: str
    name: str
    description: str


class Service(BaseModel):
    """Catalog entry for the broker's single service."""

    id: str
    name: str
    description: str
    bindable: bool = True
    plan_updateable: bool = False
    tags: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)
    plans: list[ServicePlan] = Field(default_factory=list)


class ProvisionedServiceSpec(BaseModel):
    is_async: bool = False
    dashboard_url: str = ""
    operation_data: str = ""


class DeprovisionServiceSpec(BaseModel):
    is_async: bool = False
    operation_data: str = ""


class SharedDevice(BaseModel):
    volume_id: str
    mount_config: dict[str, Any] = Field(default_factory=dict)


class VolumeMount(BaseModel):
    driver: str = DRIVER_NAME
    container_dir: str
    mode: str
    device_type: str = DEVICE_TYPE_SHARED
    device: SharedDevice


class Binding(BaseModel):
    # Cloud controller rejects a binding without a credentials object
    credentials: dict[str, Any] = Field(default_factory=dict)
    volume_mounts: list[VolumeMount] = Field(default_factory=list)
