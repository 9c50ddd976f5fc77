"""Service instance and file share records."""

from enum import StrEnum

from pydantic import BaseModel, Field


class OperationStatus(StrEnum):
    """Status of the last operation on a service instance."""

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"


def file_share_id(instance_id: str, file_share_name: str) -> str:
    """Key used for share rows and the per-share advisory lock."""
    return f"{instance_id}-{file_share_name}"


class FileShare(BaseModel):
    """A file share referenced by the bindings of one service instance.

    count is the number of active bindings. is_created records whether the
    broker created the Azure share (adopted shares are never deleted).
    """

    instance_id: str
    file_share_name: str
    is_created: bool = False
    count: int = Field(default=0, ge=0)
    url: str = ""

    @property
    def id(self) -> str:
        return file_share_id(self.instance_id, self.file_share_name)


class ServiceInstance(BaseModel):
    """A provisioned service instance mapped to one Azure storage account."""

    service_id: str = ""
    plan_id: str = ""
    organization_guid: str = ""
    space_guid: str = ""
    subscription_id: str
    resource_group_name: str
    storage_account_name: str
    use_https: bool = True
    is_created_storage_account: bool = False
    operation_status: OperationStatus = OperationStatus.SUCCESS
    operation_url: str = ""
    file_shares: dict[str, FileShare] = Field(default_factory=dict)
