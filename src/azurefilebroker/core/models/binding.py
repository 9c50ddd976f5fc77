"""Request details and the parameter documents carried inside them."""

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from azurefilebroker.core.errors import MissingParametersError, RawParamsInvalidError

RawParameters = dict[str, Any] | str | bytes | None

M = TypeVar("M", bound=BaseModel)


def decode_parameters(model: type[M], raw: RawParameters) -> M:
    """Decode raw OSB parameters into model.

    Absent parameters decode as an empty object. Anything that is not a JSON
    object matching the model raises RawParamsInvalidError.
    """
    if raw is None or raw == "" or raw == b"":
        raw = {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise RawParamsInvalidError() from e
    if not isinstance(raw, dict):
        raise RawParamsInvalidError()
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise RawParamsInvalidError() from e


class ProvisionDetails(BaseModel):
    """Provision request as handed over by the protocol adapter."""

    service_id: str = ""
    plan_id: str = ""
    organization_guid: str = ""
    space_guid: str = ""
    raw_parameters: dict[str, Any] | str | None = None


class BindDetails(BaseModel):
    """Bind request; stored verbatim per binding to recover the share on unbind."""

    app_guid: str = ""
    plan_id: str = ""
    service_id: str = ""
    bind_resource: dict[str, Any] | None = None
    raw_parameters: dict[str, Any] | str | None = None


class Configuration(BaseModel):
    """Provision parameters.

    Flags arrive as strings ("true"/"false") and are interpreted when the
    storage account is resolved.
    """

    model_config = ConfigDict(extra="ignore")

    subscription_id: str = ""
    resource_group_name: str = ""
    storage_account_name: str = ""
    use_https: str = ""
    sku_name: str = ""
    location: str = ""
    custom_domain_name: str = ""
    use_sub_domain: str = ""
    enable_encryption: str = ""

    def validate_required(self) -> None:
        missing = [
            key
            for key in ("subscription_id", "resource_group_name", "storage_account_name")
            if not getattr(self, key)
        ]
        if missing:
            raise MissingParametersError(
                f"Missing required parameters: {', '.join(missing)}"
            )


class BindOptions(BaseModel):
    """Bind parameters: the share to mount plus optional mount options."""

    model_config = ConfigDict(extra="ignore")

    share: str = ""
    uid: str = ""
    gid: str = ""
    file_mode: str = ""
    dir_mode: str = ""
    readonly: bool = False
    vers: str = ""
    mount: str = ""

    def to_map(self) -> dict[str, str]:
        """Mount option entries requested by the caller (share and mount omitted)."""
        ret: dict[str, str] = {}
        for key in ("uid", "gid", "file_mode", "dir_mode"):
            value = getattr(self, key)
            if value:
                ret[key] = value
        if self.readonly:
            ret["readonly"] = "true"
        if self.vers:
            ret["vers"] = self.vers
        return ret
