"""Storage account coordinates resolved from provision parameters."""

from enum import StrEnum

from pydantic import BaseModel

from azurefilebroker.core.errors import InvalidParametersError
from azurefilebroker.core.models.binding import Configuration

DEFAULT_LOCATION = "westus"


class SkuName(StrEnum):
    """Storage account SKUs the broker may create."""

    STANDARD_GRS = "Standard_GRS"
    STANDARD_LRS = "Standard_LRS"
    STANDARD_RAGRS = "Standard_RAGRS"
    STANDARD_ZRS = "Standard_ZRS"


def _parse_bool(value: str, default: bool) -> bool:
    # Unparsable flags keep the default
    normalized = value.strip().lower()
    if normalized in ("1", "t", "true"):
        return True
    if normalized in ("0", "f", "false"):
        return False
    return default


class StorageAccount(BaseModel):
    subscription_id: str
    resource_group_name: str
    storage_account_name: str
    use_https: bool = True
    sku_name: SkuName = SkuName.STANDARD_RAGRS
    location: str = DEFAULT_LOCATION
    custom_domain_name: str = ""
    use_sub_domain: bool = False
    enable_encryption: bool = False

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "StorageAccount":
        """Apply defaults and validate the SKU.

        Raises:
            InvalidParametersError: sku_name is not a supported SKU.
        """
        sku_name = SkuName.STANDARD_RAGRS
        if configuration.sku_name:
            try:
                sku_name = SkuName(configuration.sku_name)
            except ValueError:
                raise InvalidParametersError(
                    f"The SkuName {configuration.sku_name!r} to create the storage account "
                    "is invalid. It must be Standard_GRS, Standard_LRS, Standard_RAGRS "
                    "or Standard_ZRS"
                ) from None

        return cls(
            subscription_id=configuration.subscription_id,
            resource_group_name=configuration.resource_group_name,
            storage_account_name=configuration.storage_account_name,
            use_https=_parse_bool(configuration.use_https, True),
            sku_name=sku_name,
            location=configuration.location or DEFAULT_LOCATION,
            custom_domain_name=configuration.custom_domain_name,
            use_sub_domain=_parse_bool(configuration.use_sub_domain, False),
            enable_encryption=_parse_bool(configuration.enable_encryption, False),
        )

    def describe(self) -> str:
        return (
            f"the storage account {self.storage_account_name!r} under the resource group "
            f"{self.resource_group_name!r} in the subscription {self.subscription_id!r}"
        )
