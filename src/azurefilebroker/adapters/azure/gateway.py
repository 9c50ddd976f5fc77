"""Azure storage account gateway.

Account lifecycle goes through Azure Resource Manager (azure-mgmt-storage);
file shares go through the account's file endpoint with the primary
account key (azure-storage-file-share). Clients are created lazily and
reused for the lifetime of the gateway, which is one broker operation.
"""

import logging
import re

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.identity import ClientSecretCredential
from azure.mgmt.storage import StorageManagementClient
from azure.storage.fileshare import ShareServiceClient

from azurefilebroker.adapters.azure.environments import CloudEnvironment, resolve_environment
from azurefilebroker.app.config import AzureConfig
from azurefilebroker.core.errors import UpstreamError
from azurefilebroker.core.interfaces import GatewayFactory, StorageAccountGateway
from azurefilebroker.core.logging_schema import Component, LogEvent
from azurefilebroker.core.models import StorageAccount

logger = logging.getLogger(__name__)

USER_AGENT = "azurefilebroker"
CREATOR_TAG = {"creator": "azurefilebroker"}
FILE_REQUEST_TIMEOUT = 60  # seconds
ACCOUNT_KIND = "StorageV2"

_FILE_ENDPOINT_RE = re.compile(r"https?://([^.]*)\.([^.]*)\.([^/]*).*")


def parse_base_url(file_endpoint: str) -> str:
    """Extract the storage domain from a file endpoint.

    https://acct.file.core.windows.net/ -> core.windows.net
    """
    match = _FILE_ENDPOINT_RE.match(file_endpoint or "")
    if match is None:
        raise UpstreamError(f"Error in parsing baseURL from fileEndpoint: {file_endpoint!r}")
    return match.group(3)


class AzureStorageAccountGateway(StorageAccountGateway):
    """Gateway for one storage account, bound to one Azure environment."""

    def __init__(self, account: StorageAccount, azure_config: AzureConfig) -> None:
        self._account = account
        self._config = azure_config
        self._environment: CloudEnvironment = resolve_environment(azure_config)
        self._management_client: StorageManagementClient | None = None
        self._share_service: ShareServiceClient | None = None
        self._base_url = ""
        self._access_key = ""

    @property
    def account(self) -> StorageAccount:
        return self._account

    @property
    def management_client(self) -> StorageManagementClient:
        """Lazy-load Storage Management client."""
        if self._management_client is None:
            credential = ClientSecretCredential(
                tenant_id=self._config.tenant_id,
                client_id=self._config.client_id,
                client_secret=self._config.client_secret,
                authority=self._environment.authority_host,
            )
            self._management_client = StorageManagementClient(
                credential=credential,
                subscription_id=self._account.subscription_id,
                base_url=self._environment.resource_manager_url,
                credential_scopes=[self._environment.credential_scope],
                user_agent=USER_AGENT,
            )
        return self._management_client

    def _log_failure(self, action: str, e: Exception, **fields: str) -> None:
        logger.error(
            "Azure call failed",
            extra={
                "component": Component.AZURE,
                "action": action,
                "storage_account": self._account.storage_account_name,
                "error_type": type(e).__name__,
                "error": str(e),
                **fields,
            },
        )

    def _base(self) -> str:
        if not self._base_url:
            try:
                properties = self.management_client.storage_accounts.get_properties(
                    self._account.resource_group_name, self._account.storage_account_name
                )
            except AzureError as e:
                self._log_failure("get_properties", e)
                raise UpstreamError(
                    f"Failed to get the properties of {self._account.describe()}: {e}"
                ) from e
            self._base_url = parse_base_url(properties.primary_endpoints.file)
        return self._base_url

    def exists(self) -> bool:
        try:
            self._base()
        except UpstreamError as e:
            if isinstance(e.__cause__, ResourceNotFoundError):
                return False
            raise
        return True

    def create(self) -> None:
        account = self._account
        parameters: dict = {
            "sku": {"name": account.sku_name.value},
            "kind": ACCOUNT_KIND,
            "location": account.location,
            "tags": dict(CREATOR_TAG),
            "enable_https_traffic_only": account.use_https,
        }
        if account.custom_domain_name:
            parameters["custom_domain"] = {
                "name": account.custom_domain_name,
                "use_sub_domain_name": account.use_sub_domain,
            }
        if account.enable_encryption:
            parameters["encryption"] = {
                "services": {"file": {"enabled": True}},
                "key_source": "Microsoft.Storage",
            }

        try:
            poller = self.management_client.storage_accounts.begin_create(
                account.resource_group_name, account.storage_account_name, parameters
            )
            poller.result()
        except AzureError as e:
            self._log_failure("create_account", e)
            raise UpstreamError(f"Failed to create {account.describe()}: {e}") from e

        logger.info(
            "Storage account created",
            extra={
                "event": LogEvent.ACCOUNT_CREATED,
                "component": Component.AZURE,
                "storage_account": account.storage_account_name,
                "location": account.location,
                "sku": account.sku_name.value,
            },
        )

    def delete(self) -> None:
        try:
            self.management_client.storage_accounts.delete(
                self._account.resource_group_name, self._account.storage_account_name
            )
        except AzureError as e:
            self._log_failure("delete_account", e)
            raise UpstreamError(f"Failed to delete {self._account.describe()}: {e}") from e

        logger.info(
            "Storage account deleted",
            extra={
                "event": LogEvent.ACCOUNT_DELETED,
                "component": Component.AZURE,
                "storage_account": self._account.storage_account_name,
            },
        )

    def get_access_key(self) -> str:
        if not self._access_key:
            try:
                result = self.management_client.storage_accounts.list_keys(
                    self._account.resource_group_name, self._account.storage_account_name
                )
            except AzureError as e:
                self._log_failure("list_keys", e)
                raise UpstreamError(f"Failed to list keys: {e}") from e
            if not result.keys:
                raise UpstreamError(f"No access key for {self._account.describe()}")
            self._access_key = result.keys[0].value
        return self._access_key

    @property
    def share_service(self) -> ShareServiceClient:
        """Lazy-load the file service client, authenticated with the account key."""
        if self._share_service is None:
            scheme = "https" if self._account.use_https else "http"
            account_url = f"{scheme}://{self._account.storage_account_name}.file.{self._base()}"
            self._share_service = ShareServiceClient(
                account_url=account_url,
                credential=self.get_access_key(),
                user_agent=USER_AGENT,
            )
        return self._share_service

    def has_share(self, name: str) -> bool:
        share = self.share_service.get_share_client(name)
        try:
            share.get_share_properties(timeout=FILE_REQUEST_TIMEOUT)
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            self._log_failure("get_share_properties", e, file_share=name)
            raise UpstreamError(str(e)) from e
        return True

    def create_share(self, name: str) -> None:
        share = self.share_service.get_share_client(name)
        try:
            share.create_share(timeout=FILE_REQUEST_TIMEOUT)
        except AzureError as e:
            self._log_failure("create_share", e, file_share=name)
            raise UpstreamError(str(e)) from e

    def delete_share(self, name: str) -> None:
        share = self.share_service.get_share_client(name)
        try:
            share.delete_share(timeout=FILE_REQUEST_TIMEOUT)
        except AzureError as e:
            self._log_failure("delete_share", e, file_share=name)
            raise UpstreamError(str(e)) from e

    def get_share_url(self, name: str) -> str:
        return f"//{self._account.storage_account_name}.file.{self._base()}/{name}"


def azure_gateway_factory(azure_config: AzureConfig) -> GatewayFactory:
    """Gateway factory bound to the broker's Azure configuration."""

    def factory(account: StorageAccount) -> StorageAccountGateway:
        return AzureStorageAccountGateway(account, azure_config)

    return factory
