"""Azure cloud endpoints per environment."""

from dataclasses import dataclass

from azure.identity import AzureAuthorityHosts

from azurefilebroker.app.config import AzureConfig


@dataclass(frozen=True)
class CloudEnvironment:
    resource_manager_url: str
    authority_host: str
    # Token audience; the ARM endpoint itself unless the cloud uses its own
    credential_scope: str


ENVIRONMENTS: dict[str, CloudEnvironment] = {
    "AzureCloud": CloudEnvironment(
        resource_manager_url="https://management.azure.com/",
        authority_host=AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
        credential_scope="https://management.azure.com/.default",
    ),
    "AzureChinaCloud": CloudEnvironment(
        resource_manager_url="https://management.chinacloudapi.cn/",
        authority_host=AzureAuthorityHosts.AZURE_CHINA,
        credential_scope="https://management.chinacloudapi.cn/.default",
    ),
    "AzureUSGovernment": CloudEnvironment(
        resource_manager_url="https://management.usgovcloudapi.net/",
        authority_host=AzureAuthorityHosts.AZURE_GOVERNMENT,
        credential_scope="https://management.usgovcloudapi.net/.default",
    ),
    "AzureGermanCloud": CloudEnvironment(
        resource_manager_url="https://management.microsoftazure.de/",
        authority_host="login.microsoftonline.de",
        credential_scope="https://management.microsoftazure.de/.default",
    ),
}


def resolve_environment(config: AzureConfig) -> CloudEnvironment:
    """Endpoints for the configured cloud.

    AzureStack endpoints are derived from the deployment's domain and
    endpoint prefix. AzureAD authentication goes through the public
    login endpoint; AD FS based stacks authenticate against adfs.<domain>.
    """
    if config.environment != "AzureStack":
        return ENVIRONMENTS[config.environment]

    domain = config.azure_stack_domain.strip(".")
    if config.azure_stack_authentication == "AzureAD":
        authority_host = AzureAuthorityHosts.AZURE_PUBLIC_CLOUD
    else:
        authority_host = f"adfs.{domain}"
    return CloudEnvironment(
        resource_manager_url=f"https://{config.azure_stack_endpoint_prefix}.{domain}/",
        authority_host=authority_host,
        credential_scope=f"{config.azure_stack_resource.rstrip('/')}/.default",
    )
