"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseSettings):
    """Catalog identity registered with the cloud controller."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_")

    name: str = Field(default="azuresmbvolume")
    id: str = Field(default="06948cb0-cad7-4buh-leba-9ed8b5c345a3")
    plan_name: str = Field(default="AzureFileShare")
    plan_id: str = Field(default="06948cb0-cad7-4buh-leba-9ed8b5c345a4")


class DatabaseConfig(BaseSettings):
    """Broker state store configuration.

    driver=file keeps the state in a JSON document (single broker process).
    Any SQL driver allows several broker processes to share the state.
    """

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    driver: Literal["file", "mysql", "mssql", "postgresql"] = Field(default="file")
    file_name: str = Field(default="/var/vcap/data/azurefilebroker/state.json")

    hostname: str = Field(default="")
    port: int | None = Field(default=None)
    name: str = Field(default="")
    username: str = Field(default="")
    password: str = Field(default="")
    # PEM content; enables TLS verification of the database server
    ca_cert: str = Field(default="")

    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    connect_timeout: int = Field(default=30)  # seconds

    @model_validator(mode="after")
    def _check_sql_fields(self) -> "DatabaseConfig":
        if self.driver == "file":
            return self
        missing = [key for key in ("hostname", "name") if not getattr(self, key)]
        if missing:
            raise ValueError(
                f"database {', '.join(missing)} required when driver is {self.driver!r}"
            )
        return self


class AzureConfig(BaseSettings):
    """Azure service principal and defaults for new storage accounts."""

    model_config = SettingsConfigDict(env_prefix="AZURE_")

    environment: Literal[
        "AzureCloud",
        "AzureChinaCloud",
        "AzureUSGovernment",
        "AzureGermanCloud",
        "AzureStack",
    ] = Field(default="AzureCloud")
    tenant_id: str = Field(default="")
    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    default_subscription_id: str = Field(default="")
    default_resource_group_name: str = Field(default="")

    # AzureStack only
    azure_stack_domain: str = Field(default="")
    azure_stack_authentication: Literal["", "AzureAD", "AzureStackAD", "AzureStack"] = Field(
        default=""
    )
    azure_stack_resource: str = Field(default="")
    azure_stack_endpoint_prefix: str = Field(default="")

    @model_validator(mode="after")
    def _check_azure_stack(self) -> "AzureConfig":
        if self.environment != "AzureStack":
            return self
        missing = [
            key
            for key in (
                "azure_stack_domain",
                "azure_stack_authentication",
                "azure_stack_resource",
                "azure_stack_endpoint_prefix",
            )
            if not getattr(self, key)
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} required when environment is AzureStack")
        return self

    def require_credentials(self) -> None:
        """Raise ValueError unless the service principal is fully configured."""
        missing = [
            key for key in ("tenant_id", "client_id", "client_secret") if not getattr(self, key)
        ]
        if missing:
            raise ValueError(f"Azure credentials missing: {', '.join(missing)}")


class ControlConfig(BaseSettings):
    """What the broker may create or delete on behalf of users."""

    model_config = SettingsConfigDict(env_prefix="CONTROL_")

    allow_create_storage_account: bool = Field(default=True)
    allow_create_file_share: bool = Field(default=True)
    # Deletion only ever applies to resources the broker created itself
    allow_delete_storage_account: bool = Field(default=False)
    allow_delete_file_share: bool = Field(default=False)


class MountConfig(BaseSettings):
    """Mount options policy for bindings.

    A default for an option missing from allowed_options is forced and
    cannot be overridden by a binding.
    """

    model_config = SettingsConfigDict(env_prefix="MOUNT_")

    allowed_options: str = Field(default="share,uid,gid,file_mode,dir_mode,readonly,vers,mount")
    default_options: str = Field(default="vers:3.0")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Standard fields added to all logs:
    - schema_version: Log schema version for backwards compatibility
    - service: Service name (azurefilebroker)
    """

    model_config = SettingsConfigDict(env_prefix="LOGGING_")

    level: str = Field(default="INFO")
    schema_version: str = Field(default="1.0")
    service_name: str = Field(default="azurefilebroker")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AZUREFILEBROKER_",
        env_nested_delimiter="__",
    )

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    azure: AzureConfig = Field(default_factory=AzureConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)
    mount: MountConfig = Field(default_factory=MountConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    return Settings()
