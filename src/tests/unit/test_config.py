"""Tests for settings defaults and validation."""

import pytest
from pydantic import ValidationError

from azurefilebroker.app.config import (
    AzureConfig,
    ControlConfig,
    DatabaseConfig,
    MountConfig,
    Settings,
)


class TestDefaults:
    def test_control_defaults(self) -> None:
        """Creation is allowed, deletion is opt-in."""
        control = ControlConfig()

        assert control.allow_create_storage_account is True
        assert control.allow_create_file_share is True
        assert control.allow_delete_storage_account is False
        assert control.allow_delete_file_share is False

    def test_database_defaults_to_file(self) -> None:
        assert DatabaseConfig().driver == "file"

    def test_mount_defaults(self) -> None:
        assert MountConfig().default_options == "vers:3.0"

    def test_nested_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AZUREFILEBROKER_CONTROL__ALLOW_DELETE_FILE_SHARE", "true")

        assert Settings().control.allow_delete_file_share is True


class TestDatabaseConfig:
    @pytest.mark.parametrize("driver", ["mysql", "mssql", "postgresql"])
    def test_sql_requires_host_and_name(self, driver: str) -> None:
        with pytest.raises(ValidationError, match="hostname, name"):
            DatabaseConfig(driver=driver)

    def test_sql_complete(self) -> None:
        config = DatabaseConfig(driver="postgresql", hostname="db", name="broker")

        assert config.port is None

    def test_unknown_driver(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(driver="oracle")


class TestAzureConfig:
    def test_azure_stack_requires_endpoints(self) -> None:
        with pytest.raises(ValidationError, match="azure_stack_domain"):
            AzureConfig(environment="AzureStack")

    def test_azure_stack_complete(self) -> None:
        AzureConfig(
            environment="AzureStack",
            azure_stack_domain="local.azurestack.external",
            azure_stack_authentication="AzureAD",
            azure_stack_resource="https://management.azurestackci.onmicrosoft.com/abc",
            azure_stack_endpoint_prefix="management",
        )

    def test_require_credentials(self) -> None:
        with pytest.raises(ValueError) as exc_info:
            AzureConfig(tenant_id="tenant").require_credentials()

        assert str(exc_info.value) == "Azure credentials missing: client_id, client_secret"

    def test_require_credentials_complete(self) -> None:
        AzureConfig(tenant_id="t", client_id="c", client_secret="s").require_credentials()
