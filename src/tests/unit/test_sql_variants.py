"""Unit tests for SQL dialect variants (URLs and lock statements)."""

from unittest.mock import MagicMock, patch

import pytest

from azurefilebroker.adapters.store.variants import (
    MsSqlVariant,
    MySqlVariant,
    PostgreSqlVariant,
    _compute_lock_id,
    get_variant,
)
from azurefilebroker.app.config import DatabaseConfig


def make_conn(*results) -> MagicMock:
    conn = MagicMock()
    conn.execute.return_value.scalar.side_effect = list(results)
    return conn


def statement(conn: MagicMock, call: int = 0) -> str:
    return str(conn.execute.call_args_list[call].args[0])


def params(conn: MagicMock, call: int = 0) -> dict:
    return conn.execute.call_args_list[call].args[1]


@pytest.fixture
def config() -> DatabaseConfig:
    return DatabaseConfig(
        driver="mysql",
        hostname="db.example.com",
        name="broker",
        username="broker",
        password="pw",
    )


class TestGetVariant:
    @pytest.mark.parametrize(
        ("driver", "cls"),
        [("mysql", MySqlVariant), ("mssql", MsSqlVariant), ("postgresql", PostgreSqlVariant)],
    )
    def test_known_drivers(self, driver: str, cls: type) -> None:
        assert isinstance(get_variant(driver), cls)

    def test_unknown_driver(self) -> None:
        with pytest.raises(ValueError, match="Unrecognized Driver: sqlite"):
            get_variant("sqlite")


class TestUrl:
    def test_default_port(self, config: DatabaseConfig) -> None:
        url = MySqlVariant().url(config)

        assert url.drivername == "mysql+pymysql"
        assert url.host == "db.example.com"
        assert url.port == 3306
        assert url.database == "broker"
        assert url.password == "pw"

    def test_explicit_port(self, config: DatabaseConfig) -> None:
        config.port = 15432

        assert PostgreSqlVariant().url(config).port == 15432

    def test_mssql_odbc_driver(self, config: DatabaseConfig) -> None:
        url = MsSqlVariant().url(config)

        assert url.drivername == "mssql+pyodbc"
        assert url.query["driver"] == "ODBC Driver 18 for SQL Server"


class TestConnectArgs:
    def test_mysql_tls(self, config: DatabaseConfig) -> None:
        args = MySqlVariant().connect_args(config, "/tmp/ca.pem")

        assert args["ssl"] == {"ca": "/tmp/ca.pem"}
        assert args["connect_timeout"] == 30

    def test_postgresql_tls(self, config: DatabaseConfig) -> None:
        args = PostgreSqlVariant().connect_args(config, "/tmp/ca.pem")

        assert args["sslmode"] == "verify-ca"
        assert args["sslrootcert"] == "/tmp/ca.pem"

    def test_no_tls_without_ca(self, config: DatabaseConfig) -> None:
        assert "ssl" not in MySqlVariant().connect_args(config, None)
        assert "sslmode" not in PostgreSqlVariant().connect_args(config, None)


class TestMySqlLock:
    def test_acquire(self) -> None:
        conn = make_conn(1)

        assert MySqlVariant().acquire_lock(conn, "instance-1-data", 30) is True
        assert "GET_LOCK" in statement(conn)
        assert params(conn) == {"name": "instance-1-data", "timeout": 30}

    @pytest.mark.parametrize("result", [0, None])
    def test_acquire_timeout_or_error(self, result) -> None:
        assert MySqlVariant().acquire_lock(make_conn(result), "lock", 30) is False

    def test_long_names_hashed(self) -> None:
        """GET_LOCK names are limited to 64 characters."""
        name = "x" * 100
        conn = make_conn(1)

        MySqlVariant().acquire_lock(conn, name, 30)

        hashed = params(conn)["name"]
        assert len(hashed) <= 64
        assert hashed == MySqlVariant().lock_name(name)

    def test_release(self) -> None:
        conn = make_conn(1)

        assert MySqlVariant().release_lock(conn, "lock") is True
        assert "RELEASE_LOCK" in statement(conn)


class TestMsSqlLock:
    def test_acquire_uses_session_applock(self) -> None:
        conn = make_conn(1)

        assert MsSqlVariant().acquire_lock(conn, "lock", 30) is True
        sql = statement(conn)
        assert "sp_getapplock" in sql
        assert "@LockOwner = 'Session'" in sql
        assert params(conn) == {"name": "lock", "timeout_ms": 30000}

    def test_acquire_timeout(self) -> None:
        assert MsSqlVariant().acquire_lock(make_conn(0), "lock", 30) is False

    def test_release(self) -> None:
        conn = make_conn(1)

        assert MsSqlVariant().release_lock(conn, "lock") is True
        assert "sp_releaseapplock" in statement(conn)


class TestPostgreSqlLock:
    def test_lock_id_is_positive_bigint(self) -> None:
        lock_id = _compute_lock_id("instance-1-data")

        assert 0 <= lock_id < 2**63
        assert lock_id == _compute_lock_id("instance-1-data")
        assert lock_id != _compute_lock_id("instance-1-logs")

    def test_acquire_first_try(self) -> None:
        conn = make_conn(True)

        assert PostgreSqlVariant().acquire_lock(conn, "lock", 30) is True
        assert "pg_try_advisory_lock" in statement(conn)
        assert params(conn) == {"lock_id": _compute_lock_id("lock")}

    def test_acquire_polls_until_free(self) -> None:
        conn = make_conn(False, False, True)

        with patch("azurefilebroker.adapters.store.variants.time.sleep") as sleep:
            assert PostgreSqlVariant().acquire_lock(conn, "lock", 30) is True

        assert conn.execute.call_count == 3
        assert sleep.call_count == 2

    def test_acquire_gives_up_at_deadline(self) -> None:
        conn = make_conn(False, False)

        with (
            patch("azurefilebroker.adapters.store.variants.time.sleep"),
            patch(
                "azurefilebroker.adapters.store.variants.time.monotonic",
                side_effect=[0.0, 10.0, 31.0],
            ),
        ):
            assert PostgreSqlVariant().acquire_lock(conn, "lock", 30) is False

        assert conn.execute.call_count == 2

    def test_release(self) -> None:
        conn = make_conn(True)

        assert PostgreSqlVariant().release_lock(conn, "lock") is True
        assert "pg_advisory_unlock" in statement(conn)
