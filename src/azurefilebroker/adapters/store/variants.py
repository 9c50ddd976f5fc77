"""SQL dialect variants: connection URL and session-scoped application locks.

Every variant holds the lock on the connection passed in. The lock lives as
long as that database session, so the store keeps the connection checked out
until release.
"""

import hashlib
import time
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL, Connection

from azurefilebroker.app.config import DatabaseConfig


def _compute_lock_id(lock_key: str) -> int:
    """Compute 64-bit lock ID from string key.

    Uses SHA-256 truncated to 63 bits for PostgreSQL signed bigint range.
    """
    h = hashlib.sha256(lock_key.encode()).digest()
    return int.from_bytes(h[:8], "big") & 0x7FFFFFFFFFFFFFFF


class SqlVariant(ABC):
    """Dialect specific parts of the SQL store."""

    drivername: str
    default_port: int

    def url(self, config: DatabaseConfig) -> URL:
        return URL.create(
            self.drivername,
            username=config.username or None,
            password=config.password or None,
            host=config.hostname,
            port=config.port or self.default_port,
            database=config.name,
            query=self.url_query(config),
        )

    def url_query(self, config: DatabaseConfig) -> dict[str, str]:
        return {}

    @abstractmethod
    def connect_args(self, config: DatabaseConfig, ca_cert_path: str | None) -> dict[str, Any]:
        """DBAPI connect() arguments, including TLS settings when a CA is given."""
        ...

    @abstractmethod
    def acquire_lock(self, conn: Connection, name: str, timeout: int) -> bool:
        """Wait up to timeout seconds for the named lock. True if acquired."""
        ...

    @abstractmethod
    def release_lock(self, conn: Connection, name: str) -> bool:
        """True if the lock was held by this session and is now released."""
        ...


class MySqlVariant(SqlVariant):
    drivername = "mysql+pymysql"
    default_port = 3306

    # GET_LOCK names are limited to 64 characters
    MAX_LOCK_NAME = 64

    def connect_args(self, config: DatabaseConfig, ca_cert_path: str | None) -> dict[str, Any]:
        args: dict[str, Any] = {
            "connect_timeout": config.connect_timeout,
            "read_timeout": 600,
            "write_timeout": 600,
        }
        if ca_cert_path:
            args["ssl"] = {"ca": ca_cert_path}
        return args

    def lock_name(self, name: str) -> str:
        if len(name) <= self.MAX_LOCK_NAME:
            return name
        return hashlib.sha1(name.encode()).hexdigest()

    def acquire_lock(self, conn: Connection, name: str, timeout: int) -> bool:
        result = conn.execute(
            text("SELECT GET_LOCK(:name, :timeout)"),
            {"name": self.lock_name(name), "timeout": timeout},
        ).scalar()
        # 1 = acquired, 0 = timed out, NULL = error (e.g. killed)
        return result == 1

    def release_lock(self, conn: Connection, name: str) -> bool:
        result = conn.execute(
            text("SELECT RELEASE_LOCK(:name)"), {"name": self.lock_name(name)}
        ).scalar()
        return result == 1


class MsSqlVariant(SqlVariant):
    drivername = "mssql+pyodbc"
    default_port = 1433

    ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

    def url_query(self, config: DatabaseConfig) -> dict[str, str]:
        query = {"driver": self.ODBC_DRIVER}
        if config.ca_cert:
            query["Encrypt"] = "yes"
            query["TrustServerCertificate"] = "no"
        else:
            query["TrustServerCertificate"] = "yes"
        return query

    def connect_args(self, config: DatabaseConfig, ca_cert_path: str | None) -> dict[str, Any]:
        # ODBC verifies against the system trust store; the CA only switches encryption on
        return {"timeout": config.connect_timeout}

    def acquire_lock(self, conn: Connection, name: str, timeout: int) -> bool:
        result = conn.execute(
            text(
                "SET NOCOUNT ON; "
                "DECLARE @rc INT = 0; "
                "EXEC @rc = sp_getapplock @Resource = :name, @LockMode = 'Exclusive', "
                "@LockOwner = 'Session', @LockTimeout = :timeout_ms; "
                "SELECT CASE WHEN @rc < 0 THEN 0 ELSE 1 END AS result;"
            ),
            {"name": name, "timeout_ms": timeout * 1000},
        ).scalar()
        return result == 1

    def release_lock(self, conn: Connection, name: str) -> bool:
        result = conn.execute(
            text(
                "SET NOCOUNT ON; "
                "DECLARE @rc INT = 0; "
                "EXEC @rc = sp_releaseapplock @Resource = :name, @LockOwner = 'Session'; "
                "SELECT CASE WHEN @rc < 0 THEN 0 ELSE 1 END AS result;"
            ),
            {"name": name},
        ).scalar()
        return result == 1


class PostgreSqlVariant(SqlVariant):
    drivername = "postgresql+psycopg"
    default_port = 5432

    POLL_INTERVAL = 0.5  # seconds

    def connect_args(self, config: DatabaseConfig, ca_cert_path: str | None) -> dict[str, Any]:
        args: dict[str, Any] = {"connect_timeout": config.connect_timeout}
        if ca_cert_path:
            args["sslmode"] = "verify-ca"
            args["sslrootcert"] = ca_cert_path
        return args

    def acquire_lock(self, conn: Connection, name: str, timeout: int) -> bool:
        # pg_advisory_lock has no timeout of its own; poll the non-blocking form
        lock_id = _compute_lock_id(name)
        deadline = time.monotonic() + timeout
        while True:
            acquired = conn.execute(
                text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": lock_id}
            ).scalar()
            if acquired:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.POLL_INTERVAL, remaining))

    def release_lock(self, conn: Connection, name: str) -> bool:
        released = conn.execute(
            text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": _compute_lock_id(name)}
        ).scalar()
        return bool(released)


VARIANTS: dict[str, type[SqlVariant]] = {
    "mysql": MySqlVariant,
    "mssql": MsSqlVariant,
    "postgresql": PostgreSqlVariant,
}


def get_variant(driver: str) -> SqlVariant:
    try:
        return VARIANTS[driver]()
    except KeyError:
        raise ValueError(f"Unrecognized Driver: {driver}") from None
