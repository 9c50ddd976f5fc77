"""Broker state stores."""

from azurefilebroker.adapters.store.file import FileStore
from azurefilebroker.adapters.store.sql import SqlStore

__all__ = ["FileStore", "SqlStore"]
