"""Open Service Broker for Azure File Share (SMB) volumes."""

__version__ = "0.1.0"
