"""Services module."""

from azurefilebroker.services.broker import Broker

__all__ = ["Broker"]
