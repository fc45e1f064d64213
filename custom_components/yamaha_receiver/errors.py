"""Exceptions raised by the Yamaha receiver integration."""

from __future__ import annotations


class YamahaReceiverError(Exception):
    """Base class for integration errors."""


class CommunicationError(YamahaReceiverError):
    """Raised when a receiver cannot be reached or answers unexpectedly."""

    def __init__(self, host: str, message: str) -> None:
        """Store the host that failed alongside the message."""

        super().__init__(f"{host}: {message}")
        self.host = host


class ConfigurationError(YamahaReceiverError):
    """Raised for unknown items or devices and invalid configuration."""
