"""
Custom exception classes for the collector.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class StakingStatException(Exception):
    """Base exception class for the staking stats collector."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(StakingStatException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class InputFetchError(StakingStatException):
    """Raised when the node RPC cannot deliver staking info or a block header."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INPUT_FETCH_ERROR", details)


class InvalidInputError(StakingStatException):
    """Raised when node-reported values cannot produce a finite reward rate."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_INPUT_ERROR", details)


class StoreError(StakingStatException):
    """Raised when a sample store operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_ERROR", details)


class TransportError(StakingStatException):
    """Raised when the block notification subscription fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSPORT_ERROR", details)


class BlockNotFoundError(InputFetchError):
    """Raised when the node does not know a notified block hash."""

    def __init__(self, block_hash: str):
        super().__init__(
            f"Block not found: {block_hash}",
            {"block_hash": block_hash}
        )
