"""Shared error codes and exception types.

Evaluation itself never raises; these cover catalog/definition problems and
persistence failures, the latter being caught inside the experiment engine.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_DEFINITION = "INVALID_DEFINITION"
    CATALOG_LOAD_FAILED = "CATALOG_LOAD_FAILED"
    STORE_READ_FAILED = "STORE_READ_FAILED"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"


class ShopflagsError(Exception):
    """Base error carrying an ``ErrorCode``."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {super().__str__()}"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": super().__str__()}


class ConfigurationError(ShopflagsError):
    """Raised for invalid flag/experiment definitions or catalog files."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_DEFINITION) -> None:
        super().__init__(code, message)


class AssignmentStoreError(ShopflagsError):
    """Raised by assignment stores when the durable backend fails."""


__all__ = ["ErrorCode", "ShopflagsError", "ConfigurationError", "AssignmentStoreError"]
