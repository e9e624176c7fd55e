"""
Error types for instance attestation.

Every policy denial is an AttestationError carrying a FailureCode. Denials
are decisions, not faults, and are never retried. StorageError is kept
outside that hierarchy so callers can tell an unavailable counter store
apart from a rejected instance.
"""

from datetime import timedelta
from enum import Enum


class FailureCode(str, Enum):
    """Reason an attestation was denied."""
    METADATA_MISMATCH = "METADATA_MISMATCH"
    INVALID_STATUS = "INVALID_STATUS"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    OWNER_MISMATCH = "OWNER_MISMATCH"
    TOO_OLD = "TOO_OLD"
    AUTH_LIMIT_EXCEEDED = "AUTH_LIMIT_EXCEEDED"


class AttestationError(Exception):
    """Base class for policy denials."""

    code: FailureCode

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self):
        return {"code": self.code.value, "message": self.message}


class MetadataMismatch(AttestationError):
    code = FailureCode.METADATA_MISMATCH


class InvalidStatus(AttestationError):
    code = FailureCode.INVALID_STATUS


class AddressMismatch(AttestationError):
    code = FailureCode.ADDRESS_MISMATCH


class TenantMismatch(AttestationError):
    code = FailureCode.TENANT_MISMATCH


class OwnerMismatch(AttestationError):
    code = FailureCode.OWNER_MISMATCH


class TooOld(AttestationError):
    code = FailureCode.TOO_OLD

    def __init__(self, age: timedelta, period: timedelta):
        self.age = age
        self.period = period
        super().__init__(
            f"instance is too old: age {age.total_seconds():.0f}s, "
            f"period {period.total_seconds():.0f}s"
        )


class AuthLimitExceeded(AttestationError):
    code = FailureCode.AUTH_LIMIT_EXCEEDED

    def __init__(self, instance_id: str, count: int, limit: int):
        self.instance_id = instance_id
        self.count = count
        self.limit = limit
        super().__init__(
            f"authentication limit exceeded for instance {instance_id}: "
            f"{count} attempts, limit {limit}"
        )


class StorageError(Exception):
    """Raised when the attempt counter store cannot be read or written."""


class RoleNotFound(LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"role {name!r} not found")


class InstanceNotFound(LookupError):
    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"instance {instance_id!r} not found")
