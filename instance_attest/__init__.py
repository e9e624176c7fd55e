"""
Instance Attestation

Authenticates cloud compute instances. Given the instance record resolved
from the compute provider, a role and the addresses a login request came
from, the attestor decides whether the instance is who it claims to be and
whether it may authenticate again:

    metadata tag -> ACTIVE status -> address proof -> tenant/owner
    -> creation age -> replay counter

The first failing check denies the login with a specific FailureCode.

Usage:
    from instance_attest import AttestationError, Attestor, InMemoryAttemptStore, Role

    attestor = Attestor(InMemoryAttemptStore())
    role = Role(name="web", policies=["web"], tenant_id="T")

    try:
        attestor.attest(instance, role, ["192.168.1.1"])
    except AttestationError as e:
        print(e.code)
"""

__version__ = "0.3.0"

from .addresses import match_addresses, normalize_addr, parse_prefix
from .attestor import Attestor
from .checks import (
    ACTIVE_STATUS,
    attest_metadata,
    attest_status,
    attest_tenant_id,
    attest_user_id,
    verify_age,
)
from .counter import (
    AttemptStore,
    AuthAttempt,
    InMemoryAttemptStore,
    ReplayCounter,
    SqliteAttemptStore,
)
from .db import Database
from .errors import (
    AddressMismatch,
    AttestationError,
    AuthLimitExceeded,
    FailureCode,
    InstanceNotFound,
    InvalidStatus,
    MetadataMismatch,
    OwnerMismatch,
    RoleNotFound,
    StorageError,
    TenantMismatch,
    TooOld,
)
from .models import AddressEntry, Instance, LoginRequest, RenewRequest, Role
from .provider import (
    InstanceProvider,
    JsonSnapshotProvider,
    StaticInstanceProvider,
    instance_from_server,
    normalize_addresses,
)
from .roles import RoleStore


__all__ = [
    "__version__",

    # Models
    "AddressEntry",
    "Instance",
    "LoginRequest",
    "RenewRequest",
    "Role",

    # Checks
    "ACTIVE_STATUS",
    "attest_metadata",
    "attest_status",
    "attest_tenant_id",
    "attest_user_id",
    "verify_age",
    "match_addresses",
    "normalize_addr",
    "parse_prefix",

    # Replay counter
    "AttemptStore",
    "AuthAttempt",
    "InMemoryAttemptStore",
    "SqliteAttemptStore",
    "ReplayCounter",

    # Orchestration
    "Attestor",

    # Storage
    "Database",
    "RoleStore",

    # Provider boundary
    "InstanceProvider",
    "StaticInstanceProvider",
    "JsonSnapshotProvider",
    "instance_from_server",
    "normalize_addresses",

    # Errors
    "FailureCode",
    "AttestationError",
    "MetadataMismatch",
    "InvalidStatus",
    "AddressMismatch",
    "TenantMismatch",
    "OwnerMismatch",
    "TooOld",
    "AuthLimitExceeded",
    "StorageError",
    "RoleNotFound",
    "InstanceNotFound",
]
