"""
Identity and freshness checks for instance attestation.

Each check is a pure function of its inputs (and the wall clock for the
freshness check). A check returns normally when it passes and raises the
matching AttestationError when it fails.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import InvalidStatus, MetadataMismatch, OwnerMismatch, TenantMismatch, TooOld
from .models import Instance

ACTIVE_STATUS = "ACTIVE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attest_metadata(instance: Instance, metadata_key: str, role_name: str) -> None:
    """
    Verify the instance carries the role tag.

    The tag is set when the instance is provisioned; its value must equal
    the role name exactly.

    Raises:
        MetadataMismatch: If the key is absent or holds another value
    """
    value = instance.metadata.get(metadata_key)
    if value is None:
        raise MetadataMismatch(f"instance {instance.id} has no metadata key {metadata_key!r}")
    if value != role_name:
        raise MetadataMismatch(
            f"instance {instance.id} metadata {metadata_key!r} does not match role {role_name!r}"
        )


def attest_status(instance: Instance) -> None:
    """Verify the instance is ACTIVE (case-sensitive)."""
    if instance.status != ACTIVE_STATUS:
        raise InvalidStatus(f"instance {instance.id} status is {instance.status!r}, not {ACTIVE_STATUS}")


def attest_tenant_id(instance: Instance, tenant_id: str) -> None:
    """An empty tenant_id means no restriction."""
    if tenant_id and tenant_id != instance.tenant_id:
        raise TenantMismatch(f"instance {instance.id} does not belong to tenant {tenant_id}")


def attest_user_id(instance: Instance, user_id: str) -> None:
    """An empty user_id means no restriction."""
    if user_id and user_id != instance.user_id:
        raise OwnerMismatch(f"instance {instance.id} is not owned by user {user_id}")


def verify_age(instance: Instance, period: timedelta, now: Optional[datetime] = None) -> timedelta:
    """
    Bound how long ago the instance was created.

    Args:
        instance: Instance record from the provider
        period: Maximum accepted age; the bound is exclusive
        now: Current time, sampled from the clock when omitted

    Returns:
        The instance age

    Raises:
        TooOld: If age >= period
    """
    if now is None:
        now = utcnow()
    age = now - instance.created
    if age >= period:
        raise TooOld(age, period)
    return age
