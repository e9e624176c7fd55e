"""
Attestor: composes the attestation checks into a single decision.

Checks run in a fixed order and the first failure is raised unmodified:

    metadata -> status -> address -> tenant -> owner -> age -> replay counter

Only an attempt that passes every earlier check reaches the replay counter,
so a rejected instance never consumes one of its authentication slots.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .addresses import match_addresses
from .checks import attest_metadata, attest_status, attest_tenant_id, attest_user_id, verify_age
from .counter import AttemptStore, ReplayCounter
from .errors import AttestationError
from .logging_config import audit_log
from .models import Instance, Role


class Attestor:
    """Decides whether an instance may authenticate against a role."""

    def __init__(self, store: AttemptStore, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.counter = ReplayCounter(store, clock=self._clock)

    def attest(self, instance: Instance, role: Role, request_addrs: Sequence[str]) -> int:
        """
        Run every check for one login attempt.

        Args:
            instance: Instance record from the provider
            role: Role the instance is logging in with
            request_addrs: Addresses the request arrived from, most trusted first

        Returns:
            The instance's attempt count after this login

        Raises:
            AttestationError: The first failing check's error
            StorageError: If the attempt counter cannot be updated
        """
        try:
            attest_metadata(instance, role.metadata_key, role.name)
            attest_status(instance)
            match_addresses(instance, request_addrs, role.trusted_prefixes)
            attest_tenant_id(instance, role.tenant_id)
            attest_user_id(instance, role.user_id)
            verify_age(instance, role.period, self._clock())
            deadline = self._clock() + role.auth_period
            count = self.counter.record_attempt(instance.id, role.auth_limit, deadline)
        except AttestationError as e:
            audit_log.attestation_decision(role.name, instance.id, False, failure_code=e.code.value)
            raise

        audit_log.attestation_decision(role.name, instance.id, True, count=count)
        return count

    def sweep(self) -> int:
        """Remove expired attempt counters; see ReplayCounter.sweep."""
        return self.counter.sweep()
