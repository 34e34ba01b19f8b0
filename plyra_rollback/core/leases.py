"""
Environment Leases
~~~~~~~~~~~~~~~~~~

At most one active rollback execution per environment. A lease is taken
before an execution record exists and released when its background task
exits, whatever the outcome.
"""

from __future__ import annotations

import logging
import threading

from plyra_rollback.core.enums import Environment
from plyra_rollback.exceptions import ConflictError

__all__ = ["EnvironmentLeases"]

logger = logging.getLogger(__name__)


class EnvironmentLeases:
    """Per-environment mutual exclusion keyed by execution id."""

    def __init__(self) -> None:
        self._holders: dict[Environment, str] = {}
        self._sync_lock = threading.RLock()

    def acquire(self, environment: Environment, execution_id: str) -> None:
        """
        Take the lease for ``environment``.

        Raises:
            ConflictError: Another execution holds it.
        """
        with self._sync_lock:
            holder = self._holders.get(environment)
            if holder is not None and holder != execution_id:
                raise ConflictError(
                    f"Environment {environment.value} is leased by execution {holder}",
                    environment=environment.value,
                    active_execution_id=holder,
                )
            self._holders[environment] = execution_id
        logger.debug("Lease on %s acquired by %s", environment.value, execution_id)

    def release(self, environment: Environment, execution_id: str) -> bool:
        """Release the lease if ``execution_id`` holds it. Returns True if released."""
        with self._sync_lock:
            if self._holders.get(environment) != execution_id:
                return False
            del self._holders[environment]
        logger.debug("Lease on %s released by %s", environment.value, execution_id)
        return True

    def holder(self, environment: Environment) -> str | None:
        with self._sync_lock:
            return self._holders.get(environment)

    def held(self) -> dict[Environment, str]:
        """Return a copy of every current lease."""
        with self._sync_lock:
            return dict(self._holders)
