"""
Redis lease taken by the settlement run for one host and billing period.

Two settlement runs started close together (a manual re-run while the
scheduled one is still going) must never build two invoices for the same
host. Each run claims `lock:settlement:{host_id}:{period}` before looking
for an existing settlement; a host whose lease is taken is skipped, not
waited for.

Usage:
    from ledger.locks import SettlementLease

    try:
        with SettlementLease(host.id, period.tag):
            settle_host(host)
    except LockAcquisitionError:
        # Another run is settling this host
        ...
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django_redis import get_redis_connection

from ledger.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class SettlementLease:
    """
    Non-blocking, self-expiring claim on one host's billing period.

    The value stored under the key is a random token, so a run whose
    lease already expired cannot delete a lease taken since by another run.

    Args:
        host_id: Host being settled
        period_tag: Billing period, "YYYY-MM"
        ttl: Seconds before Redis drops the lease on its own
            (default: SETTLEMENT_LOCK_TTL_SECONDS)
    """

    # Delete the key only while it still carries our token
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    def __init__(self, host_id: int, period_tag: str, ttl: int | None = None) -> None:
        self.host_id = host_id
        self.period_tag = period_tag
        self.key = f"lock:settlement:{host_id}:{period_tag}"
        self.ttl = ttl or settings.SETTLEMENT_LOCK_TTL_SECONDS
        self._token: str | None = None

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> None:
        """
        Claim the period for this host.

        Raises:
            LockAcquisitionError: Another run holds the lease
        """
        token = uuid.uuid4().hex
        claimed = get_redis_connection("default").set(self.key, token, nx=True, ex=self.ttl)
        if not claimed:
            raise LockAcquisitionError(
                f"Settlement of host {self.host_id} for {self.period_tag} is already running",
                details={"key": self.key, "host_id": self.host_id, "period": self.period_tag},
            )
        self._token = token

    def release(self) -> bool:
        """Give the lease back; False when it had already expired or was never taken."""
        if self._token is None:
            return False

        released = get_redis_connection("default").eval(
            self.RELEASE_SCRIPT, 1, self.key, self._token
        )
        self._token = None
        if not released:
            logger.warning(
                "Settlement lease expired before release",
                extra={"key": self.key, "ttl": self.ttl},
            )
        return bool(released)

    def __enter__(self) -> SettlementLease:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.release()


__all__ = [
    "SettlementLease",
]
