"""
Resolution cache for effective permission sets.

One entry per principal, stored in a Django cache backend that is passed
in explicitly. Entries expire after `ttl` seconds and are dropped on
invalidation.

Each principal also has a version token. An entry records the token that
was current when its computation started, and is only served while that
token is still current. Invalidation rotates the token, so a computation
that raced with an invalidation can store its result but that result is
never returned.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from apps.authz.exceptions import ResolutionUnavailable
from apps.authz.types import EffectivePermissionSet

logger = logging.getLogger(__name__)


class CacheKeys:
    """Cache key templates for the resolution cache."""

    ENTRY = "{prefix}:eps:{principal_id}"
    VERSION = "{prefix}:eps-version:{principal_id}"


@dataclass(frozen=True)
class CacheEntry:
    effective_set: EffectivePermissionSet
    computed_at: float
    version: Optional[str]


class ResolutionCache:
    """
    Memoizes EffectivePermissionSet per principal id.

    The cache is an optimization: on a backend read error it recomputes,
    and it never serves an entry older than `ttl` even if the backend
    would keep it longer.
    """

    DEFAULT_TTL = 300  # 5 minutes

    def __init__(self, backend, ttl: int = DEFAULT_TTL, key_prefix: str = 'authz',
                 clock: Callable[[], float] = time.time):
        """
        Args:
            backend: a Django cache (e.g. ``caches['default']``)
            ttl: entry lifetime in seconds
            key_prefix: namespace for all keys written by this cache
            clock: wall-clock source, injectable for tests
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.backend = backend
        self.ttl = ttl
        self.key_prefix = key_prefix
        self.clock = clock

    def _entry_key(self, principal_id) -> str:
        return CacheKeys.ENTRY.format(prefix=self.key_prefix, principal_id=principal_id)

    def _version_key(self, principal_id) -> str:
        return CacheKeys.VERSION.format(prefix=self.key_prefix, principal_id=principal_id)

    def get(self, principal_id) -> Optional[EffectivePermissionSet]:
        """Return a fresh cached set, or None on miss, staleness, or backend error."""
        entry, _ = self._read(principal_id)
        return entry.effective_set if entry else None

    def _read(self, principal_id):
        """
        Returns:
            (fresh CacheEntry or None, current version token)
        """
        entry_key = self._entry_key(principal_id)
        version_key = self._version_key(principal_id)
        try:
            found = self.backend.get_many([entry_key, version_key])
        except Exception as e:
            logger.warning(
                f"Resolution cache read failed: {e}",
                extra={'principal_id': str(principal_id)}
            )
            return None, None

        version = found.get(version_key)
        entry = found.get(entry_key)
        if entry is None:
            logger.debug(f"Cache MISS: {entry_key}")
            return None, version
        if entry.version != version:
            logger.debug(f"Cache STALE (version): {entry_key}")
            return None, version
        if self.clock() - entry.computed_at >= self.ttl:
            logger.debug(f"Cache STALE (age): {entry_key}")
            return None, version

        logger.debug(f"Cache HIT: {entry_key}")
        return entry, version

    def get_or_compute(self, principal_id,
                       compute: Callable[[], EffectivePermissionSet]) -> EffectivePermissionSet:
        """
        Return the cached set for a principal, computing and storing it on a miss.

        Concurrent callers for the same principal may both compute; the
        computation is pure, so the only cost is duplicated work.
        """
        entry, version = self._read(principal_id)
        if entry is not None:
            return entry.effective_set

        started_at = self.clock()
        effective_set = compute()
        self._store(principal_id, effective_set, version, started_at)
        return effective_set

    def _store(self, principal_id, effective_set, version, started_at):
        # Age counts from when the inputs were read, not from when the result landed.
        entry = CacheEntry(
            effective_set=effective_set,
            computed_at=started_at,
            version=version,
        )
        try:
            self.backend.set(self._entry_key(principal_id), entry, timeout=self.ttl)
            logger.debug(f"Cache SET: {self._entry_key(principal_id)} (TTL: {self.ttl}s)")
        except Exception as e:
            logger.warning(
                f"Resolution cache write failed: {e}",
                extra={'principal_id': str(principal_id)}
            )

    def invalidate_principal(self, principal_id):
        """Drop one principal's entry and rotate its version token."""
        self.invalidate_principals([principal_id])

    def invalidate_principals(self, principal_ids: Iterable) -> int:
        """
        Drop entries and rotate version tokens for several principals.

        Raises:
            ResolutionUnavailable: if the backend rejects the invalidation.
                Callers inside a transaction let this propagate so the
                mutation that triggered it rolls back.

        Returns:
            Number of principals invalidated
        """
        principal_ids = {str(pid) for pid in principal_ids}
        if not principal_ids:
            return 0

        # The version token lives as long as any entry written under it can.
        versions = {
            self._version_key(pid): uuid.uuid4().hex
            for pid in principal_ids
        }
        try:
            self.backend.set_many(versions, timeout=self.ttl)
            self.backend.delete_many([self._entry_key(pid) for pid in principal_ids])
        except Exception as e:
            logger.error(
                f"Resolution cache invalidation failed: {e}",
                extra={'principal_count': len(principal_ids)},
                exc_info=True
            )
            raise ResolutionUnavailable(
                "Could not invalidate cached permissions",
                principal_ids=sorted(principal_ids),
            ) from e

        logger.debug(
            f"Cache INVALIDATE: {len(principal_ids)} principal(s)",
            extra={'principal_ids': sorted(principal_ids)}
        )
        return len(principal_ids)
