"""Campaign lease manager.

A lease is a row in ``campaign_leases`` keyed by the campaign key.  At
most one non-expired lease exists per key.  A lease whose age has
reached its ``ttl_ms`` is stale and may be taken over by any caller.

``acquire`` is a compare-and-swap inside a single transaction:

- no row: ``INSERT``; a primary-key conflict means another invocation
  won the race.
- stale row: ``UPDATE ... WHERE held_by = <observed> AND
  acquired_at_ms = <observed>``; zero rows updated means another
  invocation took it over first.
- live row: refused, naming the current holder.

Any database error fails closed: the caller never proceeds without a
confirmed lease.  ``release`` is best-effort; a lease left behind by a
failed release expires by TTL.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mealdispatch.db.repositories import CampaignLeaseRepository

logger = logging.getLogger(__name__)


def epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AcquireResult:
    ok: bool
    reason: str
    taken_over_from: str | None = None


class LeaseManager:
    """Acquire, take over, and release per-campaign leases."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def acquire(self, campaign_key: str, holder_id: str, ttl_ms: int) -> AcquireResult:
        """Try to become the single holder of *campaign_key* for *ttl_ms*."""
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")

        now = self._clock()
        try:
            with self._session_factory() as db, db.begin():
                repo = CampaignLeaseRepository(db)
                current = repo.get_for_update(campaign_key)

                if current is None:
                    repo.create(
                        campaign_key=campaign_key,
                        held_by=holder_id,
                        acquired_at_ms=now,
                        ttl_ms=ttl_ms,
                    )
                    result = AcquireResult(ok=True, reason="acquired")
                else:
                    age_ms = now - current.acquired_at_ms
                    if age_ms < current.ttl_ms:
                        return AcquireResult(
                            ok=False,
                            reason=(
                                f"lease held by {current.held_by} "
                                f"(age {age_ms} ms, ttl {current.ttl_ms} ms)"
                            ),
                        )

                    previous_holder = current.held_by
                    replaced = repo.replace_if_unchanged(
                        campaign_key,
                        expected_holder=previous_holder,
                        expected_acquired_at_ms=current.acquired_at_ms,
                        held_by=holder_id,
                        acquired_at_ms=now,
                        ttl_ms=ttl_ms,
                    )
                    if not replaced:
                        return AcquireResult(
                            ok=False,
                            reason="stale lease was taken over by another invocation",
                        )
                    logger.warning(
                        "Took over stale lease %s from %s (age %d ms)",
                        campaign_key, previous_holder, age_ms,
                    )
                    result = AcquireResult(
                        ok=True,
                        reason=f"took over stale lease from {previous_holder}",
                        taken_over_from=previous_holder,
                    )
        except IntegrityError:
            logger.info("Lease %s was acquired concurrently by another invocation", campaign_key)
            return AcquireResult(ok=False, reason="lease acquired concurrently by another invocation")
        except SQLAlchemyError as exc:
            logger.error("Lease transaction for %s failed: %s", campaign_key, exc.__class__.__name__)
            return AcquireResult(ok=False, reason=f"lease transaction failed: {exc.__class__.__name__}")

        logger.info("Lease %s acquired by %s", campaign_key, holder_id)
        return result

    def release(self, campaign_key: str, holder_id: str) -> bool:
        """Delete the lease if *holder_id* still holds it.  Never raises."""
        try:
            with self._session_factory() as db, db.begin():
                deleted = CampaignLeaseRepository(db).delete_held_by(campaign_key, holder_id)
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to release lease %s held by %s: %s -- it will expire by TTL",
                campaign_key, holder_id, exc.__class__.__name__,
            )
            return False

        if not deleted:
            logger.warning("Lease %s was no longer held by %s at release", campaign_key, holder_id)
            return False
        logger.info("Lease %s released by %s", campaign_key, holder_id)
        return True

    def current_holder(self, campaign_key: str) -> str | None:
        with self._session_factory() as db:
            lease = CampaignLeaseRepository(db).get(campaign_key)
            return lease.held_by if lease is not None else None
