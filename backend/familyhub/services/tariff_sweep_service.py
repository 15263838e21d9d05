# Overview: Service-layer operations for the tariff sweep; converts elapsed time into tier transitions.

"""
Venue Tariff Sweep

================================================================================
PURPOSE: Apply every time-based tariff transition that is due at `now`
================================================================================

Invoked from outside (cron endpoint, `flask tariffs sweep`); it owns no timer
and may run concurrently with itself or be re-run after a failure.

STATE MACHINE (paid tiers):

    PAID(expires_at > now)
        | expires_at < now, auto_renew
        v
    PAID(expires_at = now + 1 month)              history: close + reopen, auto_renewed=True
        | expires_at < now, no auto_renew
        v
    PAID + grace_period_ends_at = now + 3 days    history unchanged
        | grace_period_ends_at < now
        v
    FREE                                          history: close + open FREE

PHASES (in this order, each over all paid venues):
    A. expiry          -> renew or start grace
    B. grace elapsed   -> downgrade to FREE
    C. month rollover  -> reset monthly_feature_count

RULES:
1. One venue transition = one transaction (entitlement + history together)
2. Each transition re-reads the row under a lock and re-checks its guard;
   a venue whose guard no longer holds is skipped, so re-runs are no-ops
3. A failing venue is logged and reported in `errors`; the batch continues
4. Failing to list candidates at all propagates: the batch did not run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from ..entitlements import PAID_TIERS, TIER_FREE, from_row
from ..time_utils import add_months, first_day_of_month, to_utc_z, utcnow
from . import entitlement_store
from .storage import atomic, run_with_retry


OUTCOME_RENEWED = "renewed"
OUTCOME_GRACE_STARTED = "grace_period_started"
OUTCOME_DOWNGRADED = "downgraded"
OUTCOME_COUNTER_RESET = "counter_reset"


@dataclass
class SweepError:
    venue_id: int
    message: str

    def to_dict(self) -> dict:
        return {"venueId": self.venue_id, "message": self.message}


@dataclass
class SweepResult:
    """Aggregate outcome of one sweep. Always returned, even if every venue failed."""
    started_at: datetime
    processed: int = 0
    renewed: int = 0
    grace_period_started: int = 0
    downgraded: int = 0
    counters_reset: int = 0
    errors: list[SweepError] = field(default_factory=list)

    def record(self, outcome: str | None) -> None:
        if outcome is None:
            return
        if outcome == OUTCOME_COUNTER_RESET:
            self.counters_reset += 1
            return
        self.processed += 1
        if outcome == OUTCOME_RENEWED:
            self.renewed += 1
        elif outcome == OUTCOME_GRACE_STARTED:
            self.grace_period_started += 1
        elif outcome == OUTCOME_DOWNGRADED:
            self.downgraded += 1

    def add_error(self, venue_id: int, exc: Exception) -> None:
        self.errors.append(SweepError(venue_id=venue_id, message=str(exc) or exc.__class__.__name__))

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "renewed": self.renewed,
            "gracePeriodStarted": self.grace_period_started,
            "downgraded": self.downgraded,
            "countersReset": self.counters_reset,
            "errors": [e.to_dict() for e in self.errors],
            "timestamp": to_utc_z(self.started_at),
        }


# =============================================================================
# GUARDS
# =============================================================================

def _expiry_due(row, now: datetime) -> bool:
    return (
        row.tier in PAID_TIERS
        and row.expires_at is not None
        and row.expires_at < now
        and row.grace_period_ends_at is None
    )


def _grace_elapsed(row, now: datetime) -> bool:
    return (
        row.tier in PAID_TIERS
        and row.grace_period_ends_at is not None
        and row.grace_period_ends_at < now
    )


def _counter_reset_due(row, month_start: datetime) -> bool:
    return row.tier in PAID_TIERS and (
        row.feature_counter_reset_at is None or row.feature_counter_reset_at < month_start
    )


# =============================================================================
# PER-VENUE TRANSITIONS
# =============================================================================

def handle_expiry(venue_id: int, now: datetime) -> str | None:
    """Phase A for one venue. Returns the outcome, or None if nothing was due."""
    config = current_app.config

    with atomic():
        row = entitlement_store.get(venue_id, for_update=True)
        if row is None or not _expiry_due(row, now):
            return None
        entitlement = from_row(row)

        if entitlement.auto_renew:
            entitlement_store.start_period(
                venue_id,
                at=now,
                tier=entitlement.tier,
                price_cents=entitlement.price_cents,
                auto_renewed=True,
            )
            entitlement_store.update(
                row,
                expires_at=add_months(now, config["TARIFF_RENEWAL_MONTHS"]),
            )
            return OUTCOME_RENEWED

        entitlement_store.update(
            row,
            grace_period_ends_at=now + timedelta(days=config["TARIFF_GRACE_PERIOD_DAYS"]),
        )
        return OUTCOME_GRACE_STARTED


def handle_grace_expiry(venue_id: int, now: datetime) -> str | None:
    """Phase B for one venue: downgrade to FREE once the grace window has elapsed."""
    with atomic():
        row = entitlement_store.get(venue_id, for_update=True)
        if row is None or not _grace_elapsed(row, now):
            return None
        from_row(row)

        entitlement_store.start_period(
            venue_id,
            at=now,
            tier=TIER_FREE,
            price_cents=None,
            auto_renewed=False,
        )
        entitlement_store.update(
            row,
            tier=TIER_FREE,
            expires_at=None,
            auto_renew=False,
            price_cents=None,
            grace_period_ends_at=None,
        )
        return OUTCOME_DOWNGRADED


def handle_counter_reset(venue_id: int, month_start: datetime) -> str | None:
    """Phase C for one venue."""
    with atomic():
        row = entitlement_store.get(venue_id, for_update=True)
        if row is None or not _counter_reset_due(row, month_start):
            return None
        entitlement_store.update(
            row,
            monthly_feature_count=0,
            feature_counter_reset_at=month_start,
        )
        return OUTCOME_COUNTER_RESET


def _run_phase(name: str, venue_ids: list[int], transition, result: SweepResult) -> None:
    logger = current_app.logger
    logger.info("Tariff sweep phase %s: %d candidate venue(s)", name, len(venue_ids))

    for venue_id in venue_ids:
        try:
            outcome = run_with_retry(lambda: transition(venue_id))
        except Exception as exc:
            logger.error("Tariff sweep phase %s failed for venue %s: %s", name, venue_id, exc)
            result.add_error(venue_id, exc)
            continue
        result.record(outcome)
        if outcome is not None:
            logger.info("Venue %s: %s", venue_id, outcome)


def run_tariff_sweep(now: datetime | None = None) -> SweepResult:
    """
    Run phases A, B and C once.

    Per-venue failures end up in result.errors. A StorageError while listing
    candidates propagates: the caller reports the batch as failed.
    """
    now = now or utcnow()
    month_start = first_day_of_month(now)
    result = SweepResult(started_at=now)

    current_app.logger.info("Starting venue tariff sweep at %s", to_utc_z(now))

    _run_phase(
        "expiry",
        entitlement_store.list_expired_without_grace(now),
        lambda venue_id: handle_expiry(venue_id, now),
        result,
    )
    _run_phase(
        "grace-expiry",
        entitlement_store.list_grace_elapsed(now),
        lambda venue_id: handle_grace_expiry(venue_id, now),
        result,
    )
    _run_phase(
        "counter-reset",
        entitlement_store.list_counter_reset_due(month_start),
        lambda venue_id: handle_counter_reset(venue_id, month_start),
        result,
    )

    current_app.logger.info(
        "Venue tariff sweep completed: processed=%s renewed=%s grace=%s downgraded=%s counters=%s errors=%s",
        result.processed,
        result.renewed,
        result.grace_period_started,
        result.downgraded,
        result.counters_reset,
        len(result.errors),
    )
    return result
