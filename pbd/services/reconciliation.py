"""
Reconciliation poller.

One run scans pending requests oldest first, expires those past their
deadline, and asks the owning processor about the rest. Rows are handled
one at a time; a failure on one row is logged and counted and never stops
the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import current_app

from pbd.errors import GatewayTransportError
from pbd.extensions import db, safe_commit
from pbd.gateways import DonationOutcome, GatewayRegistry
from pbd.models import DonationRequest, ReconciliationRun, Resolution, utcnow

from .store import DonationRequestStore

log = logging.getLogger(__name__)


class RowResult:
    SUCCEEDED = "succeeded"
    REVIEWED = "reviewed"
    TIMED_OUT = "timed_out"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    LOST_RACE = "lost_race"
    NOT_PENDING = "not_pending"


@dataclass
class PollSummary:
    trigger: str = "manual"
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    checked: int = 0
    succeeded: int = 0
    reviewed: int = 0
    timed_out: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    lost_races: int = 0
    run_id: Optional[int] = None

    def record(self, outcome: str) -> None:
        if outcome == RowResult.SUCCEEDED:
            self.succeeded += 1
        elif outcome == RowResult.REVIEWED:
            self.reviewed += 1
        elif outcome == RowResult.TIMED_OUT:
            self.timed_out += 1
        elif outcome == RowResult.SKIPPED:
            self.skipped += 1
        elif outcome == RowResult.LOST_RACE:
            self.lost_races += 1
        else:
            self.unchanged += 1

    @property
    def updated(self) -> int:
        return self.succeeded + self.reviewed + self.timed_out

    def as_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "trigger": self.trigger,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "checked": self.checked,
            "updated": self.updated,
            "succeeded": self.succeeded,
            "reviewed": self.reviewed,
            "timedOut": self.timed_out,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": self.errors,
            "lostRaces": self.lost_races,
        }


class ReconciliationPoller:
    def __init__(
        self,
        store: DonationRequestStore,
        registry: GatewayRegistry,
        *,
        batch_limit: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.batch_limit = batch_limit
        self.clock = clock

    @classmethod
    def from_app(cls, registry: GatewayRegistry, **kwargs: Any) -> "ReconciliationPoller":
        kwargs.setdefault("batch_limit", int(current_app.config.get("POLL_BATCH_LIMIT", 500)))
        return cls(DonationRequestStore(), registry, **kwargs)

    # ---- single row ------------------------------------------------------
    def _process(self, req: DonationRequest) -> str:
        """Apply the reconciliation rules to one row. Gateway errors propagate."""
        request_id = req.id
        reference = req.reference_id
        platform = req.platform
        now = self.clock()

        if not req.is_pending:
            return RowResult.NOT_PENDING

        if req.is_expired(now):
            log.info("Donation %s timed out (deadline %s)", reference, req.timeout_at)
            applied = self.store.expire(request_id, now=now)
            return RowResult.TIMED_OUT if applied else RowResult.LOST_RACE

        client = self.registry.reconciler_for(platform)
        if client is None or not reference:
            log.debug("No reconciling gateway for %s (platform=%s); skipping", reference, platform)
            return RowResult.SKIPPED

        lookup = client.get_donation_by_reference(reference)
        if not lookup.found or lookup.donation is None:
            return RowResult.UNCHANGED

        donation = lookup.donation
        if donation.status is DonationOutcome.ACCEPTED:
            log.info("Donation %s accepted (external id %s)", reference, donation.donation_id)
            applied = self.store.mark_success(
                request_id, donation.donation_id, resolution=Resolution.GATEWAY_ACCEPTED, now=now
            )
            return RowResult.SUCCEEDED if applied else RowResult.LOST_RACE

        if donation.status is DonationOutcome.REJECTED:
            log.info("Donation %s rejected (external id %s)", reference, donation.donation_id)
            applied = self.store.mark_review(
                request_id, donation.donation_id, resolution=Resolution.GATEWAY_REJECTED, now=now
            )
            return RowResult.REVIEWED if applied else RowResult.LOST_RACE

        log.debug("Donation %s still %s", reference, donation.raw_status or donation.status.value)
        return RowResult.UNCHANGED

    def reconcile_one(self, request_id: str) -> Dict[str, Any]:
        req = self.store.require(request_id)
        outcome = self._process(req)
        db.session.expire_all()
        fresh = self.store.require(request_id)
        return {"outcome": outcome, "request": fresh.as_dict()}

    # ---- batch -----------------------------------------------------------
    def run(self, trigger: str = "manual") -> PollSummary:
        summary = PollSummary(trigger=trigger, started_at=self.clock())

        candidates = [
            (r.id, r.reference_id) for r in self.store.pending_for_reconciliation(self.batch_limit)
        ]
        log.info("Reconciliation run (%s): %d pending candidates", trigger, len(candidates))

        for request_id, reference in candidates:
            summary.checked += 1
            try:
                req = self.store.get(request_id)
                if req is None:
                    summary.record(RowResult.SKIPPED)
                    continue
                summary.record(self._process(req))
            except GatewayTransportError as e:
                summary.errors += 1
                log.warning("Gateway error for %s: %s (%s)", reference, e.message, e.details)
                db.session.rollback()
            except Exception:
                summary.errors += 1
                log.exception("Unexpected error reconciling %s", reference)
                db.session.rollback()

        summary.finished_at = self.clock()
        self._persist(summary)
        log.info(
            "Reconciliation finished: checked=%d succeeded=%d reviewed=%d timed_out=%d "
            "unchanged=%d skipped=%d errors=%d lost_races=%d",
            summary.checked,
            summary.succeeded,
            summary.reviewed,
            summary.timed_out,
            summary.unchanged,
            summary.skipped,
            summary.errors,
            summary.lost_races,
        )
        return summary

    def _persist(self, summary: PollSummary) -> None:
        run = ReconciliationRun(
            trigger=summary.trigger[:20],
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            checked=summary.checked,
            succeeded=summary.succeeded,
            reviewed=summary.reviewed,
            timed_out=summary.timed_out,
            unchanged=summary.unchanged,
            skipped=summary.skipped,
            errors=summary.errors,
            lost_races=summary.lost_races,
        )
        db.session.add(run)
        if safe_commit():
            summary.run_id = run.id
