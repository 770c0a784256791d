"""
Persistence and guarded state transitions for donation requests.

Every status change is a single conditional UPDATE: the row must still be in
the expected state (and must not already carry a different external donation
id). A zero-row result means another worker got there first; callers treat
that as a quiet no-op.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, OperationalError

from pbd.errors import InvalidTransitionError, NotFoundError
from pbd.extensions import db
from pbd.models import DonationRequest, DonationStatus, Resolution, can_transition, utcnow

log = logging.getLogger(__name__)


def _retry_on_db_lock(fn: Callable[[], Any], *, attempts: int = 5) -> Any:
    for i in range(attempts):
        try:
            return fn()
        except OperationalError as e:
            db.session.rollback()
            msg = str(e).lower()
            if "locked" in msg or "sqlite_busy" in msg:
                if i + 1 < attempts:
                    time.sleep(0.05 * (i + 1))
                    continue
            raise
        except Exception:
            db.session.rollback()
            raise


class DonationRequestStore:
    # ---- reads -----------------------------------------------------------
    def get(self, request_id: str) -> Optional[DonationRequest]:
        if not request_id:
            return None
        return db.session.get(DonationRequest, str(request_id))

    def require(self, request_id: str) -> DonationRequest:
        req = self.get(request_id)
        if req is None:
            raise NotFoundError("Donation request not found", details={"requestId": request_id})
        return req

    def get_by_reference(self, reference_id: str) -> Optional[DonationRequest]:
        return db.session.execute(
            select(DonationRequest).where(DonationRequest.reference_id == reference_id)
        ).scalar_one_or_none()

    def find_by_external_id(self, external_donation_id: str) -> Optional[DonationRequest]:
        return db.session.execute(
            select(DonationRequest)
            .where(DonationRequest.external_donation_id == external_donation_id)
            .order_by(DonationRequest.created_at.asc())
            .limit(1)
        ).scalar_one_or_none()

    def pending_for_reconciliation(self, limit: int = 500) -> List[DonationRequest]:
        stmt = (
            select(DonationRequest)
            .where(
                DonationRequest.status == DonationStatus.PENDING,
                DonationRequest.reference_id.is_not(None),
            )
            .order_by(DonationRequest.created_at.asc(), DonationRequest.id.asc())
            .limit(max(1, int(limit)))
        )
        return list(db.session.execute(stmt).scalars())

    def latest_unmatched_pending(self, exclude: Iterable[str] = ()) -> Optional[DonationRequest]:
        stmt = select(DonationRequest).where(
            DonationRequest.status == DonationStatus.PENDING,
            DonationRequest.external_donation_id.is_(None),
        )
        skip = [str(x) for x in exclude]
        if skip:
            stmt = stmt.where(DonationRequest.id.not_in(skip))
        stmt = stmt.order_by(DonationRequest.created_at.desc(), DonationRequest.id.desc()).limit(1)
        return db.session.execute(stmt).scalar_one_or_none()

    def for_donor(self, donor_id: str, status: Optional[str] = None, limit: int = 50) -> List[DonationRequest]:
        stmt = select(DonationRequest).where(DonationRequest.donor_id == donor_id)
        if status:
            stmt = stmt.where(DonationRequest.status == status)
        stmt = stmt.order_by(DonationRequest.created_at.desc()).limit(max(1, int(limit)))
        return list(db.session.execute(stmt).scalars())

    # ---- writes ----------------------------------------------------------
    def insert(self, req: DonationRequest) -> DonationRequest:
        """Insert and commit one row. IntegrityError propagates after rollback."""
        db.session.add(req)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        return req

    def transition(
        self,
        request_id: str,
        target: str,
        *,
        expected: str = DonationStatus.PENDING,
        external_donation_id: Optional[str] = None,
        resolution: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        if not can_transition(expected, target):
            raise InvalidTransitionError(
                f"Cannot move donation request from '{expected}' to '{target}'",
                details={"requestId": request_id},
            )

        ts = now or utcnow()
        vals: Dict[str, Any] = {"status": target, "updated_at": ts}
        conditions = [DonationRequest.id == str(request_id), DonationRequest.status == expected]

        if expected == DonationStatus.PENDING:
            vals["resolved_at"] = ts
        if resolution:
            vals["resolution"] = resolution
        if external_donation_id:
            vals["external_donation_id"] = str(external_donation_id)
            conditions.append(
                or_(
                    DonationRequest.external_donation_id.is_(None),
                    DonationRequest.external_donation_id == str(external_donation_id),
                )
            )

        stmt = (
            sa_update(DonationRequest)
            .where(*conditions)
            .values(**vals)
            .execution_options(synchronize_session=False)
        )

        def _do() -> bool:
            res = db.session.execute(stmt)
            if getattr(res, "rowcount", 0):
                db.session.commit()
                return True
            db.session.rollback()
            return False

        applied = bool(_retry_on_db_lock(_do))
        if applied:
            log.info("donation request %s: %s -> %s (%s)", request_id, expected, target, resolution or "-")
        else:
            log.info("donation request %s: %s -> %s lost race, no-op", request_id, expected, target)
        return applied

    def mark_success(
        self,
        request_id: str,
        external_donation_id: str,
        *,
        resolution: str = Resolution.GATEWAY_ACCEPTED,
        now: Optional[datetime] = None,
    ) -> bool:
        return self.transition(
            request_id,
            DonationStatus.SUCCESS,
            external_donation_id=external_donation_id,
            resolution=resolution,
            now=now,
        )

    def mark_review(
        self,
        request_id: str,
        external_donation_id: Optional[str] = None,
        *,
        resolution: str = Resolution.GATEWAY_REJECTED,
        now: Optional[datetime] = None,
    ) -> bool:
        return self.transition(
            request_id,
            DonationStatus.FUNDRAISER_REVIEW,
            external_donation_id=external_donation_id,
            resolution=resolution,
            now=now,
        )

    def expire(self, request_id: str, *, now: Optional[datetime] = None) -> bool:
        return self.mark_review(request_id, resolution=Resolution.TIMEOUT, now=now)
