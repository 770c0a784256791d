"""
Immediate confirmation on return from the processor.

The return redirect carries only the processor's donation id, not our
reference, so the most recently created unmatched pending request is
assumed to be the one that just completed. This can mis-attribute under
concurrent donations; the reconciliation poller remains the authority for
everything this path does not catch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import current_app

from pbd.errors import NotFoundError, ValidationError
from pbd.models import DonationStatus, Resolution

from .store import DonationRequestStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationResult:
    success: bool
    reference_id: Optional[str]
    already_confirmed: bool
    status: str
    request_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "referenceId": self.reference_id,
            "alreadyConfirmed": self.already_confirmed,
            "status": self.status,
            "requestId": self.request_id,
        }


def _already(store: DonationRequestStore, external_id: str) -> Optional[ConfirmationResult]:
    existing = store.find_by_external_id(external_id)
    if existing is None:
        return None
    return ConfirmationResult(
        success=existing.status == DonationStatus.SUCCESS,
        reference_id=existing.reference_id,
        already_confirmed=True,
        status=existing.status,
        request_id=existing.id,
    )


def confirm_donation(
    external_donation_id: str,
    *,
    store: Optional[DonationRequestStore] = None,
    max_attempts: Optional[int] = None,
) -> ConfirmationResult:
    external_id = str(external_donation_id or "").strip()
    if not external_id:
        raise ValidationError("Donation ID required", details={"fields": ["externalDonationId"]})

    store = store or DonationRequestStore()
    if max_attempts is None:
        max_attempts = int(current_app.config.get("CONFIRM_MAX_ATTEMPTS", 3))

    done = _already(store, external_id)
    if done is not None:
        log.info("Donation %s already confirmed as %s", external_id, done.reference_id)
        return done

    tried: List[str] = []
    for _ in range(max(1, max_attempts)):
        candidate = store.latest_unmatched_pending(exclude=tried)
        if candidate is None:
            break
        request_id, reference = candidate.id, candidate.reference_id
        tried.append(request_id)

        if store.mark_success(request_id, external_id, resolution=Resolution.CONFIRMED_ON_RETURN):
            log.info("Confirmed donation %s -> %s on return", external_id, reference)
            return ConfirmationResult(
                success=True,
                reference_id=reference,
                already_confirmed=False,
                status=DonationStatus.SUCCESS,
                request_id=request_id,
            )

        # Lost the race: another request may now hold this id.
        done = _already(store, external_id)
        if done is not None:
            return done

    log.warning("No pending donation request matched external id %s", external_id)
    raise NotFoundError("No pending donation request found", details={"externalDonationId": external_id})
