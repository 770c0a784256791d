from __future__ import annotations

# -----------------------------------------------------------------------------
# DonationRequest Model
# One row per intended donation: platform reference, redirect URL, and the
# lifecycle status the reconciliation poller drives forward.
# -----------------------------------------------------------------------------
import uuid as _uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional

from sqlalchemy import CheckConstraint, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pbd.extensions import db

from .mixins import TimestampMixin


class Platform:
    JUSTGIVING = "justgiving"
    EVERY_ORG = "every_org"

    ALL = (JUSTGIVING, EVERY_ORG)


class DonationStatus:
    PENDING = "pending"
    SUCCESS = "success"
    FUNDRAISER_REVIEW = "fundraiser_review"
    # Human-handled follow-ups after review
    ACKNOWLEDGED_FEEDBACK = "acknowledged_feedback"
    DISPUTED_FEEDBACK = "disputed_feedback"
    UNRESPONSIVE_TO_FEEDBACK = "unresponsive_to_feedback"

    ALL = (
        PENDING,
        SUCCESS,
        FUNDRAISER_REVIEW,
        ACKNOWLEDGED_FEEDBACK,
        DISPUTED_FEEDBACK,
        UNRESPONSIVE_TO_FEEDBACK,
    )


class Resolution:
    GATEWAY_ACCEPTED = "gateway_accepted"
    GATEWAY_REJECTED = "gateway_rejected"
    TIMEOUT = "timeout"
    CONFIRMED_ON_RETURN = "confirmed_on_return"


# Forward-only: no edge leads back to pending or out of success.
TRANSITIONS: Mapping[str, FrozenSet[str]] = {
    DonationStatus.PENDING: frozenset({DonationStatus.SUCCESS, DonationStatus.FUNDRAISER_REVIEW}),
    DonationStatus.SUCCESS: frozenset(),
    DonationStatus.FUNDRAISER_REVIEW: frozenset(
        {
            DonationStatus.ACKNOWLEDGED_FEEDBACK,
            DonationStatus.DISPUTED_FEEDBACK,
            DonationStatus.UNRESPONSIVE_TO_FEEDBACK,
        }
    ),
    DonationStatus.ACKNOWLEDGED_FEEDBACK: frozenset(),
    DonationStatus.DISPUTED_FEEDBACK: frozenset(),
    DonationStatus.UNRESPONSIVE_TO_FEEDBACK: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _new_id() -> str:
    return str(_uuid.uuid4())


class DonationRequest(db.Model, TimestampMixin):
    __tablename__ = "donation_requests"
    __table_args__ = (
        CheckConstraint("donation_amount > 0", name="ck_donation_requests_amount_positive"),
        UniqueConstraint("reference_id", name="uq_donation_requests_reference_id"),
        Index("ix_donation_requests_status_reference", "status", "reference_id"),
        Index("ix_donation_requests_donor_status", "donor_id", "status"),
    )

    # ---- Identifiers ----
    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_new_id)
    reference_id: Mapped[Optional[str]] = mapped_column(
        db.String(64),
        nullable=True,
        doc="Platform-prefixed correlation token (PD-JG-...). Immutable once set.",
    )

    # ---- Parties (opaque external identifiers) ----
    donor_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    fundraiser_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    service_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)

    # ---- Target organization ----
    platform: Mapped[str] = mapped_column(db.String(20), nullable=False, default=Platform.JUSTGIVING)
    organization_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    organization_name: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    # ---- Economics ----
    donation_amount: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="GBP")

    # ---- Redirect artifact ----
    donation_url: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    # ---- Lifecycle ----
    status: Mapped[str] = mapped_column(
        db.String(32),
        nullable=False,
        default=DonationStatus.PENDING,
        index=True,
    )
    external_donation_id: Mapped[Optional[str]] = mapped_column(
        db.String(64),
        nullable=True,
        index=True,
        doc="Processor's donation id; never cleared once set.",
    )
    timeout_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(db.String(32), nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == DonationStatus.PENDING

    def is_expired(self, now: datetime) -> bool:
        return bool(self.timeout_at and now > self.timeout_at)

    def as_dict(self) -> Dict[str, Any]:
        amount = self.donation_amount
        return {
            "requestId": self.id,
            "referenceId": self.reference_id,
            "donorId": self.donor_id,
            "fundraiserId": self.fundraiser_id,
            "serviceId": self.service_id,
            "platform": self.platform,
            "organizationId": self.organization_id,
            "organizationName": self.organization_name,
            "donationAmount": float(amount) if amount is not None else None,
            "currency": self.currency,
            "donationUrl": self.donation_url,
            "status": self.status,
            "externalDonationId": self.external_donation_id,
            "resolution": self.resolution,
            "timeoutAt": self.timeout_at.isoformat() if self.timeout_at else None,
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<DonationRequest {self.reference_id} {self.platform} status={self.status}>"
