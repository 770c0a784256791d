from __future__ import annotations

from pbd.extensions import db

from .charity_cache import CachedCharity
from .donation_request import (
    TRANSITIONS,
    DonationRequest,
    DonationStatus,
    Platform,
    Resolution,
    can_transition,
)
from .mixins import TimestampMixin, utcnow
from .reconciliation_run import ReconciliationRun

__all__ = [
    "db",
    "CachedCharity",
    "DonationRequest",
    "DonationStatus",
    "Platform",
    "Resolution",
    "ReconciliationRun",
    "TRANSITIONS",
    "TimestampMixin",
    "can_transition",
    "utcnow",
]
